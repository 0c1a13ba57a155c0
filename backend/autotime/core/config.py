from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "AutoTime Geofence Engine"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str = "postgresql://autotime_user:autotime_pass@db:5432/autotime_db"

    # Redis (Celery broker + result backend)
    REDIS_URL: str = "redis://redis:6379/0"

    # Shift schedules (workers.shift_end) are wall-clock times in this zone
    SITE_TIMEZONE: str = "Europe/London"

    # Geofence auto clock-out tuning
    GRACE_MINUTES: int = 4
    RACE_BUFFER_SECONDS: int = 60
    ACCURACY_PASS_METERS: float = 50.0
    MIN_EXIT_MARGIN_METERS: float = 25.0
    AUTO_WINDOW_MINUTES: int = 60
    REENTRY_LOOKBACK_FIXES: int = 5

    # Overtime hard cap
    OT_MAX_HOURS: int = 3

    # Celery beat cadence for both sweeps
    SWEEP_INTERVAL_SECONDS: int = 60

    # Shared secret for cron-triggered sweep endpoints (disabled when unset)
    CRON_SECRET: Optional[str] = None

    # Optional outbound push relay for worker notifications
    PUSH_WEBHOOK_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
