from celery import Celery

from autotime.core.config import settings

celery_app = Celery(
    "autotime",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["autotime.tasks.async_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Deferred exit resolutions wait in the broker, not on a worker slot
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "sweep-expired-exits": {
            "task": "sweep_expired_exits",
            "schedule": float(settings.SWEEP_INTERVAL_SECONDS),
        },
        "sweep-overtime-sessions": {
            "task": "sweep_overtime_sessions",
            "schedule": float(settings.SWEEP_INTERVAL_SECONDS),
        },
    },
)
