"""Pytest configuration and fixtures."""

import os
from datetime import datetime
from typing import Generator

# Must be set before any autotime import builds settings / the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SITE_TIMEZONE"] = "UTC"
os.environ["DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from autotime.core.database import Base, get_db
from autotime.api.geofence import get_exit_scheduler
from autotime.main import app
# Import all models to ensure they're registered with Base.metadata
from autotime.models import *
from autotime.services.geofence_engine import GeofenceEngine

from helpers import JOB_LAT, JOB_LNG, FakeScheduler

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def engine(db_session: Session, scheduler: FakeScheduler) -> GeofenceEngine:
    return GeofenceEngine(db_session, scheduler=scheduler, tz="UTC")


@pytest.fixture(scope="function")
def client(db_session: Session, scheduler: FakeScheduler) -> Generator[TestClient, None, None]:
    """Create a test client with database and scheduler overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_exit_scheduler] = lambda: scheduler
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def job(db_session: Session) -> Job:
    """A 200m-radius job site."""
    site = Job(name="Riverside Build", latitude=JOB_LAT, longitude=JOB_LNG, geofence_radius=200)
    db_session.add(site)
    db_session.commit()
    db_session.refresh(site)
    return site


@pytest.fixture
def worker(db_session: Session) -> Worker:
    """A worker scheduled 08:00-16:00."""
    w = Worker(name="Sam Carter", email="sam@example.com", shift_start="08:00", shift_end="16:00")
    db_session.add(w)
    db_session.commit()
    db_session.refresh(w)
    return w


@pytest.fixture
def make_session(db_session: Session, worker: Worker, job: Job):
    """Factory for open shift sessions."""
    def _make(clock_in: datetime, is_overtime: bool = False, worker_id=None, job_id=None) -> ShiftSession:
        entry = ShiftSession(
            worker_id=worker_id or worker.id,
            job_id=job_id or job.id,
            work_date=clock_in.date(),
            clock_in=clock_in,
            is_overtime=is_overtime,
        )
        db_session.add(entry)
        db_session.commit()
        db_session.refresh(entry)
        return entry
    return _make
