"""Pytest configuration and fixtures for the listing tracker tests."""

import os
import tempfile
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="tapaz-tests-")
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ.pop("ADMIN_TOKEN", None)
os.environ.pop("VERCEL", None)
os.environ.pop("AWS_LAMBDA_FUNCTION_NAME", None)

from app.config import Settings
from app.database import Base, get_db
from app.dependencies import get_job_store, get_supervisor
from app.main import app
from app.models import Category, ScrapePlan
from app.services.job_store import JobStore
from collector.progress import ProgressEvent, format_event
from collector.supervisor import CollectorSupervisor
from collector.workers import OutputLine, ProcessExited, Worker, WorkerSpawnError


# Use in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Enable foreign key support for SQLite (required for ON DELETE CASCADE)
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeWorker(Worker):
    """In-process worker replaying a scripted list of events."""

    def __init__(self, events=None, spawn_error=None):
        self.events = list(events or [])
        self.spawn_error = spawn_error
        self.configs = []
        self.closed = False

    async def start(self, config):
        self.configs.append(config)
        if self.spawn_error:
            raise WorkerSpawnError(self.spawn_error)
        return self._stream()

    async def _stream(self):
        try:
            for event in self.events:
                yield event
        finally:
            self.closed = True


def progress_line(phase, processed, total, message=None, output_path=None):
    """A stdout line as the collection program prints it."""
    event = ProgressEvent(
        phase=phase,
        processed=processed,
        total=total,
        percent=min(100.0, processed / max(total, 1) * 100),
        message=message,
        output_path=output_path,
    )
    return OutputLine("stdout", format_event(event))


def successful_run(output_path="/tmp/snapshots/tapaz-live.json"):
    return [
        progress_line("categories", 1, 1, "Category 1/1 done"),
        progress_line("done", 1, 1, "Collector finished", output_path=output_path),
        ProcessExited(0),
    ]


@pytest.fixture
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(data_dir=str(tmp_path / "data"), environment="development")


@pytest.fixture
def job_store(tmp_path):
    return JobStore(tmp_path / "admin-jobs.sqlite3", tmp_path / "admin-job-logs")


@pytest.fixture
def make_supervisor(job_store, test_settings):
    """Build a supervisor around a FakeWorker."""
    def _make(events=None, spawn_error=None, sync=None, settings=None):
        return CollectorSupervisor(
            store=job_store,
            worker=FakeWorker(events, spawn_error=spawn_error),
            sync=sync,
            settings=settings or test_settings,
        )
    return _make


@pytest.fixture
def supervisor(make_supervisor):
    return make_supervisor(successful_run())


@pytest.fixture
def client(db, job_store, supervisor):
    """Create a test client with database, job store and supervisor overrides."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_supervisor] = lambda: supervisor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def scrape_request_data():
    return {
        "category_urls": ["https://tap.az/elanlar/elektronika", "https://tap.az/elanlar/neqliyyat"],
        "page_limit": 2,
        "listing_limit": 40,
        "delay_ms": 500,
        "detail_delay_ms": 800,
    }


@pytest.fixture
def categories(db):
    """A small active catalog plus one inactive category."""
    rows = [
        Category(slug="elektronika", name="Elektronika", position=0, is_active=True),
        Category(slug="neqliyyat", name="Nəqliyyat", position=1, is_active=True),
        Category(slug="dasinmaz-emlak", name="Daşınmaz əmlak", position=2, is_active=True),
        Category(slug="is-elanlari", name="İş elanları", position=3, is_active=False),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def due_plan(db, categories):
    """An enabled daily plan whose next run has already passed."""
    plan = ScrapePlan(
        name="Nightly",
        enabled=True,
        schedule_type="daily",
        timezone="UTC",
        run_hour=2,
        run_minute=0,
        days_of_week=[],
        days_of_month=[],
        category_strategy="all",
        include_category_ids=[],
        exclude_category_ids=["neqliyyat"],
        interval_minutes=5,
        max_pages=1,
        max_listings=50,
        page_delay_ms=1000,
        detail_delay_ms=1000,
        headless=True,
        next_run_at=datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc),
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan
