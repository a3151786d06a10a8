"""Embedded store for collection jobs and their output logs.

Jobs are kept in a small SQLite file of their own, separate from the canonical
database. Every update is a compare-and-swap on the row's version column; a
lost race is re-read and retried instead of being dropped.
"""
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.exc import DatabaseError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.database import create_db_engine, utcnow
from app.models.scrape_job import JobStoreBase, ScrapeJob, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5

UPDATABLE_FIELDS = {
    "status",
    "started_at",
    "finished_at",
    "log_path",
    "output_path",
    "progress",
    "error_message",
    "sync_status",
    "sync_message",
}
SYNC_FIELDS = {"sync_status", "sync_message"}


class JobStoreConflict(Exception):
    """An update kept losing the compare-and-swap race."""


def initial_progress(params: dict) -> dict:
    return {
        "phase": "queued",
        "processed": 0,
        "total": max(1, len(params.get("category_urls") or [])),
        "percent": 0,
        "message": "Queued",
    }


class JobStore:
    def __init__(self, db_path: Path, log_dir: Path, retention: int = 50, list_limit: int = 25):
        self.db_path = Path(db_path)
        self.log_dir = Path(log_dir)
        self.retention = retention
        self.list_limit = list_limit

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.engine = self._open()
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _connect(self):
        engine = create_db_engine(f"sqlite:///{self.db_path}")
        try:
            with engine.connect() as conn:
                result = conn.exec_driver_sql("PRAGMA quick_check").scalar()
            if result != "ok":
                raise DatabaseError("PRAGMA quick_check", None, Exception(result))
            JobStoreBase.metadata.create_all(bind=engine)
        except DatabaseError:
            engine.dispose()
            raise
        return engine

    def _open(self):
        try:
            return self._connect()
        except DatabaseError as e:
            backup = self._backup_corrupt_file()
            logger.warning(f"Job store {self.db_path} is unreadable ({e}); moved it to {backup} and started empty")
            return self._connect()

    def _backup_corrupt_file(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.db_path.with_name(f"{self.db_path.stem}-corrupted-{stamp}{self.db_path.suffix}")
        self.db_path.rename(backup)
        return backup

    def log_path_for(self, job_id: str) -> Path:
        return self.log_dir / f"{job_id}.log"

    def create(self, params: dict) -> ScrapeJob:
        """Insert a queued job and prune the oldest finished jobs beyond retention."""
        job_id = str(uuid.uuid4())
        job = ScrapeJob(
            id=job_id,
            status="queued",
            created_at=utcnow(),
            params=params,
            log_path=str(self.log_path_for(job_id)),
            progress=initial_progress(params),
            sync_status="idle",
        )
        with self.Session() as session:
            session.add(job)
            session.commit()
            self._prune(session)
        logger.info(f"Created job {job_id} for {len(params.get('category_urls') or [])} categories")
        return job

    def _prune(self, session) -> None:
        keep = session.query(ScrapeJob.id).order_by(ScrapeJob.created_at.desc()).limit(self.retention)
        stale = (
            session.query(ScrapeJob)
            .filter(ScrapeJob.id.not_in(keep.scalar_subquery()))
            .filter(ScrapeJob.status.in_(TERMINAL_STATUSES))
            .all()
        )
        for job in stale:
            session.delete(job)
        if stale:
            session.commit()
            logger.info(f"Pruned {len(stale)} jobs beyond retention of {self.retention}")

    def get(self, job_id: str) -> ScrapeJob | None:
        with self.Session() as session:
            return session.get(ScrapeJob, job_id)

    def list(self, limit: int | None = None) -> list[ScrapeJob]:
        """Most recent jobs first."""
        with self.Session() as session:
            return (
                session.query(ScrapeJob)
                .order_by(ScrapeJob.created_at.desc())
                .limit(limit or self.list_limit)
                .all()
            )

    def update(self, job_id: str, **patch) -> ScrapeJob | None:
        """Apply a partial update; returns None when the job does not exist.

        ``progress`` is merged into the stored progress. Once a job is terminal
        only the sync fields may change; other fields in the patch are ignored.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            with self.Session() as session:
                job = session.get(ScrapeJob, job_id)
                if job is None:
                    return None

                changes = dict(patch)
                if job.status in TERMINAL_STATUSES:
                    ignored = set(changes) - SYNC_FIELDS
                    if ignored:
                        logger.warning(f"Job {job_id} is {job.status}; ignoring update of {sorted(ignored)}")
                    changes = {key: value for key, value in changes.items() if key in SYNC_FIELDS}
                    if not changes:
                        return job

                if "progress" in changes:
                    # Assign a new dict so the JSON column registers the change
                    job.progress = {**(job.progress or {}), **(changes.pop("progress") or {})}
                for key, value in changes.items():
                    setattr(job, key, value)

                try:
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    logger.warning(f"Concurrent update of job {job_id}, retrying (attempt {attempt})")
                    continue
                return job

        raise JobStoreConflict(f"Job {job_id} could not be updated after {MAX_UPDATE_ATTEMPTS} attempts")

    def append_log(self, job_id: str, text: str) -> None:
        with open(self.log_path_for(job_id), "a", encoding="utf-8") as f:
            f.write(text)

    def read_log(self, job_id: str) -> str | None:
        path = self.log_path_for(job_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8", errors="replace")
