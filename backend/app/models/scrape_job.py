from sqlalchemy import Column, Integer, String, Text, JSON
from sqlalchemy.orm import declarative_base

from app.database import UTCDateTime, utcnow

# Jobs live in their own embedded store, separate from the canonical database
JobStoreBase = declarative_base()

JOB_STATUSES = ("queued", "running", "success", "error")
TERMINAL_STATUSES = frozenset({"success", "error"})
SYNC_STATUSES = ("idle", "pending", "success", "error")


class ScrapeJob(JobStoreBase):
    """One execution of the collection + reconciliation pipeline."""
    __tablename__ = "scrape_jobs"

    id = Column(String(36), primary_key=True)
    status = Column(String(20), nullable=False, default="queued", index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    started_at = Column(UTCDateTime, nullable=True)
    finished_at = Column(UTCDateTime, nullable=True)

    # Validated ScrapeRequest + triggered_by, stored as a JSON document
    params = Column(JSON, nullable=False)
    log_path = Column(String(1000), nullable=False)
    output_path = Column(String(1000), nullable=True)
    progress = Column(JSON, nullable=False)
    error_message = Column(Text, nullable=True)

    # Downstream snapshot sync (capture + reconcile)
    sync_status = Column(String(20), nullable=False, default="idle")
    sync_message = Column(Text, nullable=True)

    # Optimistic concurrency: every UPDATE is compare-and-swap on this column
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
