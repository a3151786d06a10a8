import secrets
from functools import lru_cache, partial

from fastapi import Header, HTTPException, status

from app.config import get_settings
from app.database import SessionLocal
from app.services.job_store import JobStore
from collector.reconciler import sync_snapshot
from collector.supervisor import CollectorSupervisor
from collector.workers import SubprocessWorker

DEFAULT_ACTOR = "admin"


def require_admin(
    x_admin_token: str | None = Header(default=None),
    x_admin_user: str | None = Header(default=None),
) -> str:
    """Check the admin token (when one is configured) and return the acting user.

    Use this as a dependency for admin routes.
    """
    settings = get_settings()
    if settings.admin_token:
        if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Admin authentication required",
            )
    return (x_admin_user or "").strip() or DEFAULT_ACTOR


@lru_cache
def get_job_store() -> JobStore:
    settings = get_settings()
    return JobStore(
        settings.jobs_db_path,
        settings.job_log_dir,
        retention=settings.job_retention,
        list_limit=settings.job_list_limit,
    )


@lru_cache
def get_supervisor() -> CollectorSupervisor:
    return CollectorSupervisor(
        store=get_job_store(),
        worker=SubprocessWorker(),
        sync=partial(sync_snapshot, SessionLocal),
        settings=get_settings(),
    )
