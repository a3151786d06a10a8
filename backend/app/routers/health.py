from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from app.database import get_db
from app.dependencies import get_job_store
from app.services.job_store import JobStore

router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db), store: JobStore = Depends(get_job_store)):
    """Health check that verifies the canonical database and the job store.

    Note: This is a sync function because we use synchronous SQLAlchemy.
    FastAPI will run it in a threadpool automatically.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    try:
        store.list(limit=1)
        store_status = "healthy"
    except Exception as e:
        store_status = f"unhealthy: {str(e)}"

    healthy = db_status == "healthy" and store_status == "healthy"
    return {
        "status": "ok" if healthy else "degraded",
        "database": db_status,
        "job_store": store_status,
    }
