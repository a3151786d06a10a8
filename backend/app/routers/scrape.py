from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.dependencies import get_job_store, get_supervisor, require_admin
from app.schemas.job import JobDetailResponse, JobEnvelope, JobListResponse, JobResponse, ScrapeRequest
from app.services.job_store import JobStore
from collector.supervisor import CollectorSupervisor

router = APIRouter()


@router.post("", response_model=JobEnvelope, status_code=status.HTTP_202_ACCEPTED)
async def start_scrape(
    request: ScrapeRequest,
    actor: str = Depends(require_admin),
    supervisor: CollectorSupervisor = Depends(get_supervisor),
):
    """Start a manual collection job; returns as soon as the job is created."""
    job = await supervisor.start_job(request, triggered_by=actor)
    return JobEnvelope(job=JobResponse.model_validate(job))


@router.get("", response_model=JobListResponse)
def list_scrape_jobs(
    limit: int | None = Query(default=None, ge=1, le=50),
    actor: str = Depends(require_admin),
    store: JobStore = Depends(get_job_store),
):
    """Most recent jobs first."""
    return JobListResponse(jobs=[JobResponse.model_validate(job) for job in store.list(limit)])


@router.get("/{job_id}", response_model=JobDetailResponse)
def get_scrape_job(
    job_id: str,
    include_log: bool = Query(default=False),
    actor: str = Depends(require_admin),
    store: JobStore = Depends(get_job_store),
):
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    log = store.read_log(job_id) if include_log else None
    return JobDetailResponse(job=JobResponse.model_validate(job), log=log)
