from app.schemas.job import (
    JobDetailResponse,
    JobEnvelope,
    JobListResponse,
    JobParams,
    JobProgress,
    JobResponse,
    ScrapeRequest,
    ScrapeSelection,
)
from app.schemas.plan import CategoryResponse, PlanPayload, PlanResponse, ScrapeRunResponse

__all__ = [
    "JobDetailResponse",
    "JobEnvelope",
    "JobListResponse",
    "JobParams",
    "JobProgress",
    "JobResponse",
    "ScrapeRequest",
    "ScrapeSelection",
    "CategoryResponse",
    "PlanPayload",
    "PlanResponse",
    "ScrapeRunResponse",
]
