from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class ScrapeSelection(BaseModel):
    category_id: str
    subcategory_id: str | None = None
    label: str | None = None


class ScrapeRequest(BaseModel):
    """Parameters of a manual (or plan-derived) collection run."""
    category_urls: list[str] = Field(min_length=1)
    selections: list[ScrapeSelection] = []
    page_limit: int = Field(ge=1, le=10)
    listing_limit: int = Field(ge=10, le=1000)
    delay_ms: int = Field(ge=250, le=20000)
    detail_delay_ms: int = Field(ge=250, le=20000)
    # Pause between categories; defaults to delay_ms when not given
    category_delay_ms: int | None = Field(default=None, ge=0, le=86_400_000)
    headless: bool = True
    user_agent: str | None = Field(default=None, min_length=5, max_length=256)

    @field_validator("category_urls")
    @classmethod
    def validate_urls(cls, urls: list[str]) -> list[str]:
        cleaned = []
        for url in urls:
            url = url.strip()
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"Invalid category URL: {url!r}")
            cleaned.append(url)
        return cleaned


class JobParams(ScrapeRequest):
    triggered_by: str


class JobProgress(BaseModel):
    phase: str
    processed: float = 0
    total: float = 1
    percent: float = 0
    message: str | None = None


class JobResponse(BaseModel):
    id: str
    status: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    params: JobParams
    log_path: str
    output_path: str | None = None
    progress: JobProgress
    error_message: str | None = None
    sync_status: str
    sync_message: str | None = None

    class Config:
        from_attributes = True


class JobEnvelope(BaseModel):
    job: JobResponse


class JobDetailResponse(BaseModel):
    job: JobResponse
    log: str | None = None


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
