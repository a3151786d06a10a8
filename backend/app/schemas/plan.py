from datetime import datetime
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator


class PlanPayload(BaseModel):
    """Structured plan fields accepted on create and update."""
    name: str = Field(default="Nightly", min_length=1, max_length=255)
    enabled: bool = True
    schedule_type: Literal["daily", "weekly", "monthly", "once"] = "daily"
    timezone: str = Field(default="Asia/Baku", min_length=2, max_length=64)
    run_hour: int = Field(default=2, ge=0, le=23)
    run_minute: int = Field(default=0, ge=0, le=59)
    days_of_week: list[int] = []
    days_of_month: list[int] = []
    once_run_at: datetime | None = None
    category_strategy: Literal["all", "custom"] = "all"
    include_category_ids: list[str] = []
    exclude_category_ids: list[str] = []
    interval_minutes: int = Field(default=0, ge=0, le=1440)
    max_pages: int = Field(default=1, ge=1, le=10)
    max_listings: int = Field(default=120, ge=10, le=1000)
    page_delay_ms: int = Field(default=1500, ge=250, le=20000)
    detail_delay_ms: int = Field(default=2200, ge=250, le=20000)
    headless: bool = True
    user_agent: str | None = Field(default=None, min_length=5, max_length=256)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, days: list[int]) -> list[int]:
        # 7 is accepted as an alias for Sunday
        for day in days:
            if day < 0 or day > 7:
                raise ValueError(f"Weekday out of range (0-6, Sunday=0): {day}")
        return days

    @field_validator("days_of_month")
    @classmethod
    def validate_days_of_month(cls, days: list[int]) -> list[int]:
        for day in days:
            if day < 1 or day > 31:
                raise ValueError(f"Day of month out of range (1-31): {day}")
        return days

    @model_validator(mode="after")
    def localize_once_run_at(self) -> "PlanPayload":
        # A naive one-off time is wall-clock time in the plan's timezone
        if self.once_run_at is not None and self.once_run_at.tzinfo is None:
            self.once_run_at = self.once_run_at.replace(tzinfo=ZoneInfo(self.timezone))
        return self


class PlanResponse(PlanPayload):
    id: int
    cron_expression: str | None = None
    schedule_summary: str | None = None
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    class Config:
        from_attributes = True


class ScrapeRunResponse(BaseModel):
    id: int
    plan_id: int
    job_id: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    listings_count: int
    snapshot_path: str | None = None
    error_message: str | None = None

    class Config:
        from_attributes = True


class CategoryResponse(BaseModel):
    slug: str
    name: str
    parent_slug: str | None = None
    position: int
    is_active: bool

    class Config:
        from_attributes = True
