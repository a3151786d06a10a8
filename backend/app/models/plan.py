from sqlalchemy import Boolean, Column, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from app.database import Base, UTCDateTime, utcnow


class ScrapePlan(Base):
    """Recurring collection plan: when to run and which categories to collect."""
    __tablename__ = "scrape_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    enabled = Column(Boolean, default=True, index=True)

    # Recurrence
    schedule_type = Column(String(20), nullable=False, default="daily")  # daily, weekly, monthly, once
    timezone = Column(String(64), nullable=False, default="Asia/Baku")
    run_hour = Column(Integer, nullable=False, default=2)
    run_minute = Column(Integer, nullable=False, default=0)
    days_of_week = Column(JSON, nullable=False, default=list)  # 0=Sunday .. 6=Saturday
    days_of_month = Column(JSON, nullable=False, default=list)  # 1..31
    once_run_at = Column(UTCDateTime, nullable=True)

    # Category selection
    category_strategy = Column(String(20), nullable=False, default="all")  # all, custom
    include_category_ids = Column(JSON, nullable=False, default=list)  # ordered
    exclude_category_ids = Column(JSON, nullable=False, default=list)
    interval_minutes = Column(Integer, nullable=False, default=0)  # delay between categories

    # Collector parameters
    max_pages = Column(Integer, nullable=False, default=1)
    max_listings = Column(Integer, nullable=False, default=120)
    page_delay_ms = Column(Integer, nullable=False, default=1500)
    detail_delay_ms = Column(Integer, nullable=False, default=2200)
    headless = Column(Boolean, nullable=False, default=True)
    user_agent = Column(String(256), nullable=True)

    # Derived from the structured fields on every update
    cron_expression = Column(String(64), nullable=True)
    schedule_summary = Column(Text, nullable=True)

    last_run_at = Column(UTCDateTime, nullable=True)
    next_run_at = Column(UTCDateTime, nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)
    updated_by = Column(String(255), nullable=True)

    runs = relationship("ScrapeRun", back_populates="plan", cascade="all, delete-orphan")


class ScrapeRun(Base):
    """Outcome of one plan-triggered job."""
    __tablename__ = "scrape_runs"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("scrape_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="running")
    started_at = Column(UTCDateTime, nullable=False, default=utcnow)
    finished_at = Column(UTCDateTime, nullable=True)
    listings_count = Column(Integer, nullable=False, default=0)
    snapshot_path = Column(String(1000), nullable=True)
    error_message = Column(Text, nullable=True)

    plan = relationship("ScrapePlan", back_populates="runs")
