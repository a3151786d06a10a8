import asyncio
import logging
from datetime import datetime
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import utcnow
from app.models import Category, ScrapedListing, ScrapePlan, ScrapeRun
from app.schemas.job import ScrapeRequest, ScrapeSelection
from app.services.plans import advance_plan
from collector.supervisor import CollectorSupervisor

logger = logging.getLogger(__name__)

settings = get_settings()

scheduler: AsyncIOScheduler | None = None

# Follow-up tasks recording plan run outcomes; referenced until they finish
_outcome_tasks: set[asyncio.Task] = set()


def category_url(slug: str) -> str:
    """Source URL for a catalog category; full URLs pass through unchanged."""
    if slug.startswith(("http://", "https://")):
        return slug
    return f"{settings.source_base_url.rstrip('/')}/elanlar/{slug.strip('/')}"


def resolve_category_slugs(db: Session, plan: ScrapePlan) -> list[str]:
    """Categories a plan collects, in order, without its exclusions."""
    excluded = set(plan.exclude_category_ids or [])
    if plan.category_strategy == "custom":
        slugs = plan.include_category_ids or []
    else:
        slugs = [
            category.slug
            for category in db.query(Category)
            .filter(Category.is_active == True)
            .order_by(Category.position, Category.slug)
            .all()
        ]
    return [slug for slug in dict.fromkeys(slugs) if slug not in excluded]


def resolve_category_urls(db: Session, plan: ScrapePlan) -> list[str]:
    return [category_url(slug) for slug in resolve_category_slugs(db, plan)]


def build_plan_request(plan: ScrapePlan, slugs: list[str]) -> ScrapeRequest:
    """One job for the whole plan; categories are spaced by the plan's interval."""
    return ScrapeRequest(
        category_urls=[category_url(slug) for slug in slugs],
        selections=[ScrapeSelection(category_id=slug) for slug in slugs],
        page_limit=plan.max_pages,
        listing_limit=plan.max_listings,
        delay_ms=plan.page_delay_ms,
        detail_delay_ms=plan.detail_delay_ms,
        category_delay_ms=(plan.interval_minutes or 0) * 60_000,
        headless=plan.headless,
        user_agent=plan.user_agent,
    )


async def trigger_plan(
    supervisor: CollectorSupervisor,
    session_factory: Callable[[], Session],
    db: Session,
    plan: ScrapePlan,
    now: datetime,
) -> str | None:
    """Start the plan's job, record the run and advance the plan. Returns the job id."""
    slugs = resolve_category_slugs(db, plan)
    if not slugs:
        logger.warning(f"Plan {plan.id} ({plan.name}) has no categories to collect; skipping this run")
        advance_plan(plan, now)
        db.commit()
        return None

    job = await supervisor.start_job(build_plan_request(plan, slugs), triggered_by=f"plan:{plan.id}")

    run = ScrapeRun(plan_id=plan.id, job_id=job.id, status="running", started_at=now)
    if job.status == "error":
        run.status = "error"
        run.finished_at = job.finished_at
        run.error_message = job.error_message
    db.add(run)
    plan.last_run_at = now
    advance_plan(plan, now)
    db.commit()

    logger.info(f"Plan {plan.id} ({plan.name}) started job {job.id} for {len(slugs)} categories")

    if run.status == "running":
        task = asyncio.create_task(record_run_outcome(supervisor, session_factory, run.id, job.id))
        _outcome_tasks.add(task)
        task.add_done_callback(_outcome_tasks.discard)
    return job.id


async def record_run_outcome(
    supervisor: CollectorSupervisor,
    session_factory: Callable[[], Session],
    run_id: int,
    job_id: str,
) -> None:
    """Wait for a plan-triggered job and copy its outcome onto the run row."""
    job = await supervisor.wait(job_id)

    db = session_factory()
    try:
        run = db.get(ScrapeRun, run_id)
        if run is None:
            return
        if job is None:
            run.status = "error"
            run.error_message = "Job record no longer exists"
        else:
            run.status = job.status
            run.snapshot_path = job.output_path
            run.error_message = job.error_message
            if job.sync_status == "error":
                run.error_message = job.sync_message
        run.finished_at = (job.finished_at if job is not None else None) or utcnow()
        run.listings_count = db.query(ScrapedListing).filter(ScrapedListing.job_id == job_id).count()
        db.commit()
        logger.info(f"Run {run_id} of plan {run.plan_id} finished: {run.status}, {run.listings_count} listings")
    except Exception as e:
        logger.error(f"Recording outcome of run {run_id} failed: {e}")
        db.rollback()
    finally:
        db.close()


async def run_due_plans(
    supervisor: CollectorSupervisor,
    session_factory: Callable[[], Session],
    now: datetime | None = None,
) -> list[str]:
    """Trigger every enabled plan whose next run is due. Returns the started job ids."""
    now = now or utcnow()
    started = []

    db = session_factory()
    try:
        due = (
            db.query(ScrapePlan)
            .filter(ScrapePlan.enabled == True)
            .filter(ScrapePlan.next_run_at != None)
            .filter(ScrapePlan.next_run_at <= now)
            .order_by(ScrapePlan.next_run_at)
            .all()
        )
        if due:
            logger.info(f"{len(due)} plan(s) due at {now.isoformat()}")

        for plan in due:
            try:
                job_id = await trigger_plan(supervisor, session_factory, db, plan, now)
            except Exception as e:
                logger.error(f"Plan {plan.id} ({plan.name}) failed to start: {e}")
                db.rollback()
                continue
            if job_id:
                started.append(job_id)
    finally:
        db.close()

    return started


def start_scheduler(supervisor: CollectorSupervisor, session_factory: Callable[[], Session] | None = None):
    """Poll for due plans on the running event loop."""
    from app.database import SessionLocal

    global scheduler
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_due_plans,
        IntervalTrigger(seconds=settings.scheduler_poll_seconds),
        args=[supervisor, session_factory or SessionLocal],
        id="run_due_plans",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started; checking plans every {settings.scheduler_poll_seconds}s")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler shut down")
