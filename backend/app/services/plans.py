import logging
from datetime import datetime

from app.database import utcnow
from app.models import ScrapePlan
from app.schemas.plan import PlanPayload
from collector.schedule import (
    DEFAULT_MONTH_DAY,
    DEFAULT_WEEKDAY,
    NoFurtherRuns,
    ScheduleComputeError,
    cron_expression,
    describe_schedule,
    next_run,
    normalize_month_days,
    normalize_weekdays,
)

logger = logging.getLogger(__name__)


def normalize_category_lists(include: list[str], exclude: list[str]) -> tuple[list[str], list[str]]:
    """De-duplicate both lists (order kept) and drop excluded ids from the include list."""
    exclude_ids = list(dict.fromkeys(s.strip() for s in exclude if s and s.strip()))
    excluded = set(exclude_ids)
    include_ids = [
        slug for slug in dict.fromkeys(s.strip() for s in include if s and s.strip())
        if slug not in excluded
    ]
    return include_ids, exclude_ids


def compute_next_run_at(plan: ScrapePlan, now: datetime) -> datetime | None:
    """Next trigger instant for a plan, or None when it will not run again.

    Raises ScheduleComputeError for plans whose fields cannot produce a run.
    """
    if not plan.enabled:
        return None
    if plan.schedule_type == "once":
        if plan.once_run_at is not None and plan.once_run_at > now:
            return plan.once_run_at
        return None
    return next_run(plan, now)


def apply_plan_update(plan: ScrapePlan, payload: PlanPayload, actor: str, now: datetime | None = None) -> ScrapePlan:
    """Write the structured fields and re-derive everything computed from them."""
    now = now or utcnow()
    data = payload.model_dump()

    data["include_category_ids"], data["exclude_category_ids"] = normalize_category_lists(
        data["include_category_ids"], data["exclude_category_ids"]
    )
    data["days_of_week"] = normalize_weekdays(data["days_of_week"])
    data["days_of_month"] = normalize_month_days(data["days_of_month"])
    if data["schedule_type"] == "weekly" and not data["days_of_week"]:
        data["days_of_week"] = [DEFAULT_WEEKDAY]
    if data["schedule_type"] == "monthly" and not data["days_of_month"]:
        data["days_of_month"] = [DEFAULT_MONTH_DAY]

    for key, value in data.items():
        setattr(plan, key, value)

    plan.cron_expression = cron_expression(plan)
    plan.schedule_summary = describe_schedule(plan)
    plan.next_run_at = compute_next_run_at(plan, now)
    plan.updated_at = now
    plan.updated_by = actor
    return plan


def advance_plan(plan: ScrapePlan, now: datetime) -> None:
    """Move a plan past a trigger at ``now``; one-off and broken plans are disabled."""
    try:
        plan.next_run_at = next_run(plan, now)
    except NoFurtherRuns:
        plan.next_run_at = None
        plan.enabled = False
        logger.info(f"Plan {plan.id} ({plan.name}) was a one-off run and is now disabled")
    except ScheduleComputeError as e:
        plan.next_run_at = None
        plan.enabled = False
        logger.error(f"Plan {plan.id} ({plan.name}) disabled, schedule cannot be computed: {e}")
