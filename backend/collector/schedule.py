"""Next-run computation for recurring collection plans.

All functions are pure: they read the plan's structured fields (any object
exposing ``schedule_type``, ``timezone``, ``run_hour``, ``run_minute``,
``days_of_week`` and ``days_of_month``) and never touch storage.

Weekdays use 0=Sunday .. 6=Saturday. A candidate only counts when it is
strictly after ``now``, so a plan firing at exactly its own run time is not
re-triggered.
"""
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_WEEKDAY = 1  # Monday
DEFAULT_MONTH_DAY = 1
WEEKLY_SCAN_DAYS = 8
MONTHLY_SCAN_DAYS = 62

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class ScheduleError(Exception):
    """Base class for plan scheduling failures."""


class NoFurtherRuns(ScheduleError):
    """The plan has no occurrence after the current one (``once`` plans)."""


class ScheduleComputeError(ScheduleError):
    """The plan's fields cannot produce a next run; a configuration error."""


def normalize_weekdays(days) -> list[int]:
    """Sorted, de-duplicated weekday indexes (0=Sunday); 7 folds onto Sunday."""
    return sorted({int(day) % 7 for day in days or []})


def normalize_month_days(days) -> list[int]:
    return sorted({int(day) for day in days or []})


def _sunday_index(day: date) -> int:
    # date.weekday() is Monday=0
    return (day.weekday() + 1) % 7


def _at_run_time(day: date, plan, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time(plan.run_hour, plan.run_minute), tzinfo=zone)


def _as_utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def next_run(plan, now: datetime) -> datetime:
    """Return the first instant strictly after ``now`` at which ``plan`` is due (UTC).

    Raises:
        NoFurtherRuns: for ``once`` plans.
        ScheduleComputeError: when the bounded scan finds no matching day or the
            schedule type is unknown.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    schedule_type = plan.schedule_type
    if schedule_type == "once":
        raise NoFurtherRuns("One-off plans have no further runs")

    zone = ZoneInfo(plan.timezone or "UTC")
    today = now.astimezone(zone).date()

    if schedule_type == "daily":
        candidate = _at_run_time(today, plan, zone)
        if candidate <= now:
            candidate = _at_run_time(today + timedelta(days=1), plan, zone)
        return _as_utc(candidate)

    if schedule_type == "weekly":
        days = normalize_weekdays(plan.days_of_week) or [DEFAULT_WEEKDAY]
        for offset in range(WEEKLY_SCAN_DAYS):
            day = today + timedelta(days=offset)
            candidate = _at_run_time(day, plan, zone)
            if _sunday_index(day) in days and candidate > now:
                return _as_utc(candidate)
        # Unreachable with an 8-day window; kept as the documented fallback
        first = days[0]
        shift = (first - _sunday_index(today)) % 7
        return _as_utc(_at_run_time(today + timedelta(days=shift + 7), plan, zone))

    if schedule_type == "monthly":
        days = normalize_month_days(plan.days_of_month) or [DEFAULT_MONTH_DAY]
        for offset in range(MONTHLY_SCAN_DAYS):
            day = today + timedelta(days=offset)
            candidate = _at_run_time(day, plan, zone)
            if day.day in days and candidate > now:
                return _as_utc(candidate)
        raise ScheduleComputeError(
            f"No day of month in {days} occurs within {MONTHLY_SCAN_DAYS} days of {today.isoformat()}"
        )

    raise ScheduleComputeError(f"Unknown schedule type: {schedule_type!r}")


def cron_expression(plan) -> str:
    """Cron-style rendering of the plan (``once`` renders its fixed date when known)."""
    minute, hour = plan.run_minute, plan.run_hour
    if plan.schedule_type == "weekly":
        days = normalize_weekdays(plan.days_of_week) or [DEFAULT_WEEKDAY]
        return f"{minute} {hour} * * {','.join(str(d) for d in days)}"
    if plan.schedule_type == "monthly":
        days = normalize_month_days(plan.days_of_month) or [DEFAULT_MONTH_DAY]
        return f"{minute} {hour} {','.join(str(d) for d in days)} * *"
    if plan.schedule_type == "once" and getattr(plan, "once_run_at", None):
        local = plan.once_run_at.astimezone(ZoneInfo(plan.timezone or "UTC"))
        return f"{local.minute} {local.hour} {local.day} {local.month} *"
    return f"{minute} {hour} * * *"


def describe_schedule(plan) -> str:
    """Human readable one-line summary, e.g. ``Weekly on Mon, Wed at 02:30 (Asia/Baku)``."""
    at = f"{plan.run_hour:02d}:{plan.run_minute:02d}"
    zone = plan.timezone or "UTC"
    if plan.schedule_type == "weekly":
        days = normalize_weekdays(plan.days_of_week) or [DEFAULT_WEEKDAY]
        names = ", ".join(WEEKDAY_NAMES[d] for d in days)
        return f"Weekly on {names} at {at} ({zone})"
    if plan.schedule_type == "monthly":
        days = normalize_month_days(plan.days_of_month) or [DEFAULT_MONTH_DAY]
        return f"Monthly on day {', '.join(str(d) for d in days)} at {at} ({zone})"
    if plan.schedule_type == "once":
        once_at = getattr(plan, "once_run_at", None)
        if once_at is None:
            return f"Once (no date set) ({zone})"
        local = once_at.astimezone(ZoneInfo(zone))
        return f"Once on {local:%Y-%m-%d} at {local:%H:%M} ({zone})"
    return f"Daily at {at} ({zone})"
