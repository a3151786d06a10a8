"""Tests for plan updates and plan advancement."""

from datetime import datetime, timezone

from app.models import ScrapePlan
from app.schemas.plan import PlanPayload
from app.services.plans import advance_plan, apply_plan_update, compute_next_run_at, normalize_category_lists

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)  # a Monday


class TestNormalizeCategoryLists:
    def test_excluded_removed_from_include(self):
        include, exclude = normalize_category_lists(
            ["elektronika", "neqliyyat", "elektronika", " heyvanlar "], ["neqliyyat", "neqliyyat"]
        )
        assert include == ["elektronika", "heyvanlar"]
        assert exclude == ["neqliyyat"]

    def test_blank_ids_dropped(self):
        assert normalize_category_lists(["", "  "], [""]) == ([], [])


class TestApplyPlanUpdate:
    """Tests for writing structured fields and deriving the rest."""

    def test_weekly_plan(self):
        payload = PlanPayload(
            name="Weekdays", schedule_type="weekly", timezone="UTC",
            run_hour=2, run_minute=30, days_of_week=[3, 1, 3],
        )
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)

        assert plan.days_of_week == [1, 3]
        assert plan.cron_expression == "30 2 * * 1,3"
        assert plan.schedule_summary == "Weekly on Mon, Wed at 02:30 (UTC)"
        assert plan.next_run_at == datetime(2026, 10, 21, 2, 30, tzinfo=timezone.utc)
        assert plan.updated_by == "ops"
        assert plan.updated_at == NOW

    def test_weekly_without_days_defaults_to_monday(self):
        payload = PlanPayload(schedule_type="weekly", timezone="UTC", days_of_week=[])
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)
        assert plan.days_of_week == [1]

    def test_monthly_without_days_defaults_to_first(self):
        payload = PlanPayload(schedule_type="monthly", timezone="UTC")
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)

        assert plan.days_of_month == [1]
        assert plan.next_run_at == datetime(2026, 11, 1, 2, 0, tzinfo=timezone.utc)

    def test_category_lists_normalized(self):
        payload = PlanPayload(
            category_strategy="custom",
            include_category_ids=["elektronika", "heyvanlar", "elektronika"],
            exclude_category_ids=["heyvanlar"],
        )
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)

        assert plan.include_category_ids == ["elektronika"]
        assert plan.exclude_category_ids == ["heyvanlar"]

    def test_disabled_plan_has_no_next_run(self):
        plan = apply_plan_update(ScrapePlan(), PlanPayload(enabled=False), actor="ops", now=NOW)
        assert plan.next_run_at is None

    def test_once_in_future(self):
        run_at = datetime(2026, 10, 25, 9, 0, tzinfo=timezone.utc)
        payload = PlanPayload(schedule_type="once", timezone="UTC", once_run_at=run_at)
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)

        assert plan.next_run_at == run_at
        assert plan.schedule_summary == "Once on 2026-10-25 at 09:00 (UTC)"

    def test_once_in_past(self):
        payload = PlanPayload(
            schedule_type="once", timezone="UTC", once_run_at=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
        )
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)
        assert plan.next_run_at is None

    def test_naive_once_time_is_plan_local(self):
        """A one-off time without an offset is read in the plan's timezone."""
        payload = PlanPayload(schedule_type="once", timezone="Asia/Baku", once_run_at=datetime(2026, 10, 25, 9, 0))
        plan = apply_plan_update(ScrapePlan(), payload, actor="ops", now=NOW)
        assert plan.next_run_at == datetime(2026, 10, 25, 5, 0, tzinfo=timezone.utc)


class TestComputeNextRunAt:
    def test_daily(self):
        plan = ScrapePlan(
            enabled=True, schedule_type="daily", timezone="UTC", run_hour=2, run_minute=0,
            days_of_week=[], days_of_month=[],
        )
        assert compute_next_run_at(plan, NOW) == datetime(2026, 10, 20, 2, 0, tzinfo=timezone.utc)


class TestAdvancePlan:
    """Tests for moving a plan past a trigger."""

    def test_daily_advances(self):
        plan = ScrapePlan(
            id=1, name="Nightly", enabled=True, schedule_type="daily", timezone="UTC",
            run_hour=2, run_minute=0, days_of_week=[], days_of_month=[],
        )
        advance_plan(plan, NOW)

        assert plan.enabled is True
        assert plan.next_run_at == datetime(2026, 10, 20, 2, 0, tzinfo=timezone.utc)

    def test_once_disables(self):
        plan = ScrapePlan(
            id=2, name="One-off", enabled=True, schedule_type="once", timezone="UTC",
            run_hour=2, run_minute=0, days_of_week=[], days_of_month=[], next_run_at=NOW,
        )
        advance_plan(plan, NOW)

        assert plan.enabled is False
        assert plan.next_run_at is None

    def test_uncomputable_schedule_disables(self):
        plan = ScrapePlan(
            id=3, name="Broken", enabled=True, schedule_type="monthly", timezone="UTC",
            run_hour=2, run_minute=0, days_of_week=[], days_of_month=[32], next_run_at=NOW,
        )
        advance_plan(plan, NOW)

        assert plan.enabled is False
        assert plan.next_run_at is None
