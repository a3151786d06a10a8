"""Tests for SQLAlchemy models and their constraints."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import Category, Listing, ListingDailyStat, ListingPriceChange, ScrapedListing, ScrapePlan, ScrapeRun

SEEN = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


def make_listing(db, remote_id="1"):
    listing = Listing(remote_id=remote_id, title="Phone", first_seen_at=SEEN, last_seen_at=SEEN)
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


class TestListingModel:
    """Tests for the canonical listing table."""

    def test_defaults(self, db):
        listing = make_listing(db)

        assert listing.status == "active"
        assert listing.is_new is False
        assert listing.created_at is not None

    def test_remote_id_unique(self, db):
        make_listing(db, "1")
        db.add(Listing(remote_id="1", first_seen_at=SEEN, last_seen_at=SEEN))
        with pytest.raises(IntegrityError):
            db.commit()

    def test_timestamps_returned_as_utc(self, db):
        listing = make_listing(db)
        db.expire_all()
        assert db.get(Listing, listing.id).first_seen_at == SEEN

    def test_delete_cascades_to_history(self, db):
        listing = make_listing(db)
        db.add(ListingDailyStat(listing_id=listing.id, snapshot_date=date(2026, 10, 19), scraped_at=SEEN, job_id="j"))
        db.add(ListingPriceChange(
            listing_id=listing.id, old_price=Decimal("100"), new_price=Decimal("90"), changed_at=SEEN, job_id="j",
        ))
        db.commit()

        db.delete(listing)
        db.commit()

        assert db.query(ListingDailyStat).count() == 0
        assert db.query(ListingPriceChange).count() == 0


class TestDailyStatModel:
    def test_unique_per_listing_and_day(self, db):
        listing = make_listing(db)
        for _ in range(2):
            db.add(ListingDailyStat(
                listing_id=listing.id, snapshot_date=date(2026, 10, 19), scraped_at=SEEN, job_id="j",
            ))
        with pytest.raises(IntegrityError):
            db.commit()


class TestScrapedListingModel:
    def test_unique_per_job_and_remote_id(self, db):
        for _ in range(2):
            db.add(ScrapedListing(job_id="job-1", tap_id="1", fetched_at=SEEN))
        with pytest.raises(IntegrityError):
            db.commit()

    def test_same_id_in_different_jobs(self, db):
        db.add(ScrapedListing(job_id="job-1", tap_id="1", fetched_at=SEEN))
        db.add(ScrapedListing(job_id="job-2", tap_id="1", fetched_at=SEEN))
        db.commit()
        assert db.query(ScrapedListing).count() == 2


class TestPlanModels:
    """Tests for plans and their runs."""

    def test_plan_defaults(self, db):
        plan = ScrapePlan(name="Nightly")
        db.add(plan)
        db.commit()
        db.refresh(plan)

        assert plan.enabled is True
        assert plan.schedule_type == "daily"
        assert plan.timezone == "Asia/Baku"
        assert plan.run_hour == 2
        assert plan.days_of_week == []
        assert plan.category_strategy == "all"
        assert plan.max_listings == 120

    def test_runs_deleted_with_plan(self, db):
        plan = ScrapePlan(name="Nightly")
        db.add(plan)
        db.commit()
        db.add(ScrapeRun(plan_id=plan.id, job_id="job-1"))
        db.commit()

        db.delete(plan)
        db.commit()
        assert db.query(ScrapeRun).count() == 0

    def test_run_requires_plan(self, db):
        db.add(ScrapeRun(plan_id=12345, job_id="job-1"))
        with pytest.raises(IntegrityError):
            db.commit()


class TestCategoryModel:
    def test_slug_is_primary_key(self, db):
        db.add(Category(slug="elektronika", name="Elektronika"))
        db.commit()
        db.expunge_all()
        db.add(Category(slug="elektronika", name="Duplicate"))
        with pytest.raises(IntegrityError):
            db.commit()
