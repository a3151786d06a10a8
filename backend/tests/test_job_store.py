"""Tests for the embedded job store."""

from datetime import datetime, timezone

import pytest

from app.services.job_store import JobStore

PARAMS = {
    "category_urls": ["https://tap.az/elanlar/elektronika", "https://tap.az/elanlar/neqliyyat"],
    "page_limit": 1,
    "listing_limit": 40,
    "delay_ms": 500,
    "detail_delay_ms": 500,
    "triggered_by": "admin",
}


class TestCreateAndRead:
    """Tests for creating, fetching and listing jobs."""

    def test_create_queued_job(self, job_store):
        job = job_store.create(PARAMS)

        assert job.id
        assert job.status == "queued"
        assert job.sync_status == "idle"
        assert job.params == PARAMS
        assert job.log_path.endswith(f"{job.id}.log")
        assert job.progress == {
            "phase": "queued", "processed": 0, "total": 2, "percent": 0, "message": "Queued",
        }

    def test_progress_total_at_least_one(self, job_store):
        job = job_store.create({**PARAMS, "category_urls": []})
        assert job.progress["total"] == 1

    def test_get_round_trip(self, job_store):
        job = job_store.create(PARAMS)
        fetched = job_store.get(job.id)

        assert fetched.id == job.id
        assert fetched.created_at.tzinfo is not None

    def test_get_unknown(self, job_store):
        assert job_store.get("missing") is None

    def test_list_most_recent_first(self, job_store):
        ids = [job_store.create(PARAMS).id for _ in range(3)]

        listed = [job.id for job in job_store.list()]
        assert listed == list(reversed(ids))

    def test_list_limit(self, tmp_path):
        store = JobStore(tmp_path / "jobs.sqlite3", tmp_path / "logs", list_limit=2)
        for _ in range(4):
            store.create(PARAMS)

        assert len(store.list()) == 2
        assert len(store.list(limit=3)) == 3

    def test_retention_prunes_oldest_finished_jobs(self, tmp_path):
        """Only terminal jobs beyond the retention window are removed."""
        store = JobStore(tmp_path / "jobs.sqlite3", tmp_path / "logs", retention=2)
        first = store.create(PARAMS)
        store.update(first.id, status="error", error_message="boom")
        second = store.create(PARAMS)
        third = store.create(PARAMS)

        assert store.get(first.id) is None
        assert store.get(second.id) is not None
        assert store.get(third.id) is not None

    def test_retention_keeps_active_jobs(self, tmp_path):
        store = JobStore(tmp_path / "jobs.sqlite3", tmp_path / "logs", retention=1)
        running = store.create(PARAMS)
        store.update(running.id, status="running")
        store.create(PARAMS)

        assert store.get(running.id) is not None


class TestUpdate:
    """Tests for partial updates."""

    def test_update_sets_fields(self, job_store):
        job = job_store.create(PARAMS)
        started = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

        updated = job_store.update(job.id, status="running", started_at=started)

        assert updated.status == "running"
        assert job_store.get(job.id).started_at == started

    def test_progress_is_merged(self, job_store):
        """Fields absent from the patch keep their stored values."""
        job = job_store.create(PARAMS)
        job_store.update(job.id, progress={"phase": "details", "processed": 3})

        progress = job_store.get(job.id).progress
        assert progress["phase"] == "details"
        assert progress["processed"] == 3
        assert progress["total"] == 2
        assert progress["message"] == "Queued"

    def test_unspecified_fields_untouched(self, job_store):
        job = job_store.create(PARAMS)
        job_store.update(job.id, output_path="/tmp/a.json")
        job_store.update(job.id, status="running")

        assert job_store.get(job.id).output_path == "/tmp/a.json"

    def test_unknown_id_is_noop(self, job_store):
        assert job_store.update("missing", status="running") is None

    def test_unknown_field_rejected(self, job_store):
        job = job_store.create(PARAMS)
        with pytest.raises(ValueError):
            job_store.update(job.id, params={})

    def test_every_update_bumps_version(self, job_store):
        job = job_store.create(PARAMS)
        assert job.version == 1

        job_store.update(job.id, status="running")
        job_store.update(job.id, progress={"percent": 50})
        assert job_store.get(job.id).version == 3

    def test_terminal_job_ignores_non_sync_fields(self, job_store):
        job = job_store.create(PARAMS)
        job_store.update(job.id, status="success", output_path="/tmp/a.json")

        job_store.update(job.id, status="running", error_message="late")

        stored = job_store.get(job.id)
        assert stored.status == "success"
        assert stored.error_message is None

    def test_terminal_job_accepts_sync_fields(self, job_store):
        job = job_store.create(PARAMS)
        job_store.update(job.id, status="success")

        job_store.update(job.id, sync_status="pending")
        job_store.update(job.id, sync_status="success", sync_message="Captured 3 listings", status="error")

        stored = job_store.get(job.id)
        assert stored.status == "success"
        assert stored.sync_status == "success"
        assert stored.sync_message == "Captured 3 listings"


class TestLogs:
    """Tests for per-job output logs."""

    def test_append_and_read(self, job_store):
        job = job_store.create(PARAMS)
        job_store.append_log(job.id, "first\n")
        job_store.append_log(job.id, "second\n")

        assert job_store.read_log(job.id) == "first\nsecond\n"

    def test_missing_log(self, job_store):
        job = job_store.create(PARAMS)
        assert job_store.read_log(job.id) is None


class TestCorruption:
    """Tests for recovery from an unreadable store file."""

    def test_corrupt_file_is_backed_up(self, tmp_path):
        db_path = tmp_path / "admin-jobs.sqlite3"
        db_path.write_bytes(b"this is not a sqlite database" * 200)

        store = JobStore(db_path, tmp_path / "logs")

        backups = list(tmp_path.glob("admin-jobs-corrupted-*.sqlite3"))
        assert len(backups) == 1
        assert backups[0].read_bytes().startswith(b"this is not a sqlite database")
        assert store.list() == []
        assert store.create(PARAMS).status == "queued"

    def test_existing_store_is_reopened(self, tmp_path):
        db_path = tmp_path / "admin-jobs.sqlite3"
        job = JobStore(db_path, tmp_path / "logs").create(PARAMS)

        reopened = JobStore(db_path, tmp_path / "logs")

        assert reopened.get(job.id) is not None
        assert not list(tmp_path.glob("*-corrupted-*"))
