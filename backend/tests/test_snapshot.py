"""Tests for the snapshot file format."""

import json
import os
from datetime import datetime, timezone
from decimal import Decimal

from collector.snapshot import (
    RawListing,
    Snapshot,
    latest_snapshot,
    load_snapshot,
    snapshot_filename,
    write_snapshot,
)


class TestRawListing:
    """Tests for validating snapshot items."""

    def test_camel_case_fields(self):
        listing = RawListing.model_validate({
            "tapId": "123",
            "title": "Phone",
            "price": "1250.50",
            "imageUrl": "https://img/1.jpg",
            "sellerType": "store",
            "viewCount": 42,
            "isNew": True,
        })

        assert listing.tap_id == "123"
        assert listing.price == Decimal("1250.50")
        assert listing.image_url == "https://img/1.jpg"
        assert listing.seller_type == "store"
        assert listing.view_count == 42
        assert listing.is_new is True

    def test_numeric_id_coerced(self):
        assert RawListing.model_validate({"tapId": 987}).tap_id == "987"

    def test_unparseable_posting_date_dropped(self):
        listing = RawListing.model_validate({"tapId": "1", "postedAtISO": "Bugün, 10:00"})
        assert listing.posted_at_iso is None

    def test_unknown_fields_kept(self):
        listing = RawListing.model_validate({"tapId": "1", "badge": "VIP"})
        assert listing.model_dump(by_alias=True)["badge"] == "VIP"


class TestSnapshotFiles:
    """Tests for writing and loading snapshot files."""

    def test_filename(self):
        moment = datetime(2026, 10, 19, 6, 5, 9, 123000, tzinfo=timezone.utc)
        assert snapshot_filename(moment) == "tapaz-live-2026-10-19T06-05-09-123000Z.json"

    def test_write_then_load(self, tmp_path):
        snapshot = Snapshot(
            scraped_at=datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc),
            category_urls=["https://tap.az/elanlar/elektronika"],
            total=1,
            items=[RawListing(tap_id="1", title="Phone", price=Decimal("99.90"), view_count=5)],
        )

        path = write_snapshot(snapshot, tmp_path / "snapshots")

        assert path.is_absolute()
        assert path.parent == (tmp_path / "snapshots").resolve()
        body = json.loads(path.read_text(encoding="utf-8"))
        assert body["scrapedAt"].startswith("2026-10-19T06:00:00")
        assert body["categoryUrls"] == ["https://tap.az/elanlar/elektronika"]
        assert body["items"][0] == {"tapId": "1", "title": "Phone", "price": 99.9, "viewCount": 5}

        loaded = load_snapshot(path)
        assert loaded.total == 1
        assert loaded.items[0].price == Decimal("99.9")

    def test_latest_snapshot(self, tmp_path):
        older = tmp_path / "tapaz-live-a.json"
        newer = tmp_path / "tapaz-live-b.json"
        older.write_text("{}")
        newer.write_text("{}")
        os.utime(older, (1_000_000, 1_000_000))
        os.utime(newer, (2_000_000, 2_000_000))

        assert latest_snapshot(tmp_path) == newer

    def test_latest_snapshot_missing_dir(self, tmp_path):
        assert latest_snapshot(tmp_path / "nothing") is None
