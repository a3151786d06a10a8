"""Capture snapshot items and fold them into the canonical listing tables.

Reconciliation of one job runs in four sequential steps: read the job's raw
rows, upsert canonical listings, then upsert daily stats and append price
changes against the freshly written listings. Every step commits per batch,
so a write failure leaves earlier batches in place and propagates.
"""
import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from sqlalchemy import false, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import utcnow
from app.models import Listing, ListingDailyStat, ListingPriceChange, ScrapedListing
from collector.resolution import CANONICAL_POLICY, RAW_ITEM_POLICY, apply_policy
from collector.snapshot import Snapshot, latest_snapshot, load_snapshot
from collector.utils import chunked, parse_count, parse_iso_datetime, parse_price

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass
class ReconcileResult:
    listings_upserted: int = 0
    stats_upserted: int = 0
    price_changes: int = 0


@dataclass
class SyncResult:
    """Outcome of capturing and reconciling one snapshot (recorded as the job's sync status)."""
    status: str  # success, idle
    message: str
    captured: int = 0
    reconcile: ReconcileResult = field(default_factory=ReconcileResult)


def _raw_row_values(job_id: str, item: dict, snapshot: Snapshot) -> dict:
    values = apply_policy(RAW_ITEM_POLICY, {"item": item, "snapshot": snapshot})
    values["price"] = parse_price(values["price"])
    values["posted_at"] = parse_iso_datetime(values["posted_at"])
    values["fetched_at"] = parse_iso_datetime(values["fetched_at"]) or parse_iso_datetime(snapshot.scraped_at)
    for key in ("view_count", "favorites_count"):
        if values[key] is not None and not isinstance(values[key], int):
            values[key] = parse_count(str(values[key]))
    if values["is_new"] is not None:
        values["is_new"] = bool(values["is_new"])
    values["job_id"] = job_id
    values["tap_id"] = item["tapId"]
    return values


def capture_snapshot(
    db: Session,
    job_id: str,
    snapshot: Snapshot,
    fetch_chunk: int | None = None,
    write_batch: int | None = None,
) -> int:
    """Upsert every snapshot item as a raw row keyed by (job, remote id).

    Returns the number of distinct items captured.
    """
    fetch_chunk = fetch_chunk or settings.reconcile_fetch_chunk
    write_batch = write_batch or settings.reconcile_write_batch

    # Later duplicates of the same id replace earlier ones
    items: dict[str, dict] = {}
    for listing in snapshot.items:
        items[listing.tap_id] = listing.model_dump(by_alias=True)
    if not items:
        return 0

    tap_ids = list(items)
    existing: dict[str, ScrapedListing] = {}
    for batch in chunked(tap_ids, fetch_chunk):
        rows = (
            db.query(ScrapedListing)
            .filter(ScrapedListing.job_id == job_id)
            .filter(ScrapedListing.tap_id.in_(batch))
            .all()
        )
        existing.update({row.tap_id: row for row in rows})

    for batch in chunked(tap_ids, write_batch):
        for tap_id in batch:
            values = _raw_row_values(job_id, items[tap_id], snapshot)
            row = existing.get(tap_id)
            if row is None:
                db.add(ScrapedListing(**values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
        db.commit()

    logger.info(f"[capture] Job {job_id}: {len(tap_ids)} raw listings stored")
    return len(tap_ids)


def _fetch_listings(db: Session, remote_ids: list[str], fetch_chunk: int) -> dict[str, Listing]:
    found: dict[str, Listing] = {}
    for batch in chunked(remote_ids, fetch_chunk):
        for listing in db.query(Listing).filter(Listing.remote_id.in_(batch)).all():
            found[listing.remote_id] = listing
    return found


def _fetch_listing_info(db: Session, remote_ids: list[str], fetch_chunk: int) -> dict[str, tuple]:
    """remote_id -> (listing id, current price)."""
    info: dict[str, tuple] = {}
    for batch in chunked(remote_ids, fetch_chunk):
        rows = (
            db.query(Listing.id, Listing.remote_id, Listing.price_current)
            .filter(Listing.remote_id.in_(batch))
            .all()
        )
        for listing_id, remote_id, price in rows:
            info[remote_id] = (listing_id, price)
    return info


INSERT_DIALECTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}

# Canonical fields where the new capture wins and a missing value keeps the stored one
MERGED_LISTING_COLUMNS = (
    "title", "description", "category_slug", "subcategory_slug", "seller_name", "seller_type",
    "location", "listing_url", "image_url", "price_current", "currency", "posted_at", "metadata",
)


def _upsert(db: Session, table, values: list[dict], conflict: list[str], update) -> None:
    """INSERT ... ON CONFLICT (conflict) DO UPDATE for a batch of column-keyed rows.

    ``update(excluded, table)`` returns the SET clause. Concurrent writers of
    the same key resolve in the database instead of failing on the unique index.
    """
    dialect = db.get_bind().dialect.name
    insert = INSERT_DIALECTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")
    stmt = insert(table)
    stmt = stmt.on_conflict_do_update(index_elements=conflict, set_=update(stmt.excluded, table.c))
    db.execute(stmt, values)


def _upsert_listings(db: Session, values: list[dict]) -> None:
    def update(excluded, columns):
        changes = {name: func.coalesce(excluded[name], columns[name]) for name in MERGED_LISTING_COLUMNS}
        # Another writer inserted the row first: keep its first sighting
        changes.update(
            is_new=false(),
            last_seen_at=excluded["last_seen_at"],
            last_scraped_job_id=excluded["last_scraped_job_id"],
            updated_at=utcnow(),
        )
        return changes

    _upsert(db, Listing.__table__, values, conflict=["remote_id"], update=update)


def reconcile(
    db: Session,
    job_id: str,
    snapshot_at: datetime,
    fetch_chunk: int | None = None,
    write_batch: int | None = None,
) -> ReconcileResult:
    """Fold the raw rows captured under ``job_id`` into the canonical tables."""
    fetch_chunk = fetch_chunk or settings.reconcile_fetch_chunk
    write_batch = write_batch or settings.reconcile_write_batch
    snapshot_at = parse_iso_datetime(snapshot_at)
    snapshot_day = snapshot_at.date()

    rows = (
        db.query(ScrapedListing)
        .filter(ScrapedListing.job_id == job_id)
        .order_by(ScrapedListing.id)
        .all()
    )
    if not rows:
        logger.info(f"[canonical] Job {job_id}: no captured listings, nothing to reconcile")
        return ReconcileResult()

    remote_ids = list(dict.fromkeys(row.tap_id for row in rows))
    existing = _fetch_listings(db, remote_ids, fetch_chunk)
    # Prices as they were before this run touched anything
    baseline = {remote_id: listing.price_current for remote_id, listing in existing.items()}

    listings_upserted = 0
    for batch in chunked(rows, write_batch):
        values = []
        for row in batch:
            listing = existing.get(row.tap_id)
            merged = apply_policy(CANONICAL_POLICY, {"row": row, "existing": listing})
            merged["metadata"] = merged.pop("raw_metadata")
            if listing is None:
                is_new = True if row.is_new is None else row.is_new
            else:
                # A listing seen before is never new again
                is_new = False
            values.append({
                "remote_id": row.tap_id,
                "is_new": is_new,
                "first_seen_at": snapshot_at,
                "last_seen_at": snapshot_at,
                "last_scraped_job_id": job_id,
                **merged,
            })
        _upsert_listings(db, values)
        listings_upserted += len(values)
        db.commit()

    listing_info = _fetch_listing_info(db, remote_ids, fetch_chunk)

    stats_upserted = 0
    for batch in chunked(rows, write_batch):
        values = []
        for row in batch:
            if row.tap_id not in listing_info:
                continue
            listing_id, price_current = listing_info[row.tap_id]
            values.append({
                "listing_id": listing_id,
                "snapshot_date": snapshot_day,
                "views_total": row.view_count or 0,
                "favorites_count": row.favorites_count or 0,
                "price": row.price if row.price is not None else price_current,
                "scraped_at": row.fetched_at or snapshot_at,
                "job_id": job_id,
            })
        if values:
            _upsert(
                db,
                ListingDailyStat.__table__,
                values,
                conflict=["listing_id", "snapshot_date"],
                update=lambda excluded, columns: {
                    name: excluded[name]
                    for name in ("views_total", "favorites_count", "price", "scraped_at", "job_id")
                },
            )
            stats_upserted += len(values)
        db.commit()

    price_changes = 0
    for batch in chunked(rows, write_batch):
        for row in batch:
            if row.tap_id not in baseline or row.tap_id not in listing_info:
                continue
            listing_id, price_current = listing_info[row.tap_id]
            old_price = baseline[row.tap_id]
            new_price = row.price if row.price is not None else price_current
            if old_price == new_price:
                continue
            db.add(ListingPriceChange(
                listing_id=listing_id,
                old_price=old_price,
                new_price=new_price,
                changed_at=snapshot_at,
                job_id=job_id,
            ))
            price_changes += 1
        db.commit()

    logger.info(
        f"[canonical] Job {job_id}: listings={listings_upserted}, "
        f"stats={stats_upserted}, price_changes={price_changes}"
    )
    return ReconcileResult(listings_upserted, stats_upserted, price_changes)


def sync_snapshot(session_factory: Callable[[], Session], job_id: str, snapshot_path: Path) -> SyncResult:
    """Capture a snapshot file under ``job_id`` and reconcile it."""
    snapshot = load_snapshot(snapshot_path)
    if not snapshot.items:
        logger.info(f"Job {job_id}: snapshot {snapshot_path} is empty")
        return SyncResult(status="idle", message="Snapshot is empty")

    db = session_factory()
    try:
        captured = capture_snapshot(db, job_id, snapshot)
        result = reconcile(db, job_id, snapshot.scraped_at)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return SyncResult(
        status="success",
        message=(
            f"Captured {captured} listings; {result.listings_upserted} listings, "
            f"{result.stats_upserted} daily stats, {result.price_changes} price changes"
        ),
        captured=captured,
        reconcile=result,
    )


def main(argv: list[str] | None = None) -> int:
    """Ingest a snapshot file into the canonical database."""
    from app.database import SessionLocal, init_db

    parser = argparse.ArgumentParser(description="Capture and reconcile a collector snapshot")
    parser.add_argument("snapshot", nargs="?", help="Snapshot file (defaults to the newest in the snapshot dir)")
    parser.add_argument("job_id", nargs="?", help="Job id to record the capture under")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.snapshot:
        snapshot_path = Path(args.snapshot).resolve()
    else:
        snapshot_path = latest_snapshot(settings.snapshot_dir)
        if snapshot_path is None:
            logger.error(f"No snapshot found in {settings.snapshot_dir}")
            return 1
    job_id = args.job_id or f"cli-{int(datetime.now().timestamp() * 1000)}"

    init_db()
    logger.info(f"Ingesting {snapshot_path} as job {job_id}")
    result = sync_snapshot(SessionLocal, job_id, snapshot_path)
    logger.info(f"{result.status}: {result.message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
