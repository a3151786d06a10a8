"""Snapshot file written by the collection program and read by the reconciler."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "tapaz-live-"


class RawListing(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tap_id: str = Field(alias="tapId")
    title: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    location: str | None = None
    url: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    category_slug: str | None = Field(default=None, alias="categorySlug")
    subcategory_slug: str | None = Field(default=None, alias="subcategorySlug")
    description: str | None = None
    seller_name: str | None = Field(default=None, alias="sellerName")
    seller_type: str | None = Field(default=None, alias="sellerType")  # store | individual
    posted_at_iso: datetime | None = Field(default=None, alias="postedAtISO")
    posted_at_text: str | None = Field(default=None, alias="postedAtText")
    condition_label: str | None = Field(default=None, alias="conditionLabel")
    view_count: int | None = Field(default=None, alias="viewCount")
    favorites_count: int | None = Field(default=None, alias="favoritesCount")
    is_new: bool | None = Field(default=None, alias="isNew")
    fetched_at: datetime | None = Field(default=None, alias="fetchedAt")
    raw: dict[str, Any] | None = None

    @field_validator("tap_id", mode="before")
    @classmethod
    def coerce_tap_id(cls, value):
        # Some pages expose the id as a number
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("posted_at_iso", mode="before")
    @classmethod
    def drop_unparseable_date(cls, value):
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return value

    @field_serializer("price", when_used="json-unless-none")
    def serialize_price(self, value: Decimal):
        return float(value)


class Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scraped_at: datetime = Field(alias="scrapedAt")
    category_urls: list[str] = Field(default_factory=list, alias="categoryUrls")
    total: int = 0
    items: list[RawListing] = Field(default_factory=list)


def load_snapshot(path: Path) -> Snapshot:
    return Snapshot.model_validate_json(Path(path).read_text(encoding="utf-8"))


def snapshot_filename(moment: datetime) -> str:
    stamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{SNAPSHOT_PREFIX}{stamp}.json"


def write_snapshot(snapshot: Snapshot, output_dir: Path) -> Path:
    """Write the snapshot as camelCase JSON; returns the absolute file path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = (output_dir / snapshot_filename(snapshot.scraped_at)).resolve()
    path.write_text(
        snapshot.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        encoding="utf-8",
    )
    logger.info(f"Wrote {snapshot.total} listings to {path}")
    return path


def latest_snapshot(directory: Path) -> Path | None:
    """Most recently modified snapshot file in ``directory``."""
    directory = Path(directory)
    if not directory.is_dir():
        return None
    candidates = sorted(directory.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
    return candidates[0] if candidates else None
