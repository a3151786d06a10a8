from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.database import Base, UTCDateTime, utcnow


class ScrapedListing(Base):
    """Raw capture of one snapshot item, keyed by (job, remote id)."""
    __tablename__ = "scraped_listings"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(100), nullable=False, index=True)
    tap_id = Column(String(100), nullable=False, index=True)
    title = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(10), nullable=True)
    seller_name = Column(String(255), nullable=True)
    seller_type = Column(String(20), nullable=True)
    category_slug = Column(String(255), nullable=True)
    subcategory_slug = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    is_new = Column(Boolean, nullable=True)
    view_count = Column(Integer, nullable=True)
    favorites_count = Column(Integer, nullable=True)
    posted_at = Column(UTCDateTime, nullable=True)
    posted_at_text = Column(String(255), nullable=True)
    condition_label = Column(String(100), nullable=True)
    fetched_at = Column(UTCDateTime, nullable=False)
    listing_url = Column(String(1000), nullable=True)
    image_url = Column(String(1000), nullable=True)
    raw = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", "tap_id", name="uq_scraped_listing_job_tap"),
    )


class Listing(Base):
    """Canonical, cross-run record for one remote identifier."""
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    remote_id = Column(String(100), unique=True, index=True, nullable=False)
    title = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    category_slug = Column(String(255), nullable=True, index=True)
    subcategory_slug = Column(String(255), nullable=True)
    seller_name = Column(String(255), nullable=True)
    seller_type = Column(String(20), nullable=True)
    location = Column(String(255), nullable=True)
    listing_url = Column(String(1000), nullable=True)
    image_url = Column(String(1000), nullable=True)
    price_current = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(10), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    is_new = Column(Boolean, nullable=False, default=False)
    posted_at = Column(UTCDateTime, nullable=True)
    first_seen_at = Column(UTCDateTime, nullable=False)
    last_seen_at = Column(UTCDateTime, nullable=False)
    last_scraped_job_id = Column(String(100), nullable=True)
    raw_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    daily_stats = relationship("ListingDailyStat", back_populates="listing", cascade="all, delete-orphan")
    price_changes = relationship("ListingPriceChange", back_populates="listing", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_listings_last_seen", "last_seen_at"),
    )


class ListingDailyStat(Base):
    """Latest view/favorite/price figures of a listing for one calendar day."""
    __tablename__ = "listing_daily_stats"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    snapshot_date = Column(Date, nullable=False)
    views_total = Column(Integer, nullable=False, default=0)
    favorites_count = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(14, 2), nullable=True)
    scraped_at = Column(UTCDateTime, nullable=False)
    job_id = Column(String(100), nullable=False)

    listing = relationship("Listing", back_populates="daily_stats")

    __table_args__ = (
        UniqueConstraint("listing_id", "snapshot_date", name="uq_listing_daily_stat"),
    )


class ListingPriceChange(Base):
    """Append-only record of an observed price transition."""
    __tablename__ = "listing_price_changes"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    old_price = Column(Numeric(14, 2), nullable=True)
    new_price = Column(Numeric(14, 2), nullable=True)
    changed_at = Column(UTCDateTime, nullable=False)
    job_id = Column(String(100), nullable=False)

    listing = relationship("Listing", back_populates="price_changes")
