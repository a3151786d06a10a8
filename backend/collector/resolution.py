"""Ordered field-resolution policies.

Several stages fill a field from the first source that has a value: the
collection program prefers the detail page over embedded JSON-LD over the
listing card, raw capture prefers the item over its ``raw`` fallback bag, and
reconciliation prefers the new capture over the existing canonical row. Each
stage declares its rules once here and applies them with ``apply_policy``.

A lookup is ``"<source>.<key>[.<key>...]"``. Sources may be mappings or
objects; ``None`` and empty strings count as missing.
"""
from typing import Any, Callable, Mapping

from collector.utils import parse_price

MISSING = object()


def _step(value, key: str):
    if value is None:
        return MISSING
    if isinstance(value, Mapping):
        return value.get(key, MISSING)
    return getattr(value, key, MISSING)


def lookup(sources: Mapping[str, Any], path: str):
    source, _, rest = path.partition(".")
    value = sources.get(source, MISSING)
    for key in (rest.split(".") if rest else []):
        if value is MISSING:
            break
        value = _step(value, key)
    if value is None or value == "":
        return MISSING
    return value


def first_item(value):
    """JSON-LD allows a single value or a list; take the first entry.

    ImageObject entries resolve to their ``url``. Anything that is not a
    string in the end counts as missing.
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, Mapping):
        value = value.get("url") or value.get("contentUrl")
    return value if isinstance(value, str) else None


class FieldRule:
    """Take the first present value among ``lookups``, else ``default``.

    ``default`` may be a callable receiving the sources. ``transform`` is
    applied to a found value; a transform returning nothing falls through to
    the next lookup.
    """

    def __init__(self, *lookups: str, default: Any = None, transform: Callable[[Any], Any] | None = None):
        self.lookups = lookups
        self.default = default
        self.transform = transform

    def resolve(self, sources: Mapping[str, Any]):
        for path in self.lookups:
            value = lookup(sources, path)
            if value is MISSING:
                continue
            if self.transform is not None:
                value = self.transform(value)
                if value is None or value == "":
                    continue
            return value
        return self.default(sources) if callable(self.default) else self.default

    def __repr__(self):
        return f"FieldRule({', '.join(self.lookups)}, default={self.default!r})"


def apply_policy(policy: Mapping[str, FieldRule], sources: Mapping[str, Any]) -> dict:
    return {name: rule.resolve(sources) for name, rule in policy.items()}


def _title_mentions_new(sources) -> bool:
    title = lookup(sources, "card.title")
    return title is not MISSING and "yeni" in str(title).lower()


# Listing record assembled by the collection program.
# Sources: "detail" (detail page fields), "jsonld" (embedded Product JSON-LD), "card" (category card)
DETAIL_POLICY: dict[str, FieldRule] = {
    "description": FieldRule("detail.description", "jsonld.description"),
    "sellerName": FieldRule("detail.sellerName", "jsonld.offers.seller.name"),
    "sellerType": FieldRule("detail.sellerType", default="individual"),
    "postedAtText": FieldRule("detail.postedAtText"),
    "postedAtISO": FieldRule("detail.postedAtISO", "jsonld.offers.availabilityStarts"),
    "conditionLabel": FieldRule("detail.conditionLabel"),
    "viewCount": FieldRule("detail.viewCount"),
    "favoritesCount": FieldRule("detail.favoritesCount"),
    "isNew": FieldRule("detail.isNew", default=_title_mentions_new),
    "price": FieldRule("detail.price", "jsonld.offers.price", "card.price", transform=parse_price),
    "currency": FieldRule("detail.currency", "jsonld.offers.priceCurrency", "card.currency", default="AZN"),
    "imageUrl": FieldRule("detail.imageUrl", "jsonld.image", "card.imageUrl", transform=first_item),
}

# Snapshot item -> raw capture row. Sources: "item" (camelCase snapshot item), "snapshot"
RAW_ITEM_POLICY: dict[str, FieldRule] = {
    "title": FieldRule("item.title", "item.raw.title"),
    "description": FieldRule("item.description", "item.raw.description"),
    "price": FieldRule("item.price", "item.raw.price"),
    "currency": FieldRule("item.currency", "item.raw.currency"),
    "seller_name": FieldRule("item.sellerName", "item.raw.sellerName"),
    "seller_type": FieldRule("item.sellerType", "item.raw.sellerType"),
    "category_slug": FieldRule("item.categorySlug"),
    "subcategory_slug": FieldRule("item.subcategorySlug"),
    "location": FieldRule("item.location"),
    "is_new": FieldRule("item.isNew", "item.raw.isNew"),
    "view_count": FieldRule("item.viewCount", "item.raw.viewCount"),
    "favorites_count": FieldRule("item.favoritesCount", "item.raw.favoritesCount"),
    "posted_at": FieldRule("item.postedAtISO", "item.raw.postedAtISO"),
    "posted_at_text": FieldRule("item.postedAtText", "item.raw.postedAtText"),
    "condition_label": FieldRule("item.conditionLabel", "item.raw.conditionLabel"),
    "fetched_at": FieldRule("item.fetchedAt", "snapshot.scraped_at"),
    "listing_url": FieldRule("item.url"),
    "image_url": FieldRule("item.imageUrl", "item.raw.imageUrl", transform=first_item),
    "raw": FieldRule("item.raw"),
}

# Raw capture row + existing canonical row -> canonical listing fields.
# Sources: "row" (ScrapedListing), "existing" (Listing or absent)
CANONICAL_POLICY: dict[str, FieldRule] = {
    "title": FieldRule("row.title", "existing.title", "row.tap_id"),
    "description": FieldRule("row.description", "existing.description"),
    "category_slug": FieldRule("row.category_slug", "existing.category_slug"),
    "subcategory_slug": FieldRule("row.subcategory_slug", "existing.subcategory_slug"),
    "seller_name": FieldRule("row.seller_name", "existing.seller_name"),
    "seller_type": FieldRule("row.seller_type", "existing.seller_type"),
    "location": FieldRule("row.location", "existing.location"),
    "listing_url": FieldRule("row.listing_url", "existing.listing_url"),
    "image_url": FieldRule("row.image_url", "existing.image_url"),
    "price_current": FieldRule("row.price", "existing.price_current"),
    "currency": FieldRule("row.currency", "existing.currency", default="AZN"),
    "posted_at": FieldRule("row.posted_at", "existing.posted_at"),
    "status": FieldRule("existing.status", default="active"),
    "raw_metadata": FieldRule("row.raw", "existing.raw_metadata"),
}
