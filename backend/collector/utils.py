import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator, Sequence, TypeVar
from urllib.parse import urlparse

T = TypeVar("T")

# Currency labels shown on tap.az cards, mapped to ISO codes
CURRENCY_ALIASES = {
    "azn": "AZN", "₼": "AZN", "man": "AZN", "manat": "AZN",
    "usd": "USD", "$": "USD",
    "eur": "EUR", "€": "EUR",
}

# Path segments that never hold marketplace listings
EXCLUDED_PATH_SNIPPETS = ("/elanlar/is-elanlari",)


def clean_text(text: str | None) -> str | None:
    """Clean up text by normalizing whitespace."""
    if not text:
        return None
    cleaned = re.sub(r"\s+", " ", text).strip()
    return cleaned or None


def parse_price(text: str | None) -> Decimal | None:
    """Parse a displayed price such as ``"1 250"`` or ``"12,5"``."""
    if text is None:
        return None
    if isinstance(text, (int, float, Decimal)):
        return Decimal(str(text))
    digits = re.sub(r"[^\d.,]", "", text).replace(",", ".")
    if not digits:
        return None
    # Several separators can only be thousands grouping
    if digits.count(".") > 1:
        digits = digits.replace(".", "")
    try:
        return Decimal(digits)
    except InvalidOperation:
        return None


def normalize_currency(label: str | None) -> str | None:
    label = clean_text(label)
    if not label:
        return None
    return CURRENCY_ALIASES.get(label.lower(), label.upper())


def parse_count(text: str | None) -> int | None:
    """Extract the number from a statistic such as ``"Baxışların sayı: 1 234"``."""
    if not text:
        return None
    digits = re.sub(r"\D", "", text)
    return int(digits) if digits else None


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def category_from_url(url: str) -> tuple[str | None, str | None]:
    """(category slug, subcategory slug) from ``/elanlar/<category>/<subcategory>/<id>``."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    category = segments[1] if len(segments) > 1 else None
    subcategory = segments[2] if len(segments) > 3 else None
    return category, subcategory


def remote_id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    match = re.search(r"(\d+)/?$", url)
    return match.group(1) if match else None


def is_listing_url(url: str | None) -> bool:
    if not url or "/elanlar/" not in url:
        return False
    return not any(snippet in url for snippet in EXCLUDED_PATH_SNIPPETS)


def dedupe_by_id(records: Iterable[T], key: str = "tapId", seen: dict | None = None) -> list[T]:
    """Drop records whose remote id was already seen, keeping first-seen order.

    Pass the same ``seen`` dict across pages to dedupe a whole category.
    """
    seen = {} if seen is None else seen
    unique = []
    for record in records:
        record_id = record.get(key) if isinstance(record, dict) else getattr(record, key, None)
        if not record_id or record_id in seen:
            continue
        seen[record_id] = record
        unique.append(record)
    return unique


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
