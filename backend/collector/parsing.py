"""HTML extraction for tap.az category and listing pages."""
import json
import logging
from datetime import datetime, timezone
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from collector.resolution import DETAIL_POLICY, apply_policy
from collector.utils import (
    category_from_url,
    clean_text,
    is_listing_url,
    normalize_currency,
    parse_count,
    parse_price,
    remote_id_from_url,
)

logger = logging.getLogger(__name__)

CARD_SELECTOR = '.products-i, [data-testid="product-card"]'
DETAIL_SELECTOR = ".product-info"

VIEW_COUNT_LABEL = "Baxışların sayı"
FAVORITES_LABEL = "Seçilmiş"
NEW_CONDITION_WORD = "yeni"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def _first(node, *selectors):
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            return found
    return None


def _text(node) -> str | None:
    return clean_text(node.get_text(" ", strip=True)) if node is not None else None


def parse_cards(html: str, page_url: str) -> list[dict]:
    """Listing cards on a category page, in page order.

    Cards without a remote id or outside the marketplace listing paths are skipped.
    """
    cards = []
    for card in _soup(html).select(CARD_SELECTOR):
        link = _first(card, ".products-link", 'a[href*="/elanlar/"]')
        href = urljoin(page_url, link.get("href")) if link is not None and link.get("href") else None
        if not is_listing_url(href):
            continue

        bookmark = _first(card, ".product-bookmarks__link", "[data-ad-id]")
        tap_id = (bookmark.get("data-ad-id") if bookmark is not None else None) or remote_id_from_url(href)
        if not tap_id:
            continue

        image = card.select_one("img")
        category_slug, subcategory_slug = category_from_url(href)
        cards.append({
            "tapId": str(tap_id),
            "title": _text(_first(card, ".products-name", '[data-testid="product-title"]')),
            "price": parse_price(_text(_first(card, ".price-val", '[data-testid="price"]', '[itemprop="price"]'))),
            "currency": normalize_currency(
                _text(_first(card, ".price-cur", '[data-testid="currency"]', '[itemprop="priceCurrency"]'))
            ),
            "location": _text(_first(card, ".products-created", '[data-testid="location"]')),
            "url": href,
            "imageUrl": urljoin(page_url, image.get("src")) if image is not None and image.get("src") else None,
            "categorySlug": category_slug,
            "subcategorySlug": subcategory_slug,
        })
    return cards


def find_product_jsonld(soup: BeautifulSoup) -> dict | None:
    """The first embedded JSON-LD object of type Product."""
    for script in soup.select('script[type="application/ld+json"]'):
        try:
            data = json.loads(script.string or "{}")
        except json.JSONDecodeError:
            continue
        for candidate in data if isinstance(data, list) else [data]:
            if isinstance(candidate, dict) and candidate.get("@type") == "Product":
                return candidate
    return None


def parse_detail(html: str) -> tuple[dict, dict | None]:
    """Fields read directly from a listing page, plus its Product JSON-LD."""
    soup = _soup(html)

    stats = [_text(node) for node in soup.select(".product-info__statistics__i-text")]
    stats = [text for text in stats if text]
    views = next((text for text in stats if VIEW_COUNT_LABEL in text), None)
    favorites = next((text for text in stats if FAVORITES_LABEL in text), None)

    condition = _text(soup.select_one(".product-info__stats"))
    price_node = soup.select_one('[itemprop="price"]')
    currency_node = soup.select_one('[itemprop="priceCurrency"]')
    image = _first(soup, ".product-gallery img", ".product-image img")
    og_image = soup.select_one('meta[property="og:image"]')
    updated = soup.select_one('meta[property="og:updated_time"]')

    detail = {
        "description": _text(soup.select_one(".product-description")),
        "sellerName": _text(soup.select_one(".product-info__shop-name")),
        "sellerType": "store" if soup.select_one(".product-info__shop") is not None else "individual",
        "postedAtText": stats[0] if stats else None,
        "postedAtISO": updated.get("content") if updated is not None else None,
        "conditionLabel": condition,
        "isNew": NEW_CONDITION_WORD in condition.lower() if condition else None,
        "viewCount": parse_count(views),
        "favoritesCount": parse_count(favorites),
        "price": parse_price(price_node.get("content")) if price_node is not None else None,
        "currency": normalize_currency(currency_node.get("content")) if currency_node is not None else None,
        "imageUrl": (image.get("src") if image is not None else None)
        or (og_image.get("content") if og_image is not None else None),
    }
    return detail, find_product_jsonld(soup)


def build_listing_record(card: dict, detail: dict, jsonld: dict | None, fetched_at: datetime | None = None) -> dict:
    """Merge card, detail page and JSON-LD into one snapshot item."""
    fetched_at = fetched_at or datetime.now(timezone.utc)
    record = dict(card)
    record.update(apply_policy(DETAIL_POLICY, {"detail": detail, "jsonld": jsonld, "card": card}))
    record["fetchedAt"] = fetched_at.isoformat()
    record["raw"] = {
        **{key: value for key, value in detail.items() if value is not None},
        "jsonLd": jsonld,
    }
    return record
