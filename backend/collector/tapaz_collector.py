"""Playwright collection program for tap.az.

Run as ``python -m collector.tapaz_collector``; configured entirely through
``SCRAPE_*`` environment variables. Stdout carries only progress lines, and
all human-readable logging goes to stderr.
"""
import logging
import os
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from playwright.sync_api import BrowserContext, Page, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from pydantic import ValidationError

from collector.parsing import CARD_SELECTOR, DETAIL_SELECTOR, build_listing_record, parse_cards, parse_detail
from collector.progress import ProgressEvent, format_event
from collector.snapshot import RawListing, Snapshot, write_snapshot
from collector.utils import dedupe_by_id

logger = logging.getLogger("collector.tapaz_collector")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
)
WARMUP_URL = "https://tap.az/"
NAVIGATION_TIMEOUT_MS = 60_000
FALLBACK_PAUSE_MS = 2000
CARD_WAIT_MS = 45_000
DETAIL_WAIT_MS = 12_000


def _env_int(env, name: str, default: int) -> int:
    value = env.get(name)
    return int(value) if value not in (None, "") else default


@dataclass
class CollectorConfig:
    category_urls: list[str]
    max_pages: int = 1
    max_listings: int = 40
    page_delay_ms: int = 1500
    detail_delay_ms: int = 1200
    category_delay_ms: int = 1500
    headless: bool = True
    output_dir: Path = Path("data/snapshots")
    user_agent: str = DEFAULT_USER_AGENT
    job_id: str | None = None

    @classmethod
    def from_env(cls, env=None) -> "CollectorConfig":
        env = os.environ if env is None else env
        urls = [url.strip() for url in env.get("SCRAPE_CATEGORY_URLS", "").split(",") if url.strip()]
        page_delay = _env_int(env, "SCRAPE_DELAY_MS", 1500)
        return cls(
            category_urls=urls,
            max_pages=_env_int(env, "SCRAPE_MAX_PAGES", 1),
            max_listings=_env_int(env, "SCRAPE_MAX_LISTINGS", 40),
            page_delay_ms=page_delay,
            detail_delay_ms=_env_int(env, "SCRAPE_DETAIL_DELAY_MS", 1200),
            category_delay_ms=_env_int(env, "SCRAPE_CATEGORY_DELAY_MS", page_delay),
            headless=env.get("SCRAPE_HEADLESS", "true").lower() != "false",
            output_dir=Path(env.get("SCRAPE_OUTPUT_DIR") or "data/snapshots"),
            user_agent=env.get("SCRAPE_USER_AGENT") or DEFAULT_USER_AGENT,
            job_id=env.get("SCRAPE_JOB_ID"),
        )


def report(phase: str, processed: float, total: float, message: str | None = None, output_path: str | None = None):
    total = max(total, 1)
    event = ProgressEvent(
        phase=phase,
        processed=processed,
        total=total,
        percent=min(100.0, processed / total * 100),
        message=message,
        output_path=output_path,
    )
    print(format_event(event), flush=True)


def navigate(page: Page, url: str) -> None:
    """Wait for network quiescence, falling back once to DOM-ready."""
    last_error = None
    for wait_until in ("networkidle", "domcontentloaded"):
        try:
            page.goto(url, wait_until=wait_until, timeout=NAVIGATION_TIMEOUT_MS)
            return
        except PlaywrightError as e:
            last_error = e
            logger.warning(f"Navigation to {url} ({wait_until}) failed: {e}")
            page.wait_for_timeout(FALLBACK_PAUSE_MS)
    raise last_error


def warm_up(context: BrowserContext) -> None:
    page = context.new_page()
    try:
        navigate(page, WARMUP_URL)
        page.wait_for_timeout(FALLBACK_PAUSE_MS)
    except PlaywrightError as e:
        logger.warning(f"Warm-up visit failed, continuing: {e}")
    finally:
        page.close()


def collect_category(page: Page, category_url: str, config: CollectorConfig) -> list[dict]:
    """Cards from up to ``max_pages`` pages of one category, de-duplicated and capped."""
    seen: dict = {}
    cards: list[dict] = []
    for page_number in range(1, config.max_pages + 1):
        url = category_url if page_number == 1 else f"{category_url}?page={page_number}"
        try:
            navigate(page, url)
            page.wait_for_selector(CARD_SELECTOR, timeout=CARD_WAIT_MS)
        except PlaywrightError as e:
            # Stops this category; earlier pages are kept
            logger.warning(f"{category_url} page {page_number} could not be read: {e}")
            break

        page_cards = parse_cards(page.content(), page.url)
        fresh = dedupe_by_id(page_cards, seen=seen)
        logger.info(f"{category_url} page {page_number}: {len(page_cards)} cards, {len(fresh)} new")
        cards.extend(fresh)
        if not fresh or len(cards) >= config.max_listings:
            break
        time.sleep(config.page_delay_ms / 1000)

    return cards[:config.max_listings]


def enrich(page: Page, cards: list[dict], config: CollectorConfig) -> list[RawListing]:
    """Visit every card's detail page; items that fail are logged and skipped."""
    records = []
    for card in cards:
        try:
            page.goto(card["url"], wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
            page.wait_for_selector(DETAIL_SELECTOR, timeout=DETAIL_WAIT_MS)
            detail, jsonld = parse_detail(page.content())
            records.append(RawListing.model_validate(build_listing_record(card, detail, jsonld)))
        except PlaywrightError as e:
            logger.warning(f"Listing {card['tapId']} could not be read: {e}")
            continue
        except ValidationError as e:
            logger.warning(f"Listing {card['tapId']} skipped, unusable fields: {e.error_count()} errors")
            continue
        report("details", len(records), len(cards), f"Detailed listings {len(records)}/{len(cards)}")
        time.sleep(config.detail_delay_ms / 1000)
    return records


def run(config: CollectorConfig) -> Path:
    categories = config.category_urls
    logger.info(f"Collecting {len(categories)} categories: {', '.join(categories)}")
    logger.info(f"Page limit {config.max_pages}, listing limit {config.max_listings}")
    report("initializing", 0, len(categories), "Launching browser")

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=config.headless)
        context = browser.new_context(
            user_agent=config.user_agent,
            viewport={"width": 1366, "height": 900},
            locale="az-AZ",
            timezone_id="Asia/Baku",
        )
        try:
            warm_up(context)
            page = context.new_page()

            all_cards: list[dict] = []
            for index, category_url in enumerate(categories):
                if index > 0 and config.category_delay_ms:
                    logger.info(f"Waiting {config.category_delay_ms} ms before the next category")
                    time.sleep(config.category_delay_ms / 1000)
                cards = collect_category(page, category_url, config)
                all_cards.extend(cards)
                report("categories", index + 1, len(categories), f"Category {index + 1}/{len(categories)} done")

            unique_cards = dedupe_by_id(all_cards)
            logger.info(f"{len(unique_cards)} unique listings across all categories")
            report("details", 0, len(unique_cards), f"Fetching details for {len(unique_cards)} listings")
            records = enrich(page, unique_cards, config)
        finally:
            context.close()
            browser.close()

    report("saving", 0.8, 1, "Writing snapshot")
    scraped_at = datetime.now(timezone.utc)
    snapshot = Snapshot(
        scraped_at=scraped_at,
        category_urls=categories,
        total=len(records),
        items=records,
    )
    path = write_snapshot(snapshot, config.output_dir)
    report("done", 1, 1, "Collector finished", output_path=str(path))
    return path


def main() -> int:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = CollectorConfig.from_env()
    if not config.category_urls:
        logger.error("No category URLs configured; set SCRAPE_CATEGORY_URLS")
        return 1

    try:
        run(config)
    except Exception:
        logger.exception("Collector failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
