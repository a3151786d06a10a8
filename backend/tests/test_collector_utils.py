"""Tests for collector text and URL helpers."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from collector.utils import (
    category_from_url,
    chunked,
    clean_text,
    dedupe_by_id,
    is_listing_url,
    normalize_currency,
    parse_count,
    parse_iso_datetime,
    parse_price,
    remote_id_from_url,
)


class TestCleanText:
    def test_collapses_whitespace(self):
        assert clean_text("  iPhone \n 13\t Pro ") == "iPhone 13 Pro"

    def test_empty(self):
        assert clean_text(None) is None
        assert clean_text("   ") is None


class TestParsePrice:
    """Tests for reading displayed prices."""

    def test_grouped_thousands(self):
        assert parse_price("1 250") == Decimal("1250")

    def test_decimal_comma(self):
        assert parse_price("12,5 AZN") == Decimal("12.5")

    def test_dotted_thousands(self):
        assert parse_price("1.250.000") == Decimal("1250000")

    def test_numbers_pass_through(self):
        assert parse_price(99) == Decimal("99")
        assert parse_price(Decimal("10.5")) == Decimal("10.5")

    def test_no_digits(self):
        assert parse_price("Razılaşma yolu ilə") is None
        assert parse_price(None) is None


class TestSmallParsers:
    def test_currency_aliases(self):
        assert normalize_currency("₼") == "AZN"
        assert normalize_currency(" azn ") == "AZN"
        assert normalize_currency("$") == "USD"
        assert normalize_currency("gbp") == "GBP"
        assert normalize_currency(None) is None

    def test_parse_count(self):
        assert parse_count("Baxışların sayı: 1 234") == 1234
        assert parse_count("Seçilmiş") is None

    def test_iso_datetime_with_z(self):
        assert parse_iso_datetime("2026-10-19T06:00:00Z") == datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)

    def test_iso_datetime_converted_to_utc(self):
        baku = timezone(timedelta(hours=4))
        parsed = parse_iso_datetime(datetime(2026, 10, 19, 10, 0, tzinfo=baku))
        assert parsed == datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_iso_datetime_invalid(self):
        assert parse_iso_datetime("yesterday") is None
        assert parse_iso_datetime("") is None


class TestUrls:
    """Tests for marketplace URL helpers."""

    def test_category_and_subcategory(self):
        url = "https://tap.az/elanlar/elektronika/telefonlar/38765123"
        assert category_from_url(url) == ("elektronika", "telefonlar")

    def test_category_only(self):
        assert category_from_url("https://tap.az/elanlar/heyvanlar/38765123") == ("heyvanlar", None)

    def test_remote_id(self):
        assert remote_id_from_url("https://tap.az/elanlar/elektronika/telefonlar/38765123") == "38765123"
        assert remote_id_from_url("https://tap.az/elanlar/elektronika") is None

    def test_job_ads_are_not_listings(self):
        assert is_listing_url("https://tap.az/elanlar/elektronika/telefonlar/1")
        assert not is_listing_url("https://tap.az/elanlar/is-elanlari/it/1")
        assert not is_listing_url("https://tap.az/shops/1")
        assert not is_listing_url(None)


class TestDedupe:
    """Tests for remote-id de-duplication across pages."""

    def test_overlapping_pages(self):
        """Two pages of ten with three shared ids give seventeen unique records."""
        first_page = [{"tapId": str(n)} for n in range(1, 11)]
        second_page = [{"tapId": str(n)} for n in range(8, 18)]
        seen = {}

        fresh = dedupe_by_id(first_page, seen=seen) + dedupe_by_id(second_page, seen=seen)

        assert len(fresh) == 17
        assert [r["tapId"] for r in fresh] == [str(n) for n in range(1, 18)]

    def test_first_seen_kept(self):
        records = [{"tapId": "1", "title": "first"}, {"tapId": "1", "title": "second"}]
        assert dedupe_by_id(records) == [{"tapId": "1", "title": "first"}]

    def test_records_without_id_dropped(self):
        assert dedupe_by_id([{"tapId": None}, {"title": "x"}]) == []


class TestChunked:
    def test_chunks(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert list(chunked([], 3)) == []
