"""
Tests for the dynamic data service: batch assembly, defaults for missing
data, caching behaviour and request validation.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from storefront.cache import InMemoryAggregationCache
from storefront.config import StorefrontConfig, set_config
from storefront.dynamic_data import MAX_PRODUCT_ID, DynamicDataService, fingerprint, normalize_product_ids
from storefront.errors import DataSourceError, InvalidBatchError
from storefront.metrics import MetricsCollector
from storefront.schemas import INQUIRE_TEXT, ON_ORDER_TEXT

from conftest import fixed_clock


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def service(catalog, metrics):
    svc = DynamicDataService.from_config(
        catalog,
        config=StorefrontConfig(),
        cache=InMemoryAggregationCache(),
        clock=fixed_clock(17),
    )
    svc.metrics = metrics
    return svc


def _spy(service):
    """Wrap every resolver so calls can be counted."""
    service.price_resolver = MagicMock(wraps=service.price_resolver)
    service.stock_aggregator = MagicMock(wraps=service.stock_aggregator)
    service.delivery_scheduler = MagicMock(wraps=service.delivery_scheduler)
    return service


# ── Id normalization ─────────────────────────────────────────────────────

class TestNormalizeProductIds:
    def test_sorted_and_deduplicated(self):
        assert normalize_product_ids([3, 1, 3, 2]) == [1, 2, 3]

    def test_numeric_strings_accepted(self):
        assert normalize_product_ids(["101", " 102 ", 103]) == [101, 102, 103]

    @pytest.mark.parametrize("junk", ["abc", "", "1.5", 0, -4, True, None, 2.5, "-3"])
    def test_invalid_tokens_dropped(self, junk):
        assert normalize_product_ids([junk, 7]) == [7]

    def test_integral_float(self):
        assert normalize_product_ids([5.0]) == [5]

    def test_ids_beyond_integer_column_dropped(self):
        assert normalize_product_ids(["99999999999999999999", MAX_PRODUCT_ID + 1, MAX_PRODUCT_ID]) == [MAX_PRODUCT_ID]

    def test_fingerprint_ignores_order(self):
        assert fingerprint([2, 1], 1) == fingerprint([1, 2], 1, None)
        assert fingerprint([1, 2], 1, 7) != fingerprint([1, 2], 1)


# ── Batch assembly ───────────────────────────────────────────────────────

class TestGetBatch:
    def test_one_entry_per_requested_id(self, service):
        batch = asyncio.run(service.get_batch([103, 101, "102", "x", 999], 1))
        assert set(batch) == {101, 102, 103, 999}

    def test_fully_resolved_product(self, service):
        entry = asyncio.run(service.get_batch([101], 1))[101]
        assert entry.price.final == Decimal("100.00")
        assert entry.stock.total_available == 18
        assert entry.available is True
        assert entry.delivery.date == date(2026, 10, 21)
        assert entry.delivery.display_text == "tomorrow"

    def test_buyer_specific_price(self, service):
        entry = asyncio.run(service.get_batch([101], 1, buyer_id=7))[101]
        assert entry.price.base == Decimal("100.00")
        assert entry.price.final == Decimal("80.00")
        assert entry.price.has_override is True

    def test_out_of_stock_product(self, service):
        entry = asyncio.run(service.get_batch([102], 1))[102]
        assert entry.available is False
        assert entry.stock.total_available == 0
        assert entry.stock.allocations == []
        assert entry.delivery.date == date(2026, 10, 26)

    def test_unknown_product_gets_defaults(self, service):
        entry = asyncio.run(service.get_batch([999], 1))[999]
        assert entry.price is None
        assert entry.available is False
        # Out of stock everywhere, but city 1 still has courier calendars
        assert entry.delivery.date == date(2026, 10, 26)

    def test_unknown_city_defaults_to_inquire(self, service):
        batch = asyncio.run(service.get_batch([101, 102], 404))
        assert all(e.delivery.display_text == INQUIRE_TEXT and e.delivery.date is None for e in batch.values())
        assert all(e.available is False for e in batch.values())
        assert batch[101].price.final == Decimal("100.00")

    def test_city_without_warehouses(self, service):
        batch = asyncio.run(service.get_batch([101, 102], 2))
        assert all(not e.available for e in batch.values())
        assert all(e.delivery.display_text == ON_ORDER_TEXT for e in batch.values())

    def test_available_matches_stock(self, service):
        for city_id in (1, 2, 3, 404):
            for entry in asyncio.run(service.get_batch([101, 102, 103, 104], city_id)).values():
                assert entry.available == (entry.stock.total_available > 0)
                assert entry.stock.total_available == sum(a.available_quantity for a in entry.stock.allocations)

    def test_oversized_id_does_not_fail_batch(self, service):
        batch = asyncio.run(service.get_batch(["101", "99999999999999999999"], 1))
        assert set(batch) == {101}
        assert batch[101].available is True

    def test_empty_after_filtering(self, service):
        service = _spy(service)
        assert asyncio.run(service.get_batch(["abc", "", -1], 1)) == {}
        service.price_resolver.resolve_prices.assert_not_called()

    def test_batch_limit(self, service):
        with pytest.raises(InvalidBatchError) as exc_info:
            asyncio.run(service.get_batch(range(1, 1002), 1))
        assert exc_info.value.size == 1001

    def test_batch_limit_is_inclusive(self, service):
        batch = asyncio.run(service.get_batch(range(1, 1001), 1))
        assert len(batch) == 1000

    def test_non_positive_city_rejected(self, service):
        with pytest.raises(InvalidBatchError):
            asyncio.run(service.get_batch([101], 0))


# ── Caching ──────────────────────────────────────────────────────────────

class TestCaching:
    def test_repeat_request_served_from_cache(self, service, metrics):
        service = _spy(service)
        first = asyncio.run(service.get_batch([101, 102], 1))
        second = asyncio.run(service.get_batch([102, 101, 101], 1))
        assert second == first
        assert service.price_resolver.resolve_prices.call_count == 1
        assert service.stock_aggregator.resolve_stock.call_count == 1
        assert service.delivery_scheduler.resolve_delivery.call_count == 1
        assert metrics.cache_hits == 1
        assert metrics.cache_misses == 1

    def test_buyers_do_not_share_entries(self, service):
        anonymous = asyncio.run(service.get_batch([101], 1))
        buyer = asyncio.run(service.get_batch([101], 1, buyer_id=7))
        assert anonymous[101].price.final == Decimal("100.00")
        assert buyer[101].price.final == Decimal("80.00")

    def test_cached_under_fingerprint_with_configured_ttl(self, catalog):
        cache = MagicMock()
        cache.get.return_value = None
        service = DynamicDataService.from_config(
            catalog, config=StorefrontConfig(cache_ttl_seconds=42), cache=cache, clock=fixed_clock(17),
        )
        batch = asyncio.run(service.get_batch([101], 1, buyer_id=7))
        cache.set.assert_called_once_with(fingerprint([101], 1, 7), batch, 42)

    def test_failed_batch_not_cached(self, service):
        service.stock_aggregator = MagicMock()
        service.stock_aggregator.resolve_stock.side_effect = DataSourceError("down", source="stock_balances")
        with pytest.raises(DataSourceError):
            asyncio.run(service.get_batch([101], 1))
        assert len(service.cache) == 0

    def test_batch_sizes_recorded_on_miss(self, service, metrics):
        asyncio.run(service.get_batch([101, 102, 103], 1))
        asyncio.run(service.get_batch([101, 102, 103], 1))
        assert list(metrics.batch_sizes) == [3]


def test_from_config_uses_limits(catalog):
    service = DynamicDataService.from_config(
        catalog, config=StorefrontConfig(max_batch_size=2), cache=InMemoryAggregationCache(),
    )
    with pytest.raises(InvalidBatchError):
        asyncio.run(service.get_batch([1, 2, 3], 1))


def test_from_config_prices_follow_service_timezone(catalog):
    set_config(StorefrontConfig(default_timezone="Europe/Moscow"))
    try:
        service = DynamicDataService.from_config(
            catalog, config=StorefrontConfig(default_timezone="Asia/Vladivostok"),
            cache=InMemoryAggregationCache(),
        )
        with patch("storefront.pricing.datetime") as clock:
            clock.now.return_value.date.return_value = date(2026, 10, 20)
            prices = service.price_resolver.resolve_prices([101])
    finally:
        set_config(None)
    clock.now.assert_called_once_with(ZoneInfo("Asia/Vladivostok"))
    assert prices[101].base == Decimal("100.00")
