"""
Dynamic product data service.

Prices, stock and delivery dates are the parts of a product card that
change all the time. This service computes them for a whole batch of
products at once (one query per data source, never one per product) and
caches the assembled batch for a few minutes.

Flow for one batch:

    normalize ids -> cache lookup --hit--> cached batch
                          |
                         miss
                          |
           +--------------+---------------+
           |                              |
      price resolver            stock aggregator
           |                              |
           |                     delivery scheduler
           +--------------+---------------+
                          |
               join by product id -> cache write -> batch
"""

import asyncio
import numbers
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import sessionmaker

from storefront.cache import AggregationCache, get_cache
from storefront.cache_policy import make_batch_key
from storefront.config import StorefrontConfig, get_config
from storefront.delivery import Clock, DeliveryScheduler
from storefront.errors import InvalidBatchError
from storefront.logger import get_logger
from storefront.metrics import MetricsCollector, metrics_collector
from storefront.pricing import PriceResolver
from storefront.schemas import AggregatedBatch, AggregatedProductEntry, DeliveryRecord, StockRecord
from storefront.stock import StockAggregator

logger = get_logger("dynamic_data")

# Largest id the INTEGER product_id columns can hold
MAX_PRODUCT_ID = 2**31 - 1


def normalize_product_ids(raw: Iterable) -> List[int]:
    """
    Keep positive integer ids only, deduplicated and sorted.

    Accepts ints and numeric strings; anything else (booleans, blanks,
    non-numeric text, zero, negatives, fractional numbers, ids above
    MAX_PRODUCT_ID) is dropped.
    """
    ids = set()
    for value in raw:
        if isinstance(value, bool):
            continue
        if isinstance(value, numbers.Integral):
            product_id = int(value)
        elif isinstance(value, float):
            if not value.is_integer():
                continue
            product_id = int(value)
        else:
            try:
                product_id = int(str(value).strip())
            except ValueError:
                continue
        if 0 < product_id <= MAX_PRODUCT_ID:
            ids.add(product_id)
    return sorted(ids)


def fingerprint(product_ids: Iterable[int], city_id: int, buyer_id: Optional[int] = None) -> str:
    """Cache key of a batch request; independent of product id order."""
    return make_batch_key(product_ids, city_id, buyer_id)


class DynamicDataService:
    """Orchestrates price, stock and delivery resolution for product batches."""

    def __init__(
        self,
        price_resolver: PriceResolver,
        stock_aggregator: StockAggregator,
        delivery_scheduler: DeliveryScheduler,
        cache: AggregationCache,
        max_batch_size: int = 1000,
        cache_ttl: Optional[int] = None,
        metrics: MetricsCollector = metrics_collector,
    ):
        self.price_resolver = price_resolver
        self.stock_aggregator = stock_aggregator
        self.delivery_scheduler = delivery_scheduler
        self.cache = cache
        self.max_batch_size = max_batch_size
        self.cache_ttl = cache_ttl if cache_ttl is not None else cache.ttl
        self.metrics = metrics

    @classmethod
    def from_config(
        cls,
        session_factory: sessionmaker,
        config: Optional[StorefrontConfig] = None,
        cache: Optional[AggregationCache] = None,
        clock: Optional[Clock] = None,
    ) -> "DynamicDataService":
        config = config or get_config()
        today = None
        if clock is not None:
            # Price validity follows the same clock as delivery
            tz = ZoneInfo(config.default_timezone)

            def today():
                return clock(tz).date()
        return cls(
            price_resolver=PriceResolver(session_factory, today=today, timezone=config.default_timezone),
            stock_aggregator=StockAggregator(session_factory),
            delivery_scheduler=DeliveryScheduler(session_factory, clock=clock, config=config),
            cache=cache if cache is not None else get_cache(config),
            max_batch_size=config.max_batch_size,
            cache_ttl=config.cache_ttl_seconds,
        )

    async def get_batch(
        self,
        product_ids: Iterable,
        city_id: int,
        buyer_id: Optional[int] = None,
    ) -> AggregatedBatch:
        """
        Price, stock and delivery for every requested product.

        Args:
            product_ids: Raw product ids; filtered to distinct positive integers
            city_id: Destination city
            buyer_id: Authenticated buyer, or None for anonymous visitors

        Returns:
            Dict of product id -> AggregatedProductEntry, one entry per
            surviving id. Empty input yields an empty dict.

        Raises:
            InvalidBatchError: more than max_batch_size ids, or a non-positive city
            DataSourceError: any backing query failed (nothing is cached)
        """
        ids = normalize_product_ids(product_ids)
        if not ids:
            return {}
        if len(ids) > self.max_batch_size:
            raise InvalidBatchError(
                f"Too many products in one request (max {self.max_batch_size})", size=len(ids)
            )
        if city_id is None or city_id < 1:
            raise InvalidBatchError("city_id must be a positive integer")

        key = fingerprint(ids, city_id, buyer_id)
        cached = self.cache.get(key)
        if cached is not None:
            self.metrics.record_cache_hit()
            logger.debug("cache hit: key=%s products=%s", key, len(ids))
            return cached
        self.metrics.record_cache_miss()
        self.metrics.record_batch_size(len(ids))

        prices, (stock, delivery) = await asyncio.gather(
            asyncio.to_thread(self.price_resolver.resolve_prices, ids, buyer_id),
            asyncio.to_thread(self._stock_and_delivery, ids, city_id),
        )

        batch = {
            product_id: AggregatedProductEntry.assemble(
                prices.get(product_id), stock.get(product_id), delivery.get(product_id)
            )
            for product_id in ids
        }
        self.cache.set(key, batch, self.cache_ttl)
        logger.info(
            "batch computed: city_id=%s buyer=%s products=%s priced=%s in_stock=%s",
            city_id, "yes" if buyer_id else "anonymous", len(ids), len(prices), len(stock),
        )
        return batch

    def _stock_and_delivery(
        self, ids: List[int], city_id: int
    ) -> Tuple[Dict[int, StockRecord], Dict[int, DeliveryRecord]]:
        # Delivery depends on where the stock is, so these two run in sequence
        stock = self.stock_aggregator.resolve_stock(ids, city_id)
        delivery = self.delivery_scheduler.resolve_delivery(ids, city_id, stock)
        return stock, delivery
