"""
Aggregation cache for assembled product batches.

The cache is ONLY a cache, never the source of truth. Two backends share
one small interface (get / set with a TTL):

- InMemoryAggregationCache: process-wide dict, lazy expiry, oldest-first trim
- RedisAggregationCache:    redis SETEX with JSON payloads, for multi-worker deployments

Supports both local Redis and Upstash (cloud-hosted) via the configured URL.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis
from pydantic import ValidationError

from storefront.cache_policy import DEFAULT_MAX_ENTRIES, DEFAULT_TTL_DYNAMIC_DATA, NAMESPACE
from storefront.config import StorefrontConfig
from storefront.logger import get_logger
from storefront.schemas import AggregatedBatch, batch_adapter

logger = get_logger("cache")


class AggregationCache(Protocol):
    """What the dynamic data service needs from a cache backend."""

    ttl: int

    def get(self, key: str) -> Optional[AggregatedBatch]:
        ...

    def set(self, key: str, value: AggregatedBatch, ttl: Optional[int] = None) -> None:
        ...


class InMemoryAggregationCache:
    """
    In-process cache with time to live (TTL).

    Values are stored with an expiry timestamp; reads return a shallow copy
    of the stored map (entries are frozen). Expired entries are pruned on read; once the
    store exceeds max_entries, the oldest writes are trimmed.
    """

    def __init__(
        self,
        ttl: int = DEFAULT_TTL_DYNAMIC_DATA,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._store: "OrderedDict[str, Tuple[float, AggregatedBatch]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[AggregatedBatch]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return dict(value)

    def set(self, key: str, value: AggregatedBatch, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl)
        with self._lock:
            # Re-inserting moves the key to the newest position
            self._store.pop(key, None)
            self._store[key] = (expires_at, value)
            if len(self._store) > self.max_entries:
                self._trim()

    def _trim(self) -> None:
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._store.items() if now >= expires_at]:
            del self._store[key]
        while len(self._store) > self.max_entries:
            self._store.popitem(last=False)

    def __len__(self) -> int:
        return len(self._store)


class RedisAggregationCache:
    """
    Redis-backed aggregation cache.

    Batches are serialized to JSON through pydantic and restored to model
    instances on read. Redis failures are logged and treated as misses so a
    cache outage degrades to recomputation instead of failing requests.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        url: Optional[str] = None,
        ttl: int = DEFAULT_TTL_DYNAMIC_DATA,
        namespace: str = NAMESPACE,
    ):
        if client is None:
            client = redis.from_url(
                url or "redis://localhost:6379/0",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        self.client = client
        self.ttl = ttl
        self.namespace = namespace

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False

    def get(self, key: str) -> Optional[AggregatedBatch]:
        full_key = self._key(key)
        try:
            cached = self.client.get(full_key)
        except redis.RedisError as e:
            logger.warning("cache read error: key=%s error=%s", full_key, e)
            return None
        if cached is None:
            return None
        try:
            return batch_adapter.validate_json(cached)
        except ValidationError as e:
            # Stale or corrupt payload, e.g. written before a model change
            logger.warning("cache payload rejected, dropping: key=%s error=%s", full_key, e)
            try:
                self.client.delete(full_key)
            except redis.RedisError as delete_error:
                logger.warning("cache delete error: key=%s error=%s", full_key, delete_error)
            return None

    def set(self, key: str, value: AggregatedBatch, ttl: Optional[int] = None) -> None:
        full_key = self._key(key)
        try:
            self.client.setex(full_key, ttl if ttl is not None else self.ttl, batch_adapter.dump_json(value))
        except redis.RedisError as e:
            logger.warning("cache write error: key=%s error=%s", full_key, e)


def build_cache(config: StorefrontConfig) -> AggregationCache:
    """Redis when a URL is configured, otherwise the in-process cache."""
    if config.redis_url:
        logger.info("aggregation cache backend: redis")
        return RedisAggregationCache(url=config.redis_url, ttl=config.cache_ttl_seconds)
    logger.info("aggregation cache backend: memory max_entries=%s", config.cache_max_entries)
    return InMemoryAggregationCache(ttl=config.cache_ttl_seconds, max_entries=config.cache_max_entries)


# Lazily created process-wide cache
_cache: Optional[AggregationCache] = None


def get_cache(config: StorefrontConfig) -> AggregationCache:
    global _cache
    if _cache is None:
        _cache = build_cache(config)
    return _cache


def cache_status(cache: AggregationCache) -> Dict[str, str]:
    """Health probe for /health."""
    if isinstance(cache, RedisAggregationCache):
        return {"backend": "redis", "status": "healthy" if cache.ping() else "unhealthy: no response"}
    return {"backend": "memory", "status": "healthy"}
