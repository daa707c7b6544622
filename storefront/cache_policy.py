"""
Aggregation cache policy: what gets cached, for how long, and how it expires.

This module documents the caching strategy. It is imported by cache.py for
TTL and capacity constants and by dynamic_data.py for key generation.

Architecture:
  SQL database -> source of truth (prices, stock balances, schedules)
  Cache        -> read-through cache of assembled batches (TTL-based expiry)
"""

import hashlib
from typing import Iterable, Optional

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Data Type        | Key Pattern                      | TTL    | Rationale
# -----------------+----------------------------------+--------+------------------------------
# Dynamic batch    | storefront:dynamic_data:{md5}    | 5 min  | Listing pages re-poll; staleness
#                  |                                  |        | bounded by TTL
#
# The key hashes the sorted product ids, the city id and the buyer id
# (0 for anonymous visitors), so the same set requested in any order hits
# the same entry, while buyers with negotiated prices never share entries.
#
# ────────────────────────────────────────────────────────────────────────────
# Consistency Expectations
# ────────────────────────────────────────────────────────────────────────────
#
# - Price, stock and delivery may be stale by up to the TTL (5 min).
#   There is no invalidation hook for price/stock/schedule changes.
# - Entries are never partially updated; a failed batch is never written.
# - Two concurrent misses on the same key both recompute; the second write
#   overwrites the first with an equivalent value.
#
# ────────────────────────────────────────────────────────────────────────────
# In-process eviction
# ────────────────────────────────────────────────────────────────────────────
#
# Expired entries are dropped on read. When the store grows past
# max_entries, expired entries are purged first, then the oldest writes
# are trimmed until the store is back at capacity.

KEY_PREFIX = "dynamic_data"

DEFAULT_TTL_DYNAMIC_DATA = 300     # 5 minutes
DEFAULT_MAX_ENTRIES = 1000         # in-process cache capacity
NAMESPACE = "storefront"           # redis key namespace


def make_batch_key(product_ids: Iterable[int], city_id: int, buyer_id: Optional[int]) -> str:
    """Deterministic cache key for a (product set, city, buyer) request."""
    ordered = sorted(set(product_ids))
    raw = f"{','.join(str(pid) for pid in ordered)}:{city_id}:{buyer_id or 0}"
    return f"{KEY_PREFIX}:{hashlib.md5(raw.encode()).hexdigest()}"
