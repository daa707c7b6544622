"""
Error taxonomy for the dynamic product data engine.

- InvalidBatchError  -> bad or oversized request, surfaced as HTTP 400
- DataSourceError    -> a backing store failed, surfaced as HTTP 500, batch not cached
- ScheduleParseError -> a single delivery schedule row is malformed; handled
                        inside the delivery scheduler and never surfaced

A product missing from one resolver's output is not an error: the
orchestrator fills that field with its zero/unknown default.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for errors raised by the storefront core."""


class InvalidBatchError(StorefrontError):
    """The product batch cannot be processed as requested."""

    def __init__(self, message: str, size: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.size = size


class DataSourceError(StorefrontError):
    """A catalog, pricing, stock or schedule query failed."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source


class ScheduleParseError(StorefrontError):
    """A delivery schedule row could not be turned into a schedule."""
