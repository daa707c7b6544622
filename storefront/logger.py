"""
Logging for the storefront service.

Everything logs under the "storefront" logger tree (storefront.pricing,
storefront.cache, ...), one line per event on stdout, with request details
as key=value pairs in the message, e.g.

    2026-10-20 17:00:01 INFO storefront.dynamic_data batch computed: city_id=1 products=3

The level comes from LOG_LEVEL at import and from the config log_level once
the app starts.
"""
import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("storefront")


def _stdout_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def set_level(level: str) -> None:
    """Apply a level name (e.g. "DEBUG") to the storefront logger and its handlers."""
    level = level.upper()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


if not logger.handlers:
    logger.addHandler(_stdout_handler())
set_level(os.getenv("LOG_LEVEL", "INFO"))

# Uvicorn and the root logger have their own handlers
logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child logger "storefront.<name>", or the storefront logger itself."""
    if name:
        return logger.getChild(name)
    return logger
