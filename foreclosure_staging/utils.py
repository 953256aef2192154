# foreclosure_staging/utils.py
"""Logging setup, UTC clock and the retry decorator used by the scraper adapters."""
import logging
import time
from datetime import datetime, timezone
from functools import wraps

from .settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def get_logger(name="foreclosure-staging", level=None):
    """Root-configured logger; ``level`` defaults to LOG_LEVEL from settings."""
    level = (level or settings.log_level).upper()
    logging.basicConfig(format=LOG_FORMAT, level=getattr(logging, level, logging.INFO))
    return logging.getLogger(name)


logger = get_logger()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retry(exceptions, tries=3, delay=1.0, backoff=2.0, max_delay=30.0, sleep=time.sleep):
    """Retry a flaky upstream call on ``exceptions``, backing off up to ``max_delay``.

    The last attempt's exception propagates unchanged so adapters can map it
    to SourceFetchError themselves.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, tries):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    logger.warning(
                        "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                        func.__name__, attempt, tries, exc, wait,
                    )
                    sleep(wait)
                    wait = min(wait * backoff, max_delay)
            return func(*args, **kwargs)
        return wrapper
    return decorator
