"""
Consumption Ledger — Optimistic locking retry decorator

Uses exponential backoff + jitter to handle StaleDataError.
StaleDataError occurs when the item's version_id was incremented by another
concurrent transaction between our read and our conditional write.
"""
import asyncio
import random
import functools
import logging

from app.core.config import get_settings
from app.core.exceptions import ConcurrencyConflictError

settings = get_settings()
logger = logging.getLogger(__name__)


class StaleDataError(Exception):
    """Raised when an optimistic lock conflict is detected:
    the version_id in the DB changed between our read and update,
    meaning another concurrent transaction won the race.
    """
    pass


def backoff_delay(attempt: int) -> float:
    """Exponential backoff: base * 2^attempt, capped, plus jitter (seconds)."""
    base_delay = settings.OPT_LOCK_BASE_DELAY_MS / 1000.0
    max_delay = settings.OPT_LOCK_MAX_DELAY_MS / 1000.0
    jitter = random.uniform(0, settings.OPT_LOCK_JITTER_MS / 1000.0)
    return min(base_delay * (2 ** attempt), max_delay) + jitter


def with_optimistic_retry(max_retries: int | None = None):
    """
    Decorator for async functions that perform optimistic-lock DB writes.
    On StaleDataError, re-runs the whole read/validate/write unit with
    exponential backoff + jitter. Exhaustion surfaces as ConcurrencyConflictError.

    Usage:
        @with_optimistic_retry()
        async def take_item(db, ...):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            _max = max_retries or settings.OPT_LOCK_MAX_RETRIES
            for attempt in range(1, _max + 1):
                try:
                    return await func(*args, **kwargs)
                except StaleDataError:
                    if attempt == _max:
                        logger.error(
                            "Optimistic lock conflict unresolved after %d retries for %s",
                            _max, func.__name__,
                        )
                        raise ConcurrencyConflictError(func.__name__, _max)
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "StaleDataError on attempt %d/%d in %s, retrying in %.3fs",
                        attempt, _max, func.__name__, delay,
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
