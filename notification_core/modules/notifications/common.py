"""Shared helpers and state for the notifications domain."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

from cachetools import TTLCache

from notification_core.core.config import settings

logger = logging.getLogger("notification_core.notifications")

# Intents currently being delivered by this process; guards overlapping dispatch passes.
in_flight_cache: TTLCache = TTLCache(maxsize=10000, ttl=settings.in_flight_claim_ttl_seconds)

F = TypeVar("F", bound=Callable[..., Any])


def handle_async_errors(func: F) -> F:
    """Log errors from async helpers instead of swallowing them."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            logger.error("Error in %s: %s", func.__name__, exc)
            raise

    return wrapper  # type: ignore[return-value]


__all__ = ["handle_async_errors", "in_flight_cache", "logger"]
