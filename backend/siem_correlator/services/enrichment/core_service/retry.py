# backend/siem_correlator/services/enrichment/core_service/retry.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_retryable_exception(e: Exception) -> bool:
    """Transport failures and throttling / upstream 5xx are worth another try."""
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(e, httpx.TransportError)


async def async_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.6,
    max_delay: float = 4.0,
    jitter: float = 0.25,
    retry_if: Callable[[Exception], bool] = is_retryable_exception,
) -> T:
    last_exc: Optional[Exception] = None

    for i in range(attempts):
        try:
            return await fn()
        except Exception as e:
            last_exc = e
            if i == attempts - 1 or not retry_if(e):
                raise

            # exponential backoff + jitter
            delay = min(max_delay, base_delay * (2 ** i))
            delay = delay * (1.0 + random.uniform(-jitter, jitter))
            logger.debug("Retrying after %s (attempt %d/%d, %.2fs)", type(e).__name__, i + 1, attempts, delay)
            await asyncio.sleep(max(0.0, delay))

    # should never reach
    raise last_exc or RuntimeError("async_retry failed without exception")
