"""Retry for transient collaborator failures (HTTP errors, timeouts)."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")

MAX_DELAY_SEC = 30.0


def backoff_delay(attempt: int, delay_sec: float, backoff: bool = True) -> float:
    """Wait before retry number attempt (0-based); doubles per attempt, capped at MAX_DELAY_SEC."""
    if delay_sec <= 0:
        return 0.0
    return min(delay_sec * (2**attempt) if backoff else delay_sec, MAX_DELAY_SEC)


def with_retry(
    fn: Callable[[], T],
    max_attempts: int = 3,
    delay_sec: float = 2.0,
    backoff: bool = True,
    retry_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """
    Call fn up to max_attempts times, retrying only on retry_exceptions.
    The last exception propagates unchanged. sleep is injectable for tests.
    """
    attempts = max(1, max_attempts)
    attempt = 0
    while True:
        try:
            return fn()
        except retry_exceptions as e:
            attempt += 1
            if attempt >= attempts:
                logger.error("%s failed after %s attempts: %s", label, attempts, e)
                raise
            wait = backoff_delay(attempt - 1, delay_sec, backoff)
            logger.warning("%s failed (attempt %s/%s), retrying in %.2fs: %s", label, attempt, attempts, wait, e)
            if wait:
                sleep(wait)
