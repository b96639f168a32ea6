"""Bounded retry with exponential backoff for transient Graph failures."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from onedrive_sync.errors import NetworkError, ProtocolError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def is_transient(exc: Exception) -> bool:
    """Return True for failures that are safe to retry.

    Network errors and 5xx/429 protocol errors are transient. Auth errors
    and other protocol errors are not.
    """
    if isinstance(exc, NetworkError):
        return True
    if isinstance(exc, ProtocolError):
        return exc.retryable
    return False


def retry_with_backoff(
    func: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    should_retry: Callable[[Exception], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute a function with exponential backoff retry.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts after the first call.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        should_retry: Predicate deciding whether an exception is retried.
        sleep: Sleep function, replaceable in tests.

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail, or the first non-retryable one.
    """
    backoff = initial_backoff
    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if not should_retry(exc) or attempt >= max_retries:
                raise
            attempt += 1
            logger.warning(
                "[retry_with_backoff] attempt failed; attempt:%d;max_retries:%d;backoff:%.1f;error:%s",
                attempt,
                max_retries,
                backoff,
                exc,
            )
            sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)
