"""
Library Mirror - Fetch Retry Logic
Exponential backoff retry for blob downloads
"""

import time
from typing import TypeVar, Callable
from functools import wraps

import requests

from core.errors import TransientNetworkError
from core.logger import log_warning, log_error

T = TypeVar('T')

# HTTP statuses worth another attempt; everything else fails immediately
RETRYABLE_STATUS_CODES = (408, 425, 429, 500, 502, 503, 504)


def is_retryable(error: requests.RequestException) -> bool:
    """Decide whether a failed request may succeed on a later attempt."""
    if isinstance(error, requests.HTTPError):
        response = error.response
        return response is not None and response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, (requests.ConnectionError, requests.Timeout))


def fetch_retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep
):
    """
    Decorator for retrying HTTP downloads with exponential backoff.

    Failures that survive every attempt (or are not retryable) are raised
    as TransientNetworkError so callers deal with a single failure type.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        backoff_multiplier: Multiplier for each retry
        max_delay: Maximum delay between retries
        sleep: Sleep function (replaced in tests)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except requests.RequestException as e:
                    if not is_retryable(e) or attempt >= max_retries:
                        if attempt > 0:
                            log_error(
                                f"Download failed after {attempt + 1} attempts: {e}"
                            )
                        raise TransientNetworkError(f"Download failed: {e}") from e

                    log_warning(
                        f"Download failed (attempt {attempt + 1}/{max_retries + 1}), "
                        f"retrying in {delay:.2f}s..."
                    )
                    sleep(delay)
                    delay = min(delay * backoff_multiplier, max_delay)

            raise TransientNetworkError(f"Max retries ({max_retries}) exhausted")

        return wrapper
    return decorator
