"""Retry logic for outbound calls to the Gripp API.

Gripp throttles aggressively during bulk syncs and occasionally answers with a
502 from its load balancer. Calls are retried with exponential backoff and
jitter so parallel sync jobs do not hammer the API in lockstep.
"""

import functools
import logging
import random
import time
from typing import Any, Callable, Optional, Tuple, Type

from requests.exceptions import ConnectionError, HTTPError, Timeout

logger = logging.getLogger(__name__)


DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 60.0  # seconds
DEFAULT_BACKOFF_FACTOR = 2.0

RETRIABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

RETRIABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    Timeout,
    ConnectionError,
    HTTPError,  # filtered by status code below
)


def exponential_backoff(
    attempt: int, base_delay: float, max_delay: float, backoff_factor: float
) -> float:
    """Calculate exponential backoff with jitter.

    Args:
        attempt: Current retry attempt (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Backoff multiplier

    Returns:
        Delay in seconds with +/-25% jitter applied
    """
    delay = min(base_delay * (backoff_factor**attempt), max_delay)
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return max(0, delay + jitter)


def is_retriable_error(
    exception: Exception, status_codes: Optional[set] = None
) -> bool:
    """Determine if an exception is worth retrying.

    Timeouts and connection errors always are. HTTP errors only when the status
    code is in ``status_codes`` (defaults to ``RETRIABLE_STATUS_CODES``).
    """
    status_codes = status_codes or RETRIABLE_STATUS_CODES

    if isinstance(exception, HTTPError):
        response = getattr(exception, "response", None)
        return response is not None and response.status_code in status_codes

    return isinstance(exception, (Timeout, ConnectionError))


def retry_with_backoff(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    retriable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    retriable_status_codes: Optional[set] = None,
):
    """Decorator to retry a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Backoff multiplier (default 2.0 = exponential)
        retriable_exceptions: Tuple of exception types to consider for retry
        retriable_status_codes: Set of HTTP status codes to retry

    Example:
        @retry_with_backoff(max_retries=3, base_delay=1.0)
        def fetch_page():
            response = requests.post(GRIPP_URL, json=payload, timeout=30)
            response.raise_for_status()
            return response.json()
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            exceptions_to_retry = retriable_exceptions or RETRIABLE_EXCEPTIONS

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except exceptions_to_retry as e:
                    should_retry = is_retriable_error(e, retriable_status_codes)

                    if attempt >= max_retries or not should_retry:
                        logger.error(
                            f"{func.__name__} failed after {attempt + 1} attempts: {e}"
                        )
                        raise

                    delay = exponential_backoff(
                        attempt, base_delay, max_delay, backoff_factor
                    )
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)

        return wrapper

    return decorator
