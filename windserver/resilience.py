"""
Retry helpers for calls to external services.

A NOMADS request that fails on a dropped connection or a timeout is retried
a few times with exponential backoff before it counts as a transport
failure. A clean non-2xx answer is never retried here: the harvest engine
interprets it as "not published yet" and moves on to the previous cycle.
"""
import functools
import logging
from typing import Callable, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
    exceptions: tuple = (Exception,),
):
    """
    Decorator for adding retry logic with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (1 = no retry)
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        exceptions: Tuple of exception types to retry on

    Usage:
        @with_retry(max_attempts=3, exceptions=(requests.ConnectionError,))
        def download():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return func(*args, **kwargs)

        return wrapper

    return decorator
