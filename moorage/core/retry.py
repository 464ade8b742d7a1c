"""Retry decorator for network operations with exponential backoff."""
import functools
import time
from typing import Tuple, Type

from moorage.core.logger import get_logger

logger = get_logger(__name__)


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Retry decorator with exponential backoff.

    The last failure is re-raised once ``max_attempts`` is exhausted.

    Example:
        @retry(max_attempts=3, delay=1, exceptions=(requests.RequestException,))
        def post(payload):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.debug(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise
                    logger.debug(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {wait:.1f}s: {e}"
                    )
                    time.sleep(wait)
                    wait *= backoff
                    attempt += 1

        return wrapper

    return decorator
