"""Utility functions for Mail Mirror."""

import asyncio
import inspect
import logging
import time
from functools import wraps
from typing import Any, Callable, TypeVar

import structlog

from mail_mirror.config import Settings

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(settings: Settings) -> None:
    """Configure structlog filtering from `settings.log_level`."""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def retry_on_failure(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Decorator to retry a function on failure with exponential backoff.

    Works for plain functions and coroutine functions. Only exceptions that
    are instances of `retry_on` are retried; anything else propagates at once.

    Args:
        max_retries: Maximum number of retry attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        retry_on: Exception types that trigger a retry.

    Returns:
        Decorated function with retry logic.
    """

    def _log_attempt(func: Callable[..., Any], attempt: int, current_delay: float, exc: BaseException) -> None:
        if attempt < max_retries:
            logger.warning(
                "function_retry",
                function=func.__name__,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=current_delay,
                error=str(exc),
            )
        else:
            logger.error(
                "function_retry_exhausted",
                function=func.__name__,
                attempts=max_retries + 1,
                error=str(exc),
            )

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                current_delay = delay
                for attempt in range(max_retries + 1):
                    try:
                        return await func(*args, **kwargs)
                    except retry_on as e:
                        _log_attempt(func, attempt, current_delay, e)
                        if attempt >= max_retries:
                            raise
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff

            return async_wrapper  # type: ignore

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    _log_attempt(func, attempt, current_delay, e)
                    if attempt >= max_retries:
                        raise
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper  # type: ignore

    return decorator
