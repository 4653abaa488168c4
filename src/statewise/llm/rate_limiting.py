"""
Rate limiting and retry utilities for the Statewise LLM interface.

This module provides retry with exponential backoff for rate-limited model
calls, and helpers to quiet verbose provider logging.
"""

import asyncio
import inspect
import time
import logging
import warnings
from typing import Callable, Any
from functools import wraps

logger = logging.getLogger(__name__)


def is_rate_limit_error(error: Exception) -> bool:
    """Check if an error is a rate limit error by examining its message."""
    message = str(error).lower()
    return "rate limit" in message or "429" in message


class RateLimitHandler:
    """Handles rate limiting with exponential backoff."""

    def __init__(
        self, max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 60.0
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def wait_with_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        return delay

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        if not is_rate_limit_error(error):
            logger.error(f"Non-rate-limit error occurred: {str(error)}")
            return False
        if attempt >= self.max_retries:
            logger.error(f"Rate limit exceeded after {self.max_retries} retries")
            return False
        return True

    def handle_rate_limit(self, func: Callable, *args, **kwargs) -> Any:
        """
        Handle function execution with rate limit retry logic.

        Raises:
            Exception: If all retries are exhausted or the error is not a rate limit
        """
        for attempt in range(self.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self.wait_with_backoff(attempt)
                logger.warning(
                    f"Rate limit hit, waiting {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                )
                time.sleep(delay)

    async def ahandle_rate_limit(self, func: Callable, *args, **kwargs) -> Any:
        """Async counterpart of ``handle_rate_limit``."""
        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self.wait_with_backoff(attempt)
                logger.warning(
                    f"Rate limit hit, waiting {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)


def with_rate_limit_handling(
    max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 60.0
):
    """
    Decorator for adding rate limit handling to functions and coroutines.

    Args:
        max_retries: Maximum number of retries
        base_delay: Base delay for exponential backoff
        max_delay: Maximum delay between retries
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                handler = RateLimitHandler(max_retries, base_delay, max_delay)
                return await handler.ahandle_rate_limit(func, *args, **kwargs)

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            handler = RateLimitHandler(max_retries, base_delay, max_delay)
            return handler.handle_rate_limit(func, *args, **kwargs)

        return wrapper

    return decorator


def suppress_litellm_warnings():
    """Suppress verbose litellm warnings and debug output."""
    logging.getLogger("LiteLLM").setLevel(logging.ERROR)
    logging.getLogger("litellm").setLevel(logging.ERROR)
    logging.getLogger("openai").setLevel(logging.ERROR)
    logging.getLogger("httpx").setLevel(logging.ERROR)
    logging.getLogger("httpcore").setLevel(logging.ERROR)

    warnings.filterwarnings("ignore", category=DeprecationWarning, module="pydantic")
    warnings.filterwarnings("ignore", category=DeprecationWarning, module="httpx")
