"""
Retry and reconnect backoff for store connections.
"""

import asyncio
from typing import Any, Optional, Callable, Awaitable

from redis.backoff import AbstractBackoff

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 5,
                 base_delay: float = 0.05,
                 max_delay: float = 2.0,
                 exponential_base: float = 2.0,
                 backoff_strategy: str = "linear"):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.backoff_strategy = backoff_strategy


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before retry ``attempt`` (1-based).

    Depends only on the attempt number and the config, so every caller
    computes the same schedule without keeping counters around.
    """
    attempt = max(1, attempt)
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    elif config.backoff_strategy == "fixed":
        delay = config.base_delay
    else:
        delay = config.base_delay

    return max(0.0, min(delay, config.max_delay))


class CappedBackoff(AbstractBackoff):
    """redis-py backoff that delegates to :func:`calculate_delay`.

    The redis ``Retry`` policy passes the running failure count on every
    reconnect attempt; each one is logged so connection trouble is visible
    without touching request handling.
    """

    def __init__(self, config: RetryConfig, name: str = "store"):
        # redis-py deep-copies its Retry per connection; hold no logger here
        self.config = config
        self.name = name

    def reset(self):
        pass

    def compute(self, failures: int) -> float:
        delay = calculate_delay(failures, self.config)
        get_logger(f"{self.name}.reconnect").warning(
            "Store client reconnecting",
            attempt=failures,
            max_attempts=self.config.max_attempts,
            delay=delay,
        )
        return delay


def retry_on_exception(exceptions: tuple = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator for retrying async functions on exceptions."""

    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        async def wrapper(*args, **kwargs) -> Any:
            logger = get_logger(f"retry.{func.__name__}")

            for attempt in range(1, config.max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 1:
                        logger.info(
                            "Retry succeeded",
                            attempt=attempt,
                            function=func.__name__
                        )

                    return result

                except exceptions as e:
                    if attempt == config.max_attempts:
                        logger.error(
                            "All retry attempts exhausted",
                            attempt=attempt,
                            max_attempts=config.max_attempts,
                            function=func.__name__,
                            error=str(e)
                        )
                        raise RetryError(
                            f"Function {func.__name__} failed after {config.max_attempts} attempts",
                            last_exception=e,
                            attempts=config.max_attempts
                        ) from e

                    delay = calculate_delay(attempt, config)

                    logger.warning(
                        "Retry attempt failed, waiting before next attempt",
                        attempt=attempt,
                        delay=delay,
                        function=func.__name__,
                        error=str(e)
                    )

                    await asyncio.sleep(delay)

            raise RetryError(
                f"Function {func.__name__} was not attempted",
                last_exception=Exception("max_attempts must be at least 1"),
                attempts=0
            )

        return wrapper

    return decorator
