"""
Key-value store client for the response cache.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.errors import StoreUnavailable
from shared.logging import get_logger
from shared.retry import CappedBackoff, RetryConfig, RetryError, retry_on_exception

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class StoreSettings:
    """Connection settings for the key-value store."""

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    url: Optional[str] = None
    socket_timeout: float = 5.0
    connect_timeout: float = 5.0
    max_connections: int = 50
    retry_base_delay: float = 0.05
    retry_max_delay: float = 2.0
    retry_max_attempts: int = 5

    @classmethod
    def from_config(cls, config: "BaseConfig") -> "StoreSettings":
        return cls(
            host=config.redis_host,
            port=config.redis_port,
            password=config.redis_password,
            db=config.redis_db,
            url=config.redis_url,
            socket_timeout=config.socket_timeout,
            connect_timeout=config.connect_timeout,
            max_connections=config.max_connections,
            retry_base_delay=config.retry_base_delay,
            retry_max_delay=config.retry_max_delay,
            retry_max_attempts=config.retry_max_attempts,
        )

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_strategy="linear",
        )

    def describe(self) -> str:
        """Endpoint description safe for logs (no credentials)."""
        if self.url:
            return self.url.split("@")[-1]
        return f"{self.host}:{self.port}/{self.db}"


class StoreClient:
    """Shared handle to the key-value store.

    Constructed once at startup and handed to every component that needs
    the store. The underlying redis client keeps a connection pool, so one
    instance serves any number of concurrent requests. Every primitive
    raises :class:`StoreUnavailable` on failure instead of leaking redis
    exceptions to the caller.
    """

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
        name: str = "cache",
    ):
        self.settings = settings or StoreSettings()
        self.metrics = metrics
        self.logger = get_logger(f"{name}.store")
        self._name = name
        self._redis: Optional[redis.Redis] = None

    @classmethod
    def from_config(cls, config: "BaseConfig", **kwargs) -> "StoreClient":
        return cls(StoreSettings.from_config(config), **kwargs)

    def _build_redis(self) -> redis.Redis:
        """Create the redis client with the reconnect policy attached."""
        settings = self.settings
        retry = Retry(
            CappedBackoff(settings.retry_config, name=self._name),
            settings.retry_max_attempts,
            supported_errors=(RedisConnectionError, RedisTimeoutError, OSError),
        )
        options = dict(
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.connect_timeout,
            max_connections=settings.max_connections,
            retry=retry,
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
            health_check_interval=30,
        )
        if settings.url:
            return redis.from_url(settings.url, **options)
        return redis.Redis(
            host=settings.host,
            port=settings.port,
            password=settings.password,
            db=settings.db,
            **options,
        )

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection, creating the pool lazily."""
        if self._redis is None:
            self._redis = self._build_redis()
        return self._redis

    async def start(self) -> None:
        """Connect and verify the store answers, retrying with backoff."""
        ping = retry_on_exception(
            (RedisError, OSError),
            self.settings.retry_config,
        )(self._ping)
        try:
            await ping()
        except RetryError as e:
            self.logger.error(
                "Store client failed to connect",
                endpoint=self.settings.describe(),
                attempts=e.attempts,
                error=str(e.last_exception),
            )
            raise StoreUnavailable(
                "Could not connect to store",
                {"endpoint": self.settings.describe(), "error": str(e.last_exception)},
            ) from e

        self.logger.info("Store client connected", endpoint=self.settings.describe())

    async def _ping(self) -> bool:
        return await self._get_redis().ping()

    async def close(self) -> None:
        """Release the connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Store client closed", endpoint=self.settings.describe())

    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for ``key``, or None when absent."""
        async with self._operation("get", key=key):
            return await self._get_redis().get(key)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store ``value`` under ``key`` with an expiry of ``ttl`` seconds."""
        if ttl <= 0:
            raise ValueError("ttl must be a positive number of seconds")
        async with self._operation("set", key=key):
            await self._get_redis().set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys in one command; returns how many existed."""
        if not keys:
            return 0
        async with self._operation("delete", count=len(keys)):
            return await self._get_redis().delete(*keys)

    async def list_keys(self, pattern: str) -> List[str]:
        """Return every key matching the glob ``pattern``."""
        async with self._operation("list_keys", pattern=pattern):
            keys = await self._get_redis().keys(pattern)
        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys]

    async def health_check(self) -> bool:
        """Check store health."""
        try:
            return bool(await self._ping())
        except (RedisError, OSError) as e:
            self.logger.warning("Store health check failed", error=str(e))
            return False

    def _operation(self, operation: str, **context) -> "_StoreOperation":
        return _StoreOperation(self, operation, context)

    def _record_error(self, operation: str, error: BaseException, context: dict) -> None:
        self.logger.error(
            "Store client error",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )
        if self.metrics:
            self.metrics.increment_counter("store_errors_total", operation=operation)


class _StoreOperation:
    """Times one store round-trip and translates its failures."""

    def __init__(self, client: StoreClient, operation: str, context: dict):
        self.client = client
        self.operation = operation
        self.context = context
        self._start = 0.0

    async def __aenter__(self):
        self._start = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.client.metrics:
            self.client.metrics.observe_histogram(
                "store_operation_duration_seconds",
                time.perf_counter() - self._start,
                operation=self.operation,
            )
        if exc is None or not isinstance(exc, (RedisError, OSError)):
            return False

        self.client._record_error(self.operation, exc, self.context)
        raise StoreUnavailable(
            f"Store {self.operation} failed",
            {"operation": self.operation, "error": str(exc)},
        ) from exc
