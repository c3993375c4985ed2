"""
Explicit cache eviction for write paths.
"""

from typing import Optional, TYPE_CHECKING

from shared.errors import CacheLayerException
from shared.logging import get_logger
from .keys import DEFAULT_PREFIX, validate_pattern

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.store_client import StoreClient
    from shared.metrics import MetricsCollector


class CacheInvalidator:
    """Removes cached responses after the data behind them changed.

    Failures are raised to the caller (``StoreUnavailable`` or
    ``InvalidPattern``); whether to retry or carry on with stale entries
    until their TTL runs out is the caller's decision.
    """

    def __init__(
        self,
        store: "StoreClient",
        *,
        prefix: str = DEFAULT_PREFIX,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.prefix = prefix
        self.metrics = metrics
        self.logger = get_logger("cache.invalidator")

    async def invalidate_key(self, key: str) -> int:
        """Delete exactly ``key``. Returns 1 if it existed, else 0."""
        try:
            deleted = await self.store.delete(key)
        except CacheLayerException as e:
            self._failed("key", e, key=key)
            raise

        self._record("key", "ok")
        if deleted:
            self.logger.info("Invalidated cache key", key=key)
        return deleted

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern`` in one batch.

        Returns the number of keys deleted; 0 when nothing matched.
        """
        try:
            validate_pattern(pattern)
            keys = await self.store.list_keys(pattern)
            if not keys:
                self._record("pattern", "ok")
                return 0
            deleted = await self.store.delete(*keys)
        except CacheLayerException as e:
            self._failed("pattern", e, pattern=pattern)
            raise

        self._record("pattern", "ok")
        self.logger.info("Invalidated cache pattern", pattern=pattern, matched=len(keys), deleted=deleted)
        return deleted

    async def invalidate_namespace(self, namespace: str) -> int:
        """Delete every entry cached under a mount point's namespace."""
        return await self.invalidate_by_pattern(f"{self.prefix}{namespace}:*")

    async def invalidate_all(self) -> int:
        """Delete every key under the cache prefix; other keys are untouched."""
        pattern = f"{self.prefix}*"
        try:
            keys = await self.store.list_keys(pattern)
            deleted = await self.store.delete(*keys) if keys else 0
        except CacheLayerException as e:
            self._failed("all", e, pattern=pattern)
            raise

        self._record("all", "ok")
        self.logger.info("Cleared response cache", pattern=pattern, deleted=deleted)
        return deleted

    def _failed(self, kind: str, error: CacheLayerException, **context) -> None:
        self.logger.error(
            "Cache invalidation failed",
            kind=kind,
            code=error.code,
            error=error.message,
            **context,
        )
        self._record(kind, "error")

    def _record(self, kind: str, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_invalidations_total", kind=kind, result=result)
