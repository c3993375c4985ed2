"""
Response cache service.

Hosts the cache layer in front of read endpoints and exposes the
invalidation API used by write paths.
"""

from typing import Any, Dict, List, Optional

from fastapi import Query
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import StoreUnavailable
from .adapters.store_client import StoreClient
from .caching.invalidator import CacheInvalidator
from .caching.keys import validate_pattern
from .caching.middleware import CacheRule, ResponseCacheMiddleware, rules_from_mapping


# Served by this service itself; never cached, whatever CACHE_RULES says.
SERVICE_PATHS = ("/health", "/metrics", "/api/v1/cache")


class InvalidateRequest(BaseModel):
    """Body of a pattern invalidation call."""

    pattern: str


class CacheService(BaseService):
    """Cache layer service implementation.

    Owns the single :class:`StoreClient` for the process: it is built here,
    connected on startup, shared by the middleware and the invalidator, and
    closed on shutdown.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[StoreClient] = None,
        rules: Optional[List[CacheRule]] = None,
    ):
        config = config or get_config("cache", 8000)
        # Needed by _setup_middleware, which runs inside BaseService.__init__
        self.config = config
        self.rules = rules if rules is not None else rules_from_mapping(config.cache_rules)
        self.store = store
        super().__init__("cache", config.port, config=config)

        self.invalidator = CacheInvalidator(
            self.store,
            prefix=config.cache_key_prefix,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            try:
                await self.store.start()
            except StoreUnavailable as e:
                # Requests are still served, just without caching.
                self.logger.error("Starting without cache store", error=e.message, details=e.details)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.close()

        self._setup_cache_routes()

    def _setup_middleware(self):
        """Mount the response cache inside the request timing middleware."""
        if self.store is None:
            self.store = StoreClient.from_config(self.config, metrics=self.metrics)
        if self.rules:
            self.app.add_middleware(
                ResponseCacheMiddleware,
                store=self.store,
                rules=self.rules,
                prefix=self.config.cache_key_prefix,
                normalize_query=self.config.cache_normalize_query,
                metrics=self.metrics,
                exclude=SERVICE_PATHS,
            )
            self.logger.info(
                "Response cache mounted",
                rules=[{"prefix": r.prefix, "ttl": r.ttl, "namespace": r.namespace} for r in self.rules],
            )
        super()._setup_middleware()

    def _setup_cache_routes(self):
        """Set up cache administration routes."""

        @self.app.get("/api/v1/cache/keys")
        async def list_cache_keys(pattern: Optional[str] = Query(default=None)) -> Dict[str, Any]:
            """List cached keys matching a glob pattern."""
            pattern = validate_pattern(pattern or f"{self.config.cache_key_prefix}*")
            keys = await self.store.list_keys(pattern)
            return {"pattern": pattern, "count": len(keys), "keys": sorted(keys)}

        @self.app.delete("/api/v1/cache/keys/{key:path}")
        async def invalidate_cache_key(key: str) -> Dict[str, Any]:
            """Invalidate exactly one cache key."""
            deleted = await self.invalidator.invalidate_key(key)
            return {"key": key, "deleted": deleted}

        @self.app.post("/api/v1/cache/invalidate")
        async def invalidate_cache_pattern(body: InvalidateRequest) -> Dict[str, Any]:
            """Invalidate every key matching a glob pattern."""
            deleted = await self.invalidator.invalidate_by_pattern(body.pattern)
            return {"pattern": body.pattern, "deleted": deleted}

        @self.app.delete("/api/v1/cache")
        async def clear_cache() -> Dict[str, Any]:
            """Invalidate every cached response."""
            deleted = await self.invalidator.invalidate_all()
            return {"pattern": f"{self.config.cache_key_prefix}*", "deleted": deleted}

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"store": "ok" if await self.store.health_check() else "unavailable"}


def create_app():
    """Create FastAPI application."""
    service = CacheService()
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
