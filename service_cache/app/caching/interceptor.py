"""
Cache-aside interceptor for read handlers.
"""

import asyncio
import functools
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING, Union

from starlette.concurrency import run_in_threadpool

from shared.errors import SerializationError, StoreUnavailable
from shared.logging import get_logger
from .keys import DEFAULT_PREFIX, derive_key
from .serializers import JsonSerializer

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.store_client import StoreClient
    from shared.metrics import MetricsCollector


CACHEABLE_METHODS = frozenset({"GET"})

_MISS = object()


@dataclass(frozen=True)
class CacheRequest:
    """The parts of an inbound request that identify a cacheable read."""

    method: str
    path: str
    query: str = ""


@dataclass(frozen=True)
class WriteBackResult:
    """Outcome of storing a handler's output after a miss."""

    key: str
    stored: bool
    skipped: bool = False
    error: Optional[str] = None
    # Decoded form of what was stored, as a later hit would return it.
    value: Any = field(default=None, compare=False, repr=False)

    @property
    def outcome(self) -> str:
        if self.stored:
            return "stored"
        return "skipped" if self.skipped else "failed"


Handler = Callable[[CacheRequest], Union[Any, Awaitable[Any]]]


class CacheInterceptor:
    """Read-through cache in front of one downstream handler family.

    ``handle`` serves a stored payload on a hit and otherwise runs the
    handler and writes its output back with this mount point's ``ttl``.
    Store and serialization failures are logged and treated as misses. Once
    a value is stored, the miss returns it decoded from the stored payload,
    so a miss and the hits after it return equal output.
    """

    def __init__(
        self,
        store: "StoreClient",
        ttl: int,
        *,
        namespace: Optional[str] = None,
        prefix: str = DEFAULT_PREFIX,
        normalize_query: bool = False,
        serializer: Optional[Any] = None,
        metrics: Optional["MetricsCollector"] = None,
        methods: frozenset = CACHEABLE_METHODS,
    ):
        if ttl <= 0:
            raise ValueError("ttl must be a positive number of seconds")
        self.store = store
        self.ttl = int(ttl)
        self.namespace = namespace
        self.prefix = prefix
        self.normalize_query = normalize_query
        self.serializer = serializer or JsonSerializer()
        self.metrics = metrics
        self.methods = frozenset(m.upper() for m in methods)
        self.logger = get_logger("cache.interceptor")

    def key_for(self, request: CacheRequest) -> str:
        return derive_key(
            request.method,
            request.path,
            request.query,
            namespace=self.namespace,
            prefix=self.prefix,
            normalize=self.normalize_query,
        )

    def is_cacheable(self, request: CacheRequest) -> bool:
        return request.method.upper() in self.methods

    async def handle(self, request: CacheRequest, handler: Handler) -> Any:
        """Serve ``request`` from the cache or from ``handler``."""
        if not self.is_cacheable(request):
            self._record_lookup("bypass")
            return await self._invoke(handler, request)

        key = self.key_for(request)
        cached = await self._read(key)
        if cached is not _MISS:
            return cached

        body = await self._invoke(handler, request)

        result = await asyncio.shield(self._write_back(key, body))
        self._report_write_back(result)
        return result.value if result.stored else body

    def wrap(self, handler: Handler) -> Callable[[CacheRequest], Awaitable[Any]]:
        """Return a new handler that caches ``handler``'s output."""

        @functools.wraps(handler)
        async def cached_handler(request: CacheRequest) -> Any:
            return await self.handle(request, handler)

        return cached_handler

    async def _invoke(self, handler: Handler, request: CacheRequest) -> Any:
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
            return await handler(request)
        result = await run_in_threadpool(handler, request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _read(self, key: str) -> Any:
        try:
            data = await asyncio.shield(self.store.get(key))
        except StoreUnavailable as e:
            self.logger.warning("Cache read failed, serving from handler", key=key, error=e.message)
            self._record_lookup("error")
            return _MISS
        except Exception as e:
            self.logger.error("Unexpected cache read error", key=key, error=str(e), error_type=type(e).__name__)
            self._record_lookup("error")
            return _MISS

        if data is None:
            self.logger.debug("Cache miss", key=key)
            self._record_lookup("miss")
            return _MISS

        try:
            value = self.serializer.loads(data)
        except SerializationError as e:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=e.message)
            self._record_lookup("error")
            return _MISS

        self.logger.debug("Cache hit", key=key)
        self._record_lookup("hit")
        return value

    async def _write_back(self, key: str, body: Any) -> WriteBackResult:
        try:
            if not self.serializer.cacheable(body):
                return WriteBackResult(key=key, stored=False, skipped=True)
            payload = self.serializer.dumps(body)
            value = self.serializer.loads(payload)
            await self.store.set(key, payload, self.ttl)
        except (SerializationError, StoreUnavailable) as e:
            return WriteBackResult(key=key, stored=False, error=e.message)
        except Exception as e:
            return WriteBackResult(key=key, stored=False, error=f"{type(e).__name__}: {e}")
        return WriteBackResult(key=key, stored=True, value=value)

    def _report_write_back(self, result: WriteBackResult) -> None:
        if result.error:
            self.logger.warning("Cache write-back failed", key=result.key, error=result.error)
        elif result.stored:
            self.logger.debug("Cached response", key=result.key, ttl=self.ttl)
        if self.metrics:
            self.metrics.increment_counter(
                "cache_write_backs_total",
                namespace=self.namespace or "default",
                result=result.outcome,
            )

    def _record_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "cache_lookups_total",
                namespace=self.namespace or "default",
                result=result,
            )
