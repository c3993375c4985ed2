"""
ASGI middleware that mounts cache interceptors on path prefixes.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.logging import get_logger
from .interceptor import CacheInterceptor, CacheRequest
from .keys import DEFAULT_PREFIX
from .serializers import CapturedResponse, ResponseSerializer

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.store_client import StoreClient
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class CacheRule:
    """Cache GET responses under ``prefix`` for ``ttl`` seconds."""

    prefix: str
    ttl: int
    namespace: Optional[str] = None

    def matches(self, path: str) -> bool:
        return path_under(self.prefix, path)


def path_under(prefix: str, path: str) -> bool:
    """True when ``path`` is ``prefix`` itself or nested below it."""
    base = prefix.rstrip("/")
    return not base or path == base or path.startswith(base + "/")


def rules_from_mapping(mapping: Dict[str, int]) -> List[CacheRule]:
    """Build rules from a ``{path_prefix: ttl}`` mapping (see ``CACHE_RULES``)."""
    return [CacheRule(prefix=prefix, ttl=int(ttl)) for prefix, ttl in mapping.items()]


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Caches downstream responses for paths covered by a :class:`CacheRule`.

    Each rule gets its own interceptor, so TTL and namespace are per mount
    point. Paths with no rule, paths under an ``exclude`` prefix, and methods
    the interceptor does not cache pass straight through untouched.
    """

    def __init__(
        self,
        app,
        store: "StoreClient",
        rules: Iterable[CacheRule],
        *,
        prefix: str = DEFAULT_PREFIX,
        normalize_query: bool = False,
        metrics: Optional["MetricsCollector"] = None,
        exclude: Iterable[str] = (),
    ):
        super().__init__(app)
        self.exclude = tuple(exclude)
        self.logger = get_logger("cache.middleware")
        serializer = ResponseSerializer()
        self._mounts: List[Tuple[CacheRule, CacheInterceptor]] = [
            (
                rule,
                CacheInterceptor(
                    store,
                    rule.ttl,
                    namespace=rule.namespace,
                    prefix=prefix,
                    normalize_query=normalize_query,
                    serializer=serializer,
                    metrics=metrics,
                ),
            )
            for rule in sorted(rules, key=lambda r: len(r.prefix), reverse=True)
        ]

    def interceptor_for(self, path: str) -> Optional[CacheInterceptor]:
        """Longest matching prefix wins."""
        if any(path_under(prefix, path) for prefix in self.exclude):
            return None
        for rule, interceptor in self._mounts:
            if rule.matches(path):
                return interceptor
        return None

    async def dispatch(self, request: Request, call_next):
        interceptor = self.interceptor_for(request.url.path)
        cache_request = CacheRequest(
            method=request.method,
            path=request.url.path,
            query=request.url.query,
        )
        if interceptor is None or not interceptor.is_cacheable(cache_request):
            return await call_next(request)

        async def downstream(_: CacheRequest) -> CapturedResponse:
            response = await call_next(request)
            return await capture_response(response)

        captured = await interceptor.handle(cache_request, downstream)
        return build_response(captured)


async def capture_response(response: Response) -> CapturedResponse:
    """Drain a downstream response into a :class:`CapturedResponse`."""
    chunks = []
    async for chunk in response.body_iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
    return CapturedResponse(
        status_code=response.status_code,
        body=b"".join(chunks),
        media_type=response.headers.get("content-type"),
        headers=dict(response.headers),
        raw_headers=list(response.raw_headers),
    )


def build_response(captured: CapturedResponse) -> Response:
    """Rebuild a response from a captured or cached payload."""
    if captured.raw_headers:
        # Response that was not stored: replay the original headers untouched.
        response = Response(content=captured.body, status_code=captured.status_code)
        response.raw_headers = list(captured.raw_headers)
        return response

    headers = {k: v for k, v in captured.headers.items() if k.lower() != "content-length"}
    return Response(
        content=captured.body,
        status_code=captured.status_code,
        headers=headers,
        media_type=captured.media_type,
    )
