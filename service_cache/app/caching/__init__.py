"""
Response caching package.

Provides the cache-aside interceptor used to reduce latency and load on
read endpoints, plus explicit invalidation for write paths. Caching is an
optimization only: a failing store never fails a request.
"""

from .interceptor import CacheInterceptor, CacheRequest, WriteBackResult
from .invalidator import CacheInvalidator
from .keys import derive_key, validate_pattern
from .middleware import CacheRule, ResponseCacheMiddleware

__all__ = [
    "CacheInterceptor",
    "CacheRequest",
    "WriteBackResult",
    "CacheInvalidator",
    "derive_key",
    "validate_pattern",
    "CacheRule",
    "ResponseCacheMiddleware",
]
