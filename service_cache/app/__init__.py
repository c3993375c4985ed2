"""
Response cache service package.

Puts a cache-aside layer in front of read endpoints, backed by a
key-value store with expiry, and offers exact-key and glob-pattern
invalidation for write paths.

Structure:
- app.main: FastAPI service, lifecycle of the shared store client, and
  the invalidation API.
- app.adapters: Key-value store client.
- app.caching: Key derivation, interceptor, serializers, invalidator and
  the ASGI middleware that mounts interceptors on path prefixes.
"""
