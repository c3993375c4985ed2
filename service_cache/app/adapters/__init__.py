"""
Adapters package for the cache service.

Contains the key-value store client. It encapsulates:

- Endpoint, credentials and pool settings
- The reconnect/backoff policy
- Error handling that maps store failures to shared errors
"""

from .store_client import StoreClient, StoreSettings

__all__ = [
    "StoreClient",
    "StoreSettings",
]
