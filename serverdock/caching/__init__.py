"""
Endpoint-keyed caches.

- KeyedStore: dictionary over serialized keys, with change notifications
- EndpointCache: KeyedStore keyed by Endpoint
- AsyncResourceCache: at most one in-flight load per endpoint
"""

from serverdock.caching.async_cache import AsyncResourceCache
from serverdock.caching.endpoint_cache import EndpointCache
from serverdock.caching.keyed_store import KeyedStore, dispose_value, is_disposable

__all__ = [
    "AsyncResourceCache",
    "EndpointCache",
    "KeyedStore",
    "dispose_value",
    "is_disposable",
]
