"""nscache - namespaced Redis cache.

A process-wide façade over one shared Redis connection with namespaced
keys and transparent serialization of structured values. The server is
selected with ``REDIS_CACHE_SERVER`` (default ``127.0.0.1:6379``).

Basic usage:
    >>> import nscache
    >>> nscache.set("namespace", "key", "value")
    True
    >>> nscache.get("namespace", "key")
    'value'
    >>> nscache.delete("namespace", "key")
    1
"""

from nscache.cache import CacheStats, RedisCache, SharedConnection, cache_key
from nscache.cache.shared import (
    delete,
    flushall,
    get,
    get_cache,
    keys,
    reset_cache,
    set,
    set_nw,
    ttl,
)
from nscache.core import (
    CacheSettings,
    CodecError,
    ConfigurationError,
    NSCacheError,
    StoreConnectionError,
    resolve_server_address,
)

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "RedisCache",
    "get_cache",
    "reset_cache",
    # Default cache operations
    "get",
    "set",
    "set_nw",
    "delete",
    "keys",
    "ttl",
    "flushall",
    # Building blocks
    "CacheStats",
    "SharedConnection",
    "cache_key",
    # Configuration
    "CacheSettings",
    "resolve_server_address",
    # Exceptions
    "NSCacheError",
    "ConfigurationError",
    "StoreConnectionError",
    "CodecError",
]
