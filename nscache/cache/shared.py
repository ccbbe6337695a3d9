"""Process-wide default cache.

Module-level functions delegate to one lazily created ``RedisCache``
configured from the environment, for callers that do not want to pass a
cache object around.

Usage:
    >>> import nscache
    >>> nscache.set("namespace", "key", "value")
    True
    >>> nscache.get("namespace", "key")
    'value'
"""

import threading
from typing import Any

from nscache.cache.service import RedisCache

_default_cache: RedisCache | None = None
_lock = threading.Lock()


def get_cache() -> RedisCache:
    """Return the default cache, creating it on first use."""
    global _default_cache
    cache = _default_cache
    if cache is not None:
        return cache

    with _lock:
        if _default_cache is None:
            _default_cache = RedisCache()
        return _default_cache


def reset_cache() -> None:
    """Close and forget the default cache.

    The next call creates a new one, re-reading the environment.
    """
    global _default_cache
    with _lock:
        cache, _default_cache = _default_cache, None

    if cache is not None:
        cache.close()


def get(namespace: Any, key: Any) -> Any:
    """Retrieve ``key`` from ``namespace``. See ``RedisCache.get``."""
    return get_cache().get(namespace, key)


def set(
    namespace: Any,
    key: Any,
    value: Any,
    exptime: float | None = None,
    fire_and_forget: bool = False,
) -> bool | None:
    """Store ``value``. See ``RedisCache.set``."""
    return get_cache().set(namespace, key, value, exptime, fire_and_forget)


def set_nw(namespace: Any, key: Any, value: Any, exptime: float | None = None) -> None:
    """Store ``value`` without waiting for the reply. See ``RedisCache.set_nw``."""
    get_cache().set_nw(namespace, key, value, exptime)


def delete(namespace: Any, *keys: Any) -> int:
    """Delete ``keys`` from ``namespace``. See ``RedisCache.delete``."""
    return get_cache().delete(namespace, *keys)


def keys(namespace: Any) -> list[str]:
    """List keys in ``namespace``. See ``RedisCache.keys``."""
    return get_cache().keys(namespace)


def ttl(namespace: Any, key: Any) -> int:
    """Remaining TTL in seconds. See ``RedisCache.ttl``."""
    return get_cache().ttl(namespace, key)


def flushall() -> bool:
    """Delete every key on the server. See ``RedisCache.flushall``."""
    return get_cache().flushall()
