"""Namespaced Redis cache.

This package provides a thin façade over a single shared Redis connection
per process. Values are encoded transparently so structured data can be
stored, and keys are grouped into namespaces.

Key Features:
    - One lazily created connection per process, re-created after fork
    - Namespaced keys ("namespace::key")
    - Pickle or MessagePack serialization behind a format envelope
    - Millisecond expiry with pessimistic TTL rounding
    - Fire-and-forget writes

Usage:
    >>> from nscache.cache import RedisCache
    >>>
    >>> cache = RedisCache()
    >>> cache.set("users", "42", {"name": "Ada"}, exptime=60)
    True
    >>> cache.get("users", "42")
    {'name': 'Ada'}
    >>> cache.keys("users")
    ['42']
"""

from nscache.cache.codec import (
    MsgpackSerializer,
    PickleSerializer,
    Serializer,
    ValueCodec,
)
from nscache.cache.connection import SharedConnection, connect
from nscache.cache.keys import cache_key, key_pattern, namespace_prefix
from nscache.cache.models import CacheStats
from nscache.cache.service import RedisCache

__all__ = [
    "RedisCache",
    "CacheStats",
    "SharedConnection",
    "connect",
    "ValueCodec",
    "Serializer",
    "PickleSerializer",
    "MsgpackSerializer",
    "cache_key",
    "namespace_prefix",
    "key_pattern",
]
