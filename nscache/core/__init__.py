"""Core infrastructure for nscache."""

from nscache.core.config import CacheSettings, resolve_server_address
from nscache.core.exceptions import (
    CodecError,
    ConfigurationError,
    NSCacheError,
    StoreConnectionError,
)

__all__ = [
    "CacheSettings",
    "resolve_server_address",
    "NSCacheError",
    "ConfigurationError",
    "StoreConnectionError",
    "CodecError",
]
