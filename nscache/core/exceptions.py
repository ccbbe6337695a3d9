"""Exception hierarchy for nscache.

This module defines custom exceptions for the failure modes of the
cache façade. Errors raised by Redis for individual commands are not
wrapped; they propagate as ``redis.exceptions.RedisError``.
"""

from typing import Any


class NSCacheError(Exception):
    """Base exception for all nscache errors."""

    code: str = "NSCACHE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(NSCacheError):
    """Configuration error (malformed server address, unsupported codec mode)."""

    code: str = "CONFIGURATION_ERROR"


class StoreConnectionError(NSCacheError):
    """Connection to the Redis server could not be established."""

    code: str = "STORE_CONNECTION_FAILED"


class CodecError(NSCacheError):
    """Stored payload claims to be serialized but cannot be decoded."""

    code: str = "CODEC_ERROR"
