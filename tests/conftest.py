"""Pytest configuration and fixtures for nscache tests."""

from unittest.mock import Mock

import pytest
from redis import Redis

import nscache
from nscache.cache import RedisCache, SharedConnection
from nscache.core.config import CacheSettings


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep developer REDIS_CACHE_* variables and the default cache out of tests."""
    for var in (
        "REDIS_CACHE_SERVER",
        "REDIS_CACHE_DB",
        "REDIS_CACHE_PASSWORD",
        "REDIS_CACHE_RECONNECT_ATTEMPTS",
        "REDIS_CACHE_SERIALIZER",
        "REDIS_CACHE_ENVELOPE",
    ):
        monkeypatch.delenv(var, raising=False)

    yield

    nscache.reset_cache()


@pytest.fixture
def cache_settings():
    """Create cache settings for testing."""
    return CacheSettings(server="localhost:6379")


@pytest.fixture
def mock_redis():
    """Mocked synchronous Redis client."""
    client = Mock(spec=Redis)
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 0
    client.keys.return_value = []
    client.pttl.return_value = -2
    client.flushall.return_value = True
    return client


@pytest.fixture
def cache_service(cache_settings, mock_redis):
    """Create cache service backed by the mocked client."""
    connection = SharedConnection(cache_settings, factory=lambda settings: mock_redis)
    service = RedisCache(settings=cache_settings, connection=connection)

    yield service

    service.close()
