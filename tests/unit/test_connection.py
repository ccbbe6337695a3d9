"""Unit tests for connection management with mocked Redis."""

import os
import signal
import threading
import time
from unittest.mock import ANY, Mock, patch

import pytest
from redis.exceptions import ConnectionError, TimeoutError

from nscache.cache.connection import SharedConnection, connect
from nscache.core.config import CacheSettings
from nscache.core.exceptions import StoreConnectionError


class TestConnect:
    """Test suite for connect()."""

    def test_connects_to_configured_server(self):
        """Test client is created for the resolved host and port."""
        settings = CacheSettings(server="cache.local:6390", db=2, reconnect_attempts=3)

        with patch("nscache.cache.connection.Redis") as mock_redis, patch(
            "nscache.cache.connection.Retry"
        ) as mock_retry:
            client = connect(settings)

        kwargs = mock_redis.call_args.kwargs
        assert kwargs["host"] == "cache.local"
        assert kwargs["port"] == 6390
        assert kwargs["db"] == 2
        assert kwargs["decode_responses"] is False
        assert kwargs["encoding_errors"] == "surrogateescape"
        assert kwargs["retry"] is mock_retry.return_value
        mock_retry.assert_called_once_with(ANY, 3)
        assert client is mock_redis.return_value
        client.ping.assert_called_once()

    def test_default_server_from_environment(self, monkeypatch):
        """Test connect() reads REDIS_CACHE_SERVER when no settings given."""
        monkeypatch.setenv("REDIS_CACHE_SERVER", "10.1.1.1:7001")

        with patch("nscache.cache.connection.Redis") as mock_redis:
            connect()

        assert mock_redis.call_args.kwargs["host"] == "10.1.1.1"
        assert mock_redis.call_args.kwargs["port"] == 7001

    @pytest.mark.parametrize(
        "error", [ConnectionError("Connection refused"), TimeoutError("timed out")]
    )
    def test_unreachable_server_raises(self, error):
        """Test connection failure raises StoreConnectionError."""
        settings = CacheSettings(server="10.0.0.9:6379")

        with patch("nscache.cache.connection.Redis") as mock_redis:
            mock_redis.return_value.ping.side_effect = error

            with pytest.raises(StoreConnectionError) as exc_info:
                connect(settings)

        assert "10.0.0.9:6379" in str(exc_info.value)
        assert exc_info.value.details == {"host": "10.0.0.9", "port": 6379}
        assert exc_info.value.__cause__ is error
        mock_redis.return_value.close.assert_called_once()


class TestSharedConnection:
    """Test suite for SharedConnection."""

    def test_lazy_creation(self):
        """Test nothing connects until first use."""
        factory = Mock()
        shared = SharedConnection(factory=factory)

        assert not shared.connected
        factory.assert_not_called()

        client = shared.get()

        assert client is factory.return_value
        assert shared.connected

    def test_reuses_client(self):
        """Test the same client is returned on every access."""
        factory = Mock(side_effect=lambda settings: Mock())
        shared = SharedConnection(factory=factory)

        assert shared.get() is shared.get()
        assert factory.call_count == 1

    def test_passes_settings_to_factory(self):
        """Test settings are handed to the factory."""
        settings = CacheSettings(server="a:1")
        factory = Mock()

        SharedConnection(settings, factory=factory).get()

        factory.assert_called_once_with(settings)

    def test_reconnects_after_fork(self):
        """Test a pid change discards the inherited client and reconnects."""
        parent_client, child_client = Mock(), Mock()
        factory = Mock(side_effect=[parent_client, child_client])
        shared = SharedConnection(factory=factory)

        with patch("nscache.cache.connection.os.getpid", return_value=100):
            assert shared.get() is parent_client

        with patch("nscache.cache.connection.os.getpid", return_value=200):
            assert shared.get() is child_client
            assert shared.get() is child_client

        assert factory.call_count == 2
        # Parent's sockets are left alone
        parent_client.close.assert_not_called()

    def test_failed_connect_not_cached(self):
        """Test a failed connect is retried on the next access."""
        client = Mock()
        factory = Mock(side_effect=[StoreConnectionError("down"), client])
        shared = SharedConnection(factory=factory)

        with pytest.raises(StoreConnectionError):
            shared.get()

        assert shared.get() is client

    def test_concurrent_first_use_creates_one_client(self):
        """Test racing threads share a single client."""

        def slow_factory(settings):
            time.sleep(0.05)
            return Mock()

        factory = Mock(side_effect=slow_factory)
        shared = SharedConnection(factory=factory)
        results = []

        threads = [
            threading.Thread(target=lambda: results.append(shared.get()))
            for _ in range(10)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert factory.call_count == 1
        assert len(results) == 10
        assert all(result is results[0] for result in results)

    def test_reset_closes_client(self):
        """Test reset closes the client and forgets it."""
        factory = Mock(side_effect=lambda settings: Mock())
        shared = SharedConnection(factory=factory)
        first = shared.get()

        shared.reset()

        first.close.assert_called_once()
        assert not shared.connected
        assert shared.get() is not first

    def test_reset_without_client(self):
        """Test reset is safe before first use."""
        shared = SharedConnection(factory=Mock())

        shared.reset()

        assert not shared.connected

    @pytest.mark.skipif(not hasattr(os, "fork"), reason="fork() not available")
    @pytest.mark.filterwarnings("ignore::DeprecationWarning")
    def test_fork_while_another_thread_connects(self):
        """Test a child forked mid-connect does not inherit the held lock."""
        parent_pid = os.getpid()
        entered = threading.Event()
        release = threading.Event()

        def factory(settings):
            if os.getpid() == parent_pid:
                entered.set()
                release.wait(5)
            return Mock()

        shared = SharedConnection(factory=factory)
        thread = threading.Thread(target=shared.get)
        thread.start()
        assert entered.wait(5)

        pid = os.fork()
        if pid == 0:
            code = 1
            try:
                # SIGALRM kills the child instead of hanging the suite
                signal.alarm(5)
                shared.get()
                code = 0
            finally:
                os._exit(code)

        release.set()
        thread.join()
        _, status = os.waitpid(pid, 0)

        assert os.WIFEXITED(status)
        assert os.WEXITSTATUS(status) == 0
        assert shared.connected
