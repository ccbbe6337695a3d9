"""Redis connection management.

One Redis client is shared by everything in a process. Network connections
do not survive ``fork()``, so the client remembers the pid that created it
and is replaced transparently the first time it is used from a child
process.

Usage:
    >>> shared = SharedConnection()
    >>> shared.get().ping()
    True
"""

import logging
import os
import threading
import weakref
from collections.abc import Callable

from redis import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError
from redis.retry import Retry

from nscache.core.config import CacheSettings, resolve_server_address
from nscache.core.exceptions import StoreConnectionError

logger = logging.getLogger(__name__)


def connect(settings: CacheSettings | None = None) -> Redis:
    """Open a new connection to the configured Redis server.

    Transient failures are retried ``settings.reconnect_attempts`` times with
    exponential backoff. The connection is verified with ``PING`` before it
    is returned.

    Args:
        settings: Cache settings. Read from the environment when omitted.

    Returns:
        Connected Redis client (``decode_responses=False``, values are bytes)

    Raises:
        StoreConnectionError: Server unreachable after all reconnect attempts
    """
    if settings is None:
        settings = CacheSettings()

    host, port = resolve_server_address(settings)
    client = Redis(
        host=host,
        port=port,
        db=settings.db,
        password=settings.password,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_connect_timeout,
        retry=Retry(ExponentialBackoff(), settings.reconnect_attempts),
        retry_on_error=[ConnectionError, TimeoutError],
        decode_responses=False,
        # Key names that are not valid UTF-8 round-trip through str
        encoding_errors="surrogateescape",
    )

    try:
        client.ping()
    except (ConnectionError, TimeoutError) as e:
        client.close()
        logger.error(f"Cannot connect to Redis at {host}:{port}: {e}")
        raise StoreConnectionError(
            f"Cannot connect to server {host}:{port}",
            details={"host": host, "port": port},
        ) from e

    logger.info(f"Connected to Redis at {host}:{port} (db {settings.db})")
    return client


_instances: "weakref.WeakSet[SharedConnection]" = weakref.WeakSet()


def _reinit_locks_in_child() -> None:
    # A lock held by another thread at fork time is never released in the
    # child, so every holder gets a fresh one.
    for shared in list(_instances):
        shared._lock = threading.Lock()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_reinit_locks_in_child)


class SharedConnection:
    """Lazily created, fork-aware holder for one Redis client.

    The client is created on first ``get()``. Every ``get()`` compares the
    current pid with the creator's pid; a mismatch means the process forked,
    so the inherited client is dropped and a new one is opened. Creation is
    serialised with a double-checked lock so concurrent first use opens a
    single client.

    Args:
        settings: Cache settings passed to ``factory``
        factory: Callable opening a new client (default ``connect``)
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        factory: Callable[[CacheSettings | None], Redis] = connect,
    ):
        self.settings = settings
        self._factory = factory
        # (creator pid, client), replaced atomically
        self._state: tuple[int, Redis] | None = None
        self._lock = threading.Lock()
        _instances.add(self)

    def get(self) -> Redis:
        """Return the client for the current process, connecting if needed.

        Raises:
            StoreConnectionError: If a new connection cannot be established
        """
        state = self._state
        if state is not None and state[0] == os.getpid():
            return state[1]

        with self._lock:
            pid = os.getpid()
            state = self._state
            if state is not None and state[0] == pid:
                return state[1]

            if state is not None:
                # Inherited from the parent. Dropped without closing: the
                # sockets still belong to the parent process.
                logger.info(
                    f"Process {pid} forked from {state[0]}, reconnecting to Redis"
                )
                self._state = None

            client = self._factory(self.settings)
            self._state = (pid, client)
            return client

    @property
    def connected(self) -> bool:
        """Whether a client exists for the current process."""
        state = self._state
        return state is not None and state[0] == os.getpid()

    def reset(self) -> None:
        """Close and forget the client (used on shutdown and in tests)."""
        with self._lock:
            state, self._state = self._state, None

        if state is not None and state[0] == os.getpid():
            state[1].close()
            logger.info("Redis connection closed")
