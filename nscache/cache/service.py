"""Namespaced Redis cache service."""

import logging
import os
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from types import TracebackType
from typing import Any

from redis import Redis

from nscache.cache.codec import ValueCodec
from nscache.cache.connection import SharedConnection
from nscache.cache.keys import cache_key, key_pattern, namespace_prefix
from nscache.cache.models import CacheStats
from nscache.core.config import CacheSettings

logger = logging.getLogger(__name__)

_instances: "weakref.WeakSet[RedisCache]" = weakref.WeakSet()


def _reinit_locks_in_child() -> None:
    for cache in list(_instances):
        cache._stats_lock = threading.Lock()
        cache._worker_lock = threading.Lock()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_reinit_locks_in_child)


class RedisCache:
    """Namespaced get/set/delete over one shared Redis connection.

    Keys are stored as ``"{namespace}::{key}"``. Values go through
    ``ValueCodec``, so anything the configured serializer can handle may be
    stored and is returned as an equal object.

    Error Handling:
        - Connection failure raises ``StoreConnectionError``
        - Command failures propagate as ``redis.exceptions.RedisError``
        - Fire-and-forget writes never raise command failures; those are
          logged at DEBUG and counted in ``stats.dropped_writes``. A
          connection that cannot be established still raises.

    Example:
        >>> cache = RedisCache()
        >>> cache.set("session", "abc", {"user": 42}, exptime=30)
        True
        >>> cache.get("session", "abc")
        {'user': 42}
        >>> cache.ttl("session", "abc")
        29
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        connection: SharedConnection | None = None,
        codec: ValueCodec | None = None,
    ):
        """Initialize cache service.

        Args:
            settings: Cache settings (read from environment when omitted)
            connection: Connection holder (default: new ``SharedConnection``)
            codec: Value codec (default: built from ``settings``)
        """
        self.settings = settings or CacheSettings()
        self.connection = connection or SharedConnection(self.settings)
        self.codec = codec or ValueCodec.from_settings(self.settings)
        self.stats = CacheStats()

        self._stats_lock = threading.Lock()
        self._worker_lock = threading.Lock()
        self._worker: tuple[int, ThreadPoolExecutor] | None = None
        _instances.add(self)

    @property
    def redis(self) -> Redis:
        """Redis client for the current process."""
        return self.connection.get()

    def get(self, namespace: Any, key: Any) -> Any:
        """Retrieve the value stored under ``key`` in ``namespace``.

        Returns:
            Decoded value, or None if the key does not exist

        Raises:
            CodecError: If the stored payload is malformed
        """
        name = cache_key(namespace, key)
        data = self.redis.get(name)

        with self._stats_lock:
            if data is None:
                self.stats.misses += 1
            else:
                self.stats.hits += 1
            self.stats.update_hit_rate()

        if data is None:
            logger.debug(f"Cache miss for {name}")
            return None

        return self.codec.decode(data)

    def set(
        self,
        namespace: Any,
        key: Any,
        value: Any,
        exptime: float | None = None,
        fire_and_forget: bool = False,
    ) -> bool | None:
        """Store ``value`` under ``key`` in ``namespace``.

        Args:
            namespace: Key namespace
            key: Key within the namespace
            value: Any value the codec can encode (None included)
            exptime: Expiry in seconds, fractions allowed. Truncated to whole
                milliseconds. None stores the key without expiry.
            fire_and_forget: Hand the write to a background worker and return
                immediately. Command errors are not observable.

        Returns:
            True once Redis acknowledges the write, None for fire-and-forget

        Raises:
            CodecError: If the value cannot be encoded
            StoreConnectionError: If the connection cannot be established

        Both are raised in the caller even when fire_and_forget is set.
        """
        name = cache_key(namespace, key)
        data = self.codec.encode(value)
        px = None if exptime is None else int(exptime * 1000)
        # Connect in the caller so connection failures are never swallowed
        client = self.redis

        if fire_and_forget:
            future = self._get_worker().submit(self._write, client, name, data, px)
            future.add_done_callback(self._on_background_write)
            return None

        return self._write(client, name, data, px)

    def set_nw(
        self, namespace: Any, key: Any, value: Any, exptime: float | None = None
    ) -> None:
        """Same as ``set`` but without waiting for the server's reply.

        If the server returns an error there is no way to catch it.
        """
        self.set(namespace, key, value, exptime, fire_and_forget=True)

    def delete(self, namespace: Any, *keys: Any) -> int:
        """Delete ``keys`` from ``namespace``.

        Returns:
            Number of keys actually removed
        """
        if not keys:
            return 0
        removed = self.redis.delete(*(cache_key(namespace, key) for key in keys))
        logger.debug(f"Deleted {removed}/{len(keys)} keys from namespace {namespace!r}")
        return int(removed)

    def keys(self, namespace: Any) -> list[str]:
        """List every key in ``namespace``, in the order Redis returns them."""
        prefix = namespace_prefix(namespace)
        names = self.redis.keys(key_pattern(namespace))
        # Non-UTF-8 names come back surrogate-escaped and can be passed to
        # get/delete unchanged
        return [
            name.decode("utf-8", errors="surrogateescape").removeprefix(prefix)
            for name in names
        ]

    def ttl(self, namespace: Any, key: Any) -> int:
        """Remaining time to live of ``key`` in whole seconds.

        Rounded down to the start of the second in which the key disappears,
        so the result never overstates the remaining life. Missing keys,
        expired keys and keys without expiry all return 0.
        """
        ms = self.redis.pttl(cache_key(namespace, key))
        return 0 if ms <= 0 else ms // 1000

    def flushall(self) -> bool:
        """Delete every key on the server, in all namespaces."""
        result = bool(self.redis.flushall())
        logger.info("Flushed all keys from Redis")
        return result

    def get_stats(self) -> CacheStats:
        """Get a snapshot of the cache statistics."""
        with self._stats_lock:
            return self.stats.model_copy()

    def close(self) -> None:
        """Drain pending fire-and-forget writes and close the connection."""
        with self._worker_lock:
            worker, self._worker = self._worker, None

        if worker is not None and worker[0] == os.getpid():
            worker[1].shutdown(wait=True)

        self.connection.reset()

    def __enter__(self) -> "RedisCache":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _write(self, client: Redis, name: str, data: bytes, px: int | None) -> bool:
        if px is None:
            result = bool(client.set(name, data))
        else:
            # PX: expire time in milliseconds
            result = bool(client.set(name, data, px=px))

        with self._stats_lock:
            self.stats.writes += 1
        return result

    def _get_worker(self) -> ThreadPoolExecutor:
        # Worker threads do not survive fork, so the executor is per process
        pid = os.getpid()
        worker = self._worker
        if worker is not None and worker[0] == pid:
            return worker[1]

        with self._worker_lock:
            if self._worker is None or self._worker[0] != pid:
                self._worker = (
                    pid,
                    ThreadPoolExecutor(max_workers=1, thread_name_prefix="nscache-nw"),
                )
            return self._worker[1]

    def _on_background_write(self, future: "Future[bool]") -> None:
        error = future.exception()
        if error is None:
            return

        logger.debug(f"Fire-and-forget write dropped: {error}")
        with self._stats_lock:
            self.stats.dropped_writes += 1
