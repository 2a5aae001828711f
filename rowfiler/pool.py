"""Refcounted registry of shared connections keyed by data source and username."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .drivers import Connection, DriverRegistry, default_registry
from .errors import ConnectionFailedError
from .models import DataSource

LOG = logging.getLogger(__name__)

PoolKey = tuple[str, str]


@dataclass(slots=True)
class PoolEntry:
    """Shared handle for one key; ``handle`` is set iff ``refcount`` > 0."""

    handle: Connection | None = None
    refcount: int = 0


class ConnectionPool:
    """Hands out one physical connection per (datasource, username) pair.

    Each key gets its own lock the first time it is seen, and the lock lives
    as long as the pool. Dropping it when an entry reaches refcount 0 would
    let a waiter on the old lock and a newcomer on a fresh one act on the
    same key at once. The key space is the set of configured data sources and
    usernames, so this stays small.
    """

    def __init__(self, registry: DriverRegistry | None = None) -> None:
        self._registry = registry
        self._entries: dict[PoolKey, PoolEntry] = {}
        self._key_locks: dict[PoolKey, threading.Lock] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> DriverRegistry:
        if self._registry is None:
            self._registry = default_registry()
        return self._registry

    def acquire(self, source: DataSource) -> Connection:
        """Return the shared handle for ``source``, opening it on first use."""

        key = source.key
        with self._key_lock(key):
            entry = self._entries.setdefault(key, PoolEntry())
            if entry.handle is None:
                entry.handle = self._open(source)
                entry.refcount = 0
            entry.refcount += 1
            LOG.debug("Acquired shared connection", extra={"datasource": key[0], "refcount": entry.refcount})
            return entry.handle

    def acquire_private(self, source: DataSource) -> Connection:
        """Open a dedicated connection that never enters the shared map."""

        return self._open(source)

    def release(self, identifier: str, username: str | None) -> None:
        """Drop one reference; disconnect when the last one goes away."""

        key = (identifier, username or "")
        with self._key_lock(key):
            entry = self._entries.get(key)
            if entry is None or entry.refcount <= 0:
                LOG.warning("Release without a matching acquire", extra={"datasource": identifier})
                return
            entry.refcount -= 1
            LOG.debug("Released shared connection", extra={"datasource": identifier, "refcount": entry.refcount})
            if entry.refcount == 0:
                handle, entry.handle = entry.handle, None
                if handle is not None:
                    self._close(handle, identifier)

    def release_private(self, handle: Connection | None) -> None:
        """Close a private connection unconditionally."""

        if handle is not None:
            self._close(handle, None)

    def refcount(self, identifier: str, username: str | None) -> int:
        entry = self._entries.get((identifier, username or ""))
        return entry.refcount if entry else 0

    def handle(self, identifier: str, username: str | None) -> Connection | None:
        entry = self._entries.get((identifier, username or ""))
        return entry.handle if entry else None

    def keys(self) -> tuple[PoolKey, ...]:
        with self._lock:
            return tuple(self._entries)

    def close_all(self) -> None:
        """Disconnect every shared handle and zero the counts (shutdown helper)."""

        for key in self.keys():
            with self._key_lock(key):
                entry = self._entries[key]
                handle, entry.handle = entry.handle, None
                entry.refcount = 0
                if handle is not None:
                    self._close(handle, key[0])

    def _key_lock(self, key: PoolKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _open(self, source: DataSource) -> Connection:
        try:
            handle = self.registry.connect(source)
        except Exception as exc:
            raise ConnectionFailedError(
                f"Error while trying to access db server with datasource {source.identifier}: {exc}"
            ) from exc
        if handle is None:
            raise ConnectionFailedError(
                f"Error while trying to access db server with datasource {source.identifier}"
            )
        return handle

    @staticmethod
    def _close(handle: Connection, identifier: str | None) -> None:
        try:
            handle.close()
        except Exception:
            LOG.exception("Failed to close connection", extra={"datasource": identifier})
        else:
            LOG.info("Closed connection", extra={"datasource": identifier})


_default_pool: ConnectionPool | None = None
_default_pool_lock = threading.Lock()


def default_pool() -> ConnectionPool:
    """Process-wide pool used when an accessor is not given one explicitly."""

    global _default_pool
    with _default_pool_lock:
        if _default_pool is None:
            _default_pool = ConnectionPool()
        return _default_pool


__all__ = ["ConnectionPool", "PoolEntry", "PoolKey", "default_pool"]
