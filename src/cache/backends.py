"""Key/value backends that a fingerprint store can sit on.

A backend stores opaque bytes under string keys. It knows nothing about
records, hashing or targets; :mod:`cache.store` layers those on top.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from diskcache import Timeout

from cache.diskcache_factory import (
    DiskCacheSettings,
    diskcache_stats_snapshot,
    open_diskcache,
    release_diskcache,
    run_cache_maintenance,
)
from core.errors import CacheIOError

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (OSError, sqlite3.Error, Timeout)


@runtime_checkable
class CacheBackend(Protocol):
    """Narrow key/value contract consumed by the fingerprint store."""

    @property
    def location(self) -> str:
        """Return an identifier for where this backend keeps its data."""
        ...

    @property
    def thread_safe(self) -> bool:
        """Return whether concurrent calls from worker threads are allowed."""
        ...

    def get(self, key: str) -> bytes | None:
        """Return the payload for ``key`` or ``None`` when it is absent."""
        ...

    def set(self, key: str, payload: bytes) -> None:
        """Store ``payload`` under ``key``, replacing any previous payload."""
        ...

    def exists(self, key: str) -> bool:
        """Return whether ``key`` is present."""
        ...

    def list(self, prefix: str = "") -> frozenset[str]:
        """Return all keys starting with ``prefix``."""
        ...

    def delete(self, key: str) -> bool:
        """Delete ``key`` and return whether it existed."""
        ...

    def destroy(self) -> None:
        """Remove every key and any storage owned by the backend."""
        ...


class MemoryBackend:
    """Non-durable, lock-protected in-process backend."""

    def __init__(self, *, name: str = "memory") -> None:
        self._name = name
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def location(self) -> str:
        return f"memory://{self._name}"

    @property
    def thread_safe(self) -> bool:
        return True

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, payload: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(payload)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def list(self, prefix: str = "") -> frozenset[str]:
        with self._lock:
            return frozenset(key for key in self._data if key.startswith(prefix))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def destroy(self) -> None:
        with self._lock:
            self._data.clear()


class DiskCacheBackend:
    """Durable backend stored in a DiskCache directory.

    DiskCache serializes writers through SQLite, so the backend is safe to
    share between threads and between processes.
    """

    def __init__(self, path: Path | str, *, settings: DiskCacheSettings | None = None) -> None:
        self._path = Path(path)
        self._settings = settings or DiskCacheSettings()
        with self._guard("open"):
            self._cache = open_diskcache(self._path, self._settings)

    @property
    def location(self) -> str:
        return str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def thread_safe(self) -> bool:
        return True

    @contextmanager
    def _guard(self, operation: str, key: str | None = None) -> Iterator[None]:
        try:
            yield
        except _BACKEND_ERRORS as exc:
            target = f" key {key!r}" if key is not None else ""
            msg = f"DiskCache {operation} failed for{target} at {self._path}: {exc}"
            raise CacheIOError(msg) from exc

    def get(self, key: str) -> bytes | None:
        with self._guard("get", key):
            payload = self._cache.get(key, default=None, retry=True)
        if payload is None:
            return None
        return bytes(payload)

    def set(self, key: str, payload: bytes) -> None:
        with self._guard("set", key):
            self._cache.set(key, bytes(payload), retry=True)

    def exists(self, key: str) -> bool:
        with self._guard("exists", key):
            return key in self._cache

    def list(self, prefix: str = "") -> frozenset[str]:
        with self._guard("list"):
            return frozenset(
                key
                for key in self._cache.iterkeys()
                if isinstance(key, str) and key.startswith(prefix)
            )

    def delete(self, key: str) -> bool:
        with self._guard("delete", key):
            return bool(self._cache.delete(key, retry=True))

    def destroy(self) -> None:
        with self._guard("destroy"):
            release_diskcache(self._path)
            if self._path.exists():
                shutil.rmtree(self._path)
        logger.info("Destroyed cache directory %s", self._path)

    def verify(self) -> int:
        """Run a DiskCache consistency check and return the warning count.

        Returns
        -------
        int
            Count of consistency warnings reported by DiskCache.
        """
        with self._guard("check"):
            maintenance = run_cache_maintenance(self._cache, include_check=True)
        return maintenance.check_errors or 0

    def stats(self) -> dict[str, object]:
        """Return a stats snapshot of the underlying DiskCache.

        Returns
        -------
        dict[str, object]
            DiskCache volume and hit statistics.
        """
        with self._guard("stats"):
            return diskcache_stats_snapshot(self._cache)


__all__ = ["CacheBackend", "DiskCacheBackend", "MemoryBackend"]
