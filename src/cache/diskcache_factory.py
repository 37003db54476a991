"""DiskCache configuration and factory helpers."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TypedDict, cast

from diskcache import Cache

from serde_msgspec import StructBaseStrict
from utils.env_utils import env_path
from utils.hashing import hash_json_canonical

CACHE_DIR_ENV = "TARGETFLOW_CACHE_DIR"
DEFAULT_CACHE_DIRNAME = ".targetflow"


def default_cache_root() -> Path:
    """Return the default cache location.

    Returns
    -------
    pathlib.Path
        ``$TARGETFLOW_CACHE_DIR`` when set, otherwise ``./.targetflow``.
    """
    root = env_path(CACHE_DIR_ENV)
    return root if root is not None else Path.cwd() / DEFAULT_CACHE_DIRNAME


class DiskCacheSettings(StructBaseStrict, frozen=True):
    """Settings for DiskCache instances backing a fingerprint store.

    Eviction is disabled by default: a record silently culled from the store
    would turn a current node into a never-built one.
    """

    size_limit_bytes: int = 2**40
    cull_limit: int = 0
    eviction_policy: str = "none"
    statistics: bool = False
    timeout_seconds: float = 60.0
    disk_min_file_size: int | None = None
    sqlite_journal_mode: str | None = "wal"
    sqlite_synchronous: str | None = None

    def fingerprint_payload(self) -> Mapping[str, object]:
        """Return canonical payload for settings fingerprinting.

        Returns
        -------
        Mapping[str, object]
            Payload used for settings fingerprinting.
        """
        return {
            "size_limit_bytes": self.size_limit_bytes,
            "cull_limit": self.cull_limit,
            "eviction_policy": self.eviction_policy,
            "statistics": self.statistics,
            "timeout_seconds": self.timeout_seconds,
            "disk_min_file_size": self.disk_min_file_size,
            "sqlite_journal_mode": self.sqlite_journal_mode,
            "sqlite_synchronous": self.sqlite_synchronous,
        }

    def fingerprint(self) -> str:
        """Return the pool key component for these settings.

        Returns
        -------
        str
            SHA-256 digest of the canonical settings payload.
        """
        return hash_json_canonical(self.fingerprint_payload(), str_keys=True)


class DiskCacheKwargs(TypedDict, total=False):
    cull_limit: int
    eviction_policy: str
    statistics: bool
    disk_min_file_size: int
    sqlite_journal_mode: str
    sqlite_synchronous: str


_CACHE_POOL: dict[tuple[str, str], Cache] = {}
_POOL_LOCK = threading.Lock()


def open_diskcache(location: Path, settings: DiskCacheSettings | None = None) -> Cache:
    """Return a pooled Cache instance for a location and settings pair.

    Returns
    -------
    Cache
        Cache instance rooted at ``location``.
    """
    resolved = settings or DiskCacheSettings()
    key = (str(location.resolve()), resolved.fingerprint())
    with _POOL_LOCK:
        cache = _CACHE_POOL.get(key)
        if cache is not None:
            return cache
        cache = Cache(
            str(location),
            size_limit=resolved.size_limit_bytes,
            timeout=int(resolved.timeout_seconds),
            **_settings_kwargs(resolved),
        )
        _CACHE_POOL[key] = cache
        return cache


def release_diskcache(location: Path) -> int:
    """Close and forget every pooled Cache rooted at ``location``.

    Returns
    -------
    int
        Count of closed cache instances.
    """
    resolved = str(location.resolve())
    with _POOL_LOCK:
        keys = [key for key in _CACHE_POOL if key[0] == resolved]
        for key in keys:
            _CACHE_POOL.pop(key).close()
    return len(keys)


@dataclass(frozen=True)
class DiskCacheMaintenance:
    """Maintenance result for a cache location."""

    location: str
    expired: int
    check_errors: int | None = None


def run_cache_maintenance(cache: Cache, *, include_check: bool = False) -> DiskCacheMaintenance:
    """Run expiry and optional consistency checks on a cache.

    Returns
    -------
    DiskCacheMaintenance
        Maintenance results for the cache.
    """
    expired = int(cache.expire(retry=True))
    check_errors = None
    if include_check:
        errors = cache.check(fix=False, retry=True)
        check_errors = len(errors) if isinstance(errors, list) else int(bool(errors))
    return DiskCacheMaintenance(
        location=str(cache.directory),
        expired=expired,
        check_errors=check_errors,
    )


def _stats_mapping(stats: object) -> dict[str, object]:
    if isinstance(stats, Mapping):
        return dict(stats)
    to_dict = getattr(stats, "_asdict", None)
    if callable(to_dict):
        return cast("dict[str, object]", to_dict())
    if isinstance(stats, tuple):
        keys = ("hits", "misses")
        padded = list(stats) + [None] * max(0, len(keys) - len(stats))
        return dict(zip(keys, padded, strict=False))
    return {}


def _settings_kwargs(settings: DiskCacheSettings) -> DiskCacheKwargs:
    kwargs: DiskCacheKwargs = {
        "cull_limit": settings.cull_limit,
        "eviction_policy": settings.eviction_policy,
        "statistics": settings.statistics,
    }
    if settings.disk_min_file_size is not None:
        kwargs["disk_min_file_size"] = settings.disk_min_file_size
    if settings.sqlite_journal_mode is not None:
        kwargs["sqlite_journal_mode"] = settings.sqlite_journal_mode
    if settings.sqlite_synchronous is not None:
        kwargs["sqlite_synchronous"] = settings.sqlite_synchronous
    return kwargs


def diskcache_stats_snapshot(cache: Cache) -> dict[str, object]:
    """Return a stats snapshot for the provided DiskCache instance.

    Returns
    -------
    dict[str, object]
        Snapshot of DiskCache stats and volume.
    """
    stats = _stats_mapping(cache.stats())
    return {
        "directory": str(cache.directory),
        "volume": cache.volume(),
        "count": len(cache),
        "hits": stats.get("hits"),
        "misses": stats.get("misses"),
    }


__all__ = [
    "CACHE_DIR_ENV",
    "DEFAULT_CACHE_DIRNAME",
    "DiskCacheMaintenance",
    "DiskCacheSettings",
    "default_cache_root",
    "diskcache_stats_snapshot",
    "open_diskcache",
    "release_diskcache",
    "run_cache_maintenance",
]
