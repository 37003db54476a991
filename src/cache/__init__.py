"""Fingerprint cache: backends, persisted records and the store."""

from cache.backends import CacheBackend, DiskCacheBackend, MemoryBackend
from cache.diskcache_factory import DiskCacheSettings, default_cache_root
from cache.records import CacheSettings, FailureRecord, FingerprintRecord, ProgressRecord
from cache.store import FingerprintStore

__all__ = [
    "CacheBackend",
    "CacheSettings",
    "DiskCacheBackend",
    "DiskCacheSettings",
    "FailureRecord",
    "FingerprintRecord",
    "FingerprintStore",
    "MemoryBackend",
    "ProgressRecord",
    "default_cache_root",
]
