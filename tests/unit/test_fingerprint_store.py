"""Tests for the content-addressed fingerprint store."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from cache.backends import DiskCacheBackend, MemoryBackend
from cache.codec import encode_value
from cache.diskcache_factory import release_diskcache
from cache.records import FailureRecord, FingerprintRecord
from cache.store import OBJECTS_PREFIX, RECORDS_PREFIX, SETTINGS_KEY, FingerprintStore
from core.errors import CacheIOError, ConfigurationError
from serde_msgspec import dumps_msgpack


def _record(store: FingerprintStore, name: str, value: object) -> tuple[FingerprintRecord, bytes]:
    payload = encode_value(value)
    record = FingerprintRecord(
        name=name,
        kind="target",
        output_hash=store.content_hash(payload),
        hash_algorithm=store.long_hash_algorithm,
        built_at=time.time(),
        command_hash=store.text_hash(repr(value)),
        value_hash=store.content_hash(payload),
    )
    return record, payload


@pytest.fixture(params=["memory", "disk"])
def store(request: pytest.FixtureRequest) -> FingerprintStore:
    """Run each test against both bundled backends."""
    fixture = "memory_store" if request.param == "memory" else "disk_store"
    return request.getfixturevalue(fixture)


def test_commit_and_read_value(store: FingerprintStore) -> None:
    """Committed values read back and the record lists the name."""
    record, payload = _record(store, "a", {"rows": [1, 2, 3]})
    store.commit(record, payload)
    assert store.read_value("a") == {"rows": [1, 2, 3]}
    assert store.get_record("a") == record
    assert store.cached_names() == frozenset({"a"})
    assert store.object_hashes() == frozenset({record.value_hash})


def test_keys_use_short_and_long_hashes(store: FingerprintStore) -> None:
    """Record keys derive from the short hash, object keys from the long hash."""
    record, payload = _record(store, "a_rather_long_target_name" * 20, 1)
    store.commit(record, payload)
    keys = store.backend.list()
    assert RECORDS_PREFIX + store.name_key(record.name) in keys
    assert OBJECTS_PREFIX + store.content_hash(payload) in keys
    assert all(len(key) < 100 for key in keys)


def test_identical_values_share_one_object(store: FingerprintStore) -> None:
    """Equal payloads are stored once."""
    for name in ("a", "b"):
        record, payload = _record(store, name, "same")
        store.commit(record, payload)
    assert len(store.object_hashes()) == 1


def test_value_hash_mismatch_is_rejected(store: FingerprintStore) -> None:
    """A record must describe the payload committed with it."""
    record, _ = _record(store, "a", 1)
    with pytest.raises(CacheIOError, match="mismatch"):
        store.commit(record, encode_value(2))
    assert store.get_record("a") is None


def test_read_value_of_unknown_name(store: FingerprintStore) -> None:
    """Reading a never-built target raises KeyError."""
    with pytest.raises(KeyError):
        store.read_value("nope")


def test_garbage_collect_removes_unreferenced_objects(store: FingerprintStore) -> None:
    """Objects survive only while a record points at them."""
    old, old_payload = _record(store, "a", 1)
    store.commit(old, old_payload)
    new, new_payload = _record(store, "a", 2)
    store.commit(new, new_payload)
    assert len(store.object_hashes()) == 2
    assert store.garbage_collect() == 1
    assert store.object_hashes() == frozenset({new.value_hash})
    assert store.read_value("a") == 2


def test_failures_are_cleared_by_a_successful_commit(store: FingerprintStore) -> None:
    """A later successful build drops the failure diagnostics."""
    store.record_failure(
        FailureRecord(name="a", error_type="ValueError", message="bad", traceback="", failed_at=0.0)
    )
    failure = store.get_failure("a")
    assert failure is not None
    assert failure.error_type == "ValueError"
    record, payload = _record(store, "a", 1)
    store.commit(record, payload)
    assert store.get_failure("a") is None


def test_progress_and_forget(store: FingerprintStore) -> None:
    """Progress markers are listed by name and dropped by forget."""
    store.set_progress("b", "running")
    store.set_progress("a", "failed")
    store.set_progress("b", "built")
    assert store.progress() == {"a": "failed", "b": "built"}
    store.forget("a")
    assert store.progress() == {"b": "built"}
    store.clear_progress()
    assert store.progress() == {}


def test_short_hash_collision_is_detected(memory_backend: MemoryBackend) -> None:
    """A record key owned by another name is never overwritten."""
    store = FingerprintStore.open(memory_backend)
    intruder, _ = _record(store, "other", 1)
    memory_backend.set(RECORDS_PREFIX + store.name_key("a"), dumps_msgpack(intruder))
    assert store.get_record("a") is None
    record, payload = _record(store, "a", 1)
    with pytest.raises(CacheIOError, match="collision"):
        store.commit(record, payload)


def test_corrupt_record_raises_cache_io_error(memory_backend: MemoryBackend) -> None:
    """Undecodable records surface as CacheIOError."""
    store = FingerprintStore.open(memory_backend)
    memory_backend.set(RECORDS_PREFIX + store.name_key("a"), b"\xc1not msgpack")
    with pytest.raises(CacheIOError, match="Corrupt"):
        store.get_record("a")


def test_settings_are_fixed_at_creation(memory_backend: MemoryBackend) -> None:
    """Reopening with different algorithms is a configuration error."""
    store = FingerprintStore.open(
        memory_backend, short_hash_algorithm="crc32", long_hash_algorithm="sha512"
    )
    assert memory_backend.exists(SETTINGS_KEY)
    reopened = FingerprintStore.open(memory_backend)
    assert reopened.short_hash_algorithm == "crc32"
    assert reopened.long_hash_algorithm == "sha512"
    with pytest.raises(ConfigurationError, match="short hash"):
        FingerprintStore.open(memory_backend, short_hash_algorithm="md5")
    with pytest.raises(ConfigurationError, match="configure"):
        FingerprintStore.open(memory_backend, long_hash_algorithm="sha256")
    assert store.name_key("a") == reopened.name_key("a")


def test_unsupported_algorithm(memory_backend: MemoryBackend) -> None:
    """Unknown algorithm names are configuration errors."""
    with pytest.raises(ConfigurationError):
        FingerprintStore.open(memory_backend, long_hash_algorithm="md4")


def test_configure_switches_long_hash(memory_backend: MemoryBackend) -> None:
    """Switching the long hash persists and keeps existing records readable."""
    store = FingerprintStore.open(memory_backend)
    record, payload = _record(store, "a", 1)
    store.commit(record, payload)
    switched = store.configure(long_hash_algorithm="blake2b")
    assert switched.long_hash_algorithm == "blake2b"
    assert FingerprintStore.open(memory_backend).long_hash_algorithm == "blake2b"
    assert switched.get_record("a") == record
    assert store.configure(long_hash_algorithm="sha256") is store


def test_disk_cache_persists_across_handles(tmp_path: Path) -> None:
    """A DiskCache-backed store is durable across backend instances."""
    location = tmp_path / "cache"
    first = FingerprintStore.open(DiskCacheBackend(location))
    record, payload = _record(first, "a", [1, 2])
    first.commit(record, payload)
    release_diskcache(location)
    second = FingerprintStore.open(DiskCacheBackend(location))
    assert second.read_value("a") == [1, 2]
    assert second.is_durable
    second.destroy()
    assert not location.exists()
