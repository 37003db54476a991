"""E2E tests: cache queries and maintenance through the public API."""

from __future__ import annotations

from pathlib import Path

import pytest

from cache.store import FingerprintStore
from core.errors import CacheIOError, ConfigurationError
from engine.facade import (
    build_times,
    cache_stats,
    cached_names,
    clean,
    diagnose,
    failed_names,
    gc,
    load,
    make,
    new_cache,
    open_cache,
    outdated,
    progress,
    read,
    verify,
)
from plan import Plan


def double(value: int) -> int:
    return value * 2


PLAN = Plan.from_commands({"a": "[1, 2]", "b": "double(len(a))"})
ENVIRONMENT = {"double": double}


@pytest.fixture(params=["memory", "disk"])
def cache(request: pytest.FixtureRequest) -> FingerprintStore:
    """Run each test against both bundled backends."""
    fixture = "memory_store" if request.param == "memory" else "disk_store"
    store = request.getfixturevalue(fixture)
    assert make(PLAN, store, environment=ENVIRONMENT).ok
    return store


@pytest.mark.e2e
def test_queries_after_build(cache: FingerprintStore) -> None:
    """Values, names, timings and progress are readable after a build."""
    assert cached_names(cache) == {"a", "b"}
    assert cached_names(cache, include_imports=True) == {"a", "b", "double"}
    assert read("b", cache) == 4
    assert set(build_times(cache)) == {"a", "b"}
    assert set(build_times(cache, "a")) == {"a"}
    assert all(seconds >= 0.0 for seconds in build_times(cache).values())
    assert progress(cache) == {"a": "built", "b": "built"}
    assert failed_names(cache) == ()
    with pytest.raises(KeyError, match="import"):
        read("double", cache)
    with pytest.raises(KeyError):
        read("nope", cache)


@pytest.mark.e2e
def test_load_updates_namespace(cache: FingerprintStore) -> None:
    """``load`` returns values and can populate a caller namespace."""
    namespace: dict[str, object] = {}
    values = load(cache=cache, into=namespace)
    assert values == {"a": [1, 2], "b": 4}
    assert namespace == values
    assert load("b", cache=cache) == {"b": 4}


@pytest.mark.e2e
def test_diagnose_failed_target(cache: FingerprintStore) -> None:
    """Failures are diagnosable until the target builds again."""
    broken = Plan.from_commands({"a": "[1, 2]", "b": "double(a[5])"})
    report = make(broken, cache, environment=ENVIRONMENT)
    assert report.failed_names == ("b",)
    assert failed_names(cache) == ("b",)
    failure = diagnose("b", cache)
    assert failure is not None
    assert failure.error_type == "IndexError"
    assert "IndexError" in failure.traceback
    assert read("b", cache) == 4
    assert diagnose("a", cache) is None


@pytest.mark.e2e
def test_clean_named_targets(cache: FingerprintStore) -> None:
    """Cleaning a target makes it and its dependents outdated."""
    assert clean("a", cache=cache) == ("a",)
    assert cached_names(cache) == {"b"}
    assert outdated(PLAN, cache, environment=ENVIRONMENT) == {"a", "b"}
    assert clean("a", cache=cache) == ()


@pytest.mark.e2e
def test_clean_all_keeps_imports_unless_purged(cache: FingerprintStore) -> None:
    """A bare clean drops targets; purge also drops imports and blobs."""
    assert clean(cache=cache) == ("a", "b")
    assert cached_names(cache, include_imports=True) == {"double"}
    assert cache.object_hashes()
    assert clean(cache=cache, purge=True) == ("double",)
    assert cached_names(cache, include_imports=True) == frozenset()
    assert cache.object_hashes() == frozenset()
    assert progress(cache) == {}


@pytest.mark.e2e
def test_gc_removes_superseded_values(cache: FingerprintStore) -> None:
    """Rebuilding a target orphans its previous value blob."""
    before = set(cache.object_hashes())
    rebuilt = Plan.from_commands({"a": "[1, 2, 3]", "b": "double(len(a))"})
    make(rebuilt, cache, environment=ENVIRONMENT)
    assert gc(cache) == 2
    assert not (before & cache.object_hashes())
    assert read("b", cache) == 6
    assert gc(cache) == 0
    assert verify(cache) == 0


@pytest.mark.e2e
def test_cache_stats_summary(cache: FingerprintStore) -> None:
    """Stats report algorithms and record counts."""
    stats = cache_stats(cache)
    assert stats["targets"] == 2
    assert stats["imports"] == 1
    assert stats["objects"] == 2
    assert stats["long_hash_algorithm"] == cache.long_hash_algorithm


@pytest.mark.e2e
def test_destroy_removes_cache_directory(tmp_path: Path) -> None:
    """Destroying a disk cache removes its directory."""
    location = tmp_path / "cache"
    store = new_cache(location)
    make(PLAN, store, environment=ENVIRONMENT)
    assert clean(cache=store, destroy=True) == ("a", "b", "double")
    assert not location.exists()
    with pytest.raises(CacheIOError):
        open_cache(location)


@pytest.mark.e2e
def test_reopened_cache_keeps_records_and_algorithms(tmp_path: Path) -> None:
    """Disk caches persist records and reject conflicting hash settings."""
    location = tmp_path / "cache"
    store = new_cache(location, short_hash_algorithm="md5", long_hash_algorithm="sha512")
    make(PLAN, store, environment=ENVIRONMENT)
    reopened = open_cache(location)
    assert reopened.short_hash_algorithm == "md5"
    assert reopened.long_hash_algorithm == "sha512"
    assert outdated(PLAN, reopened, environment=ENVIRONMENT) == frozenset()
    with pytest.raises(ConfigurationError):
        new_cache(location, long_hash_algorithm="sha256")
