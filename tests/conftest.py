"""Shared pytest fixtures for targetflow tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from cache.backends import MemoryBackend
from cache.diskcache_factory import CACHE_DIR_ENV, release_diskcache
from cache.store import FingerprintStore
from engine.facade import memory_cache, new_cache
from obs.otel.metrics import reset_metrics_registry


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "e2e: end-to-end tests through the public API or CLI")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv(CACHE_DIR_ENV, raising=False)
    monkeypatch.delenv("TARGETFLOW_JOBS", raising=False)
    monkeypatch.delenv("TARGETFLOW_LOG_LEVEL", raising=False)
    yield
    reset_metrics_registry()


@pytest.fixture
def memory_store() -> FingerprintStore:
    """Return a fresh in-memory fingerprint store."""
    return memory_cache()


@pytest.fixture
def memory_backend() -> MemoryBackend:
    """Return a fresh memory backend."""
    return MemoryBackend(name="test")


@pytest.fixture
def disk_store(tmp_path: Path) -> Iterator[FingerprintStore]:
    """Return a DiskCache-backed store rooted in a temporary directory."""
    location = tmp_path / "cache"
    yield new_cache(location)
    release_diskcache(location)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test from an empty working directory."""
    root = tmp_path / "work"
    root.mkdir()
    monkeypatch.chdir(root)
    return root
