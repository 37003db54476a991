"""Public Python API.

Every operation takes the cache explicitly; there is no process-wide default
cache. Use :func:`new_cache`, :func:`open_cache` or :func:`memory_cache` to
obtain one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from pathlib import Path

from cache.backends import DiskCacheBackend, MemoryBackend
from cache.diskcache_factory import DiskCacheSettings, default_cache_root
from cache.records import FailureRecord, ProgressState
from cache.store import FingerprintStore
from core.errors import CacheIOError
from depgraph.extractors import DependencyExtractor, DocumentExtractorRegistry
from depgraph.outdated import ChangeDetector, ChangeReport
from depgraph.rustworkx_graph import DependencyGraph, build_dependency_graph, untracked_names
from depgraph.rustworkx_schedule import ready_sets as _ready_sets
from engine.build_orchestrator import BuildReport, MakeOptions
from engine.build_orchestrator import make as _make
from plan.model import Plan

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Cache handles
# ----------------------------------------------------------------------


def new_cache(
    path: Path | str | None = None,
    *,
    short_hash_algorithm: str | None = None,
    long_hash_algorithm: str | None = None,
    settings: DiskCacheSettings | None = None,
) -> FingerprintStore:
    """Create (or attach to) a DiskCache-backed cache at ``path``.

    Parameters
    ----------
    path
        Cache directory; defaults to ``$TARGETFLOW_CACHE_DIR`` or
        ``./.targetflow``.
    short_hash_algorithm
        Storage-key hash for a new cache.
    long_hash_algorithm
        Content fingerprint hash for a new cache.
    settings
        DiskCache tuning.

    Returns
    -------
    FingerprintStore
        Cache handle.
    """
    location = Path(path) if path is not None else default_cache_root()
    backend = DiskCacheBackend(location, settings=settings)
    return FingerprintStore.open(
        backend,
        short_hash_algorithm=short_hash_algorithm,
        long_hash_algorithm=long_hash_algorithm,
    )


def open_cache(
    path: Path | str | None = None,
    *,
    settings: DiskCacheSettings | None = None,
) -> FingerprintStore:
    """Attach to an existing DiskCache-backed cache.

    Returns
    -------
    FingerprintStore
        Cache handle.

    Raises
    ------
    CacheIOError
        Raised when no cache exists at the location.
    """
    location = Path(path) if path is not None else default_cache_root()
    if not location.is_dir():
        msg = f"No cache found at {location}."
        raise CacheIOError(msg)
    return FingerprintStore.open(DiskCacheBackend(location, settings=settings))


def memory_cache(
    name: str = "memory",
    *,
    short_hash_algorithm: str | None = None,
    long_hash_algorithm: str | None = None,
) -> FingerprintStore:
    """Return a new non-durable in-process cache.

    Returns
    -------
    FingerprintStore
        Cache handle over a fresh memory backend.
    """
    return FingerprintStore.open(
        MemoryBackend(name=name),
        short_hash_algorithm=short_hash_algorithm,
        long_hash_algorithm=long_hash_algorithm,
    )


# ----------------------------------------------------------------------
# Graph and change detection
# ----------------------------------------------------------------------


def dependency_graph(
    plan: Plan,
    *,
    environment: Mapping[str, object] | None = None,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> DependencyGraph:
    """Return the dependency graph of ``plan``.

    Returns
    -------
    DependencyGraph
        Graph of targets and imports.
    """
    return build_dependency_graph(
        plan,
        environment=environment,
        extractor=extractor,
        document_extractors=document_extractors,
    )


def assess(
    plan: Plan,
    cache: FingerprintStore,
    *,
    environment: Mapping[str, object] | None = None,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> ChangeReport:
    """Return the per-node change assessment of ``plan`` without building.

    Returns
    -------
    ChangeReport
        Assessment and reason for every node.
    """
    graph = dependency_graph(
        plan,
        environment=environment,
        extractor=extractor,
        document_extractors=document_extractors,
    )
    return ChangeDetector(cache, graph).detect()


def outdated(
    plan: Plan,
    cache: FingerprintStore,
    *,
    environment: Mapping[str, object] | None = None,
    include_imports: bool = False,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> frozenset[str]:
    """Return the names of targets that ``make`` would rebuild.

    Returns
    -------
    frozenset[str]
        Outdated target names (and imports when requested).
    """
    report = assess(
        plan,
        cache,
        environment=environment,
        extractor=extractor,
        document_extractors=document_extractors,
    )
    return report.outdated_names(include_imports=include_imports)


def ready_sets(
    plan: Plan,
    cache: FingerprintStore,
    *,
    environment: Mapping[str, object] | None = None,
    jobs: int | None = None,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> tuple[tuple[str, ...], ...]:
    """Return the projected dispatch frontiers of the next ``make``.

    Returns
    -------
    tuple[tuple[str, ...], ...]
        Frontiers in dispatch order; nothing is built or written.
    """
    graph = dependency_graph(
        plan,
        environment=environment,
        extractor=extractor,
        document_extractors=document_extractors,
    )
    return _ready_sets(graph, ChangeDetector(cache, graph), jobs=jobs)


def missed(
    plan: Plan,
    *,
    environment: Mapping[str, object] | None = None,
    extractor: DependencyExtractor | None = None,
) -> frozenset[str]:
    """Return referenced names that are neither targets nor in the environment.

    Returns
    -------
    frozenset[str]
        Untracked, non-builtin names.
    """
    return untracked_names(dependency_graph(plan, environment=environment, extractor=extractor))


# ----------------------------------------------------------------------
# Building
# ----------------------------------------------------------------------


def make(
    plan: Plan,
    cache: FingerprintStore,
    *,
    environment: Mapping[str, object] | None = None,
    jobs: int = 1,
    keep_going: bool = False,
    dry_run: bool = False,
    recheck: bool = True,
    targets: tuple[str, ...] = (),
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> BuildReport:
    """Build every outdated target of ``plan``.

    Returns
    -------
    BuildReport
        Built, skipped, failed and blocked targets.
    """
    options = MakeOptions(
        jobs=jobs,
        keep_going=keep_going,
        dry_run=dry_run,
        recheck=recheck,
        targets=tuple(targets),
    )
    return _make(
        plan,
        cache,
        environment=environment,
        options=options,
        extractor=extractor,
        document_extractors=document_extractors,
    )


# ----------------------------------------------------------------------
# Cache queries
# ----------------------------------------------------------------------


def cached_names(cache: FingerprintStore, *, include_imports: bool = False) -> frozenset[str]:
    return cache.cached_names(include_imports=include_imports)


def read(name: str, cache: FingerprintStore) -> object:
    """Return the value ``name`` had at its last successful build.

    Raises
    ------
    KeyError
        Raised when ``name`` was never built or is an import.

    Returns
    -------
    object
        Stored target value.
    """
    return cache.read_value(name)


def load(
    *names: str,
    cache: FingerprintStore,
    into: MutableMapping[str, object] | None = None,
) -> dict[str, object]:
    """Read several target values at once.

    With no names, every cached target is loaded. When ``into`` is given
    (for example ``globals()``), it is updated with the loaded values.

    Returns
    -------
    dict[str, object]
        Loaded values keyed by target name.
    """
    selected = names or tuple(sorted(cache.cached_names()))
    values = {name: cache.read_value(name) for name in selected}
    if into is not None:
        into.update(values)
    return values


def build_times(cache: FingerprintStore, *names: str) -> dict[str, float]:
    """Return the duration of each target's last successful build.

    Returns
    -------
    dict[str, float]
        Seconds per target name.
    """
    wanted = set(names)
    return {
        record.name: record.elapsed_s
        for record in cache.records()
        if record.kind == "target" and (not wanted or record.name in wanted)
    }


def progress(cache: FingerprintStore) -> dict[str, ProgressState]:
    return cache.progress()


def diagnose(name: str, cache: FingerprintStore) -> FailureRecord | None:
    """Return diagnostics for the last failed build of ``name``.

    Returns
    -------
    FailureRecord | None
        Error type, message and traceback, or ``None`` when the last attempt
        succeeded or none was made.
    """
    return cache.get_failure(name)


def failed_names(cache: FingerprintStore) -> tuple[str, ...]:
    """Return targets whose latest recorded progress is ``failed``.

    Returns
    -------
    tuple[str, ...]
        Sorted target names.
    """
    return tuple(name for name, state in cache.progress().items() if state == "failed")


# ----------------------------------------------------------------------
# Maintenance
# ----------------------------------------------------------------------


def clean(
    *names: str,
    cache: FingerprintStore,
    destroy: bool = False,
    purge: bool = False,
) -> tuple[str, ...]:
    """Remove records from the cache.

    Parameters
    ----------
    *names
        Nodes to remove. With none, every target record is removed.
    cache
        Cache to clean.
    destroy
        Remove the whole cache location instead.
    purge
        Also remove import records (when no names are given) and delete
        content blobs that are no longer referenced.

    Returns
    -------
    tuple[str, ...]
        Names whose records were removed.
    """
    if destroy:
        removed = tuple(sorted(cache.cached_names(include_imports=True)))
        cache.destroy()
        logger.info("Destroyed cache at %s", cache.location)
        return removed
    if names:
        selected = tuple(names)
    else:
        selected = tuple(sorted(cache.cached_names(include_imports=purge)))
    removed = tuple(name for name in selected if cache.delete_record(name))
    for name in selected:
        cache.forget(name)
    if purge:
        cache.garbage_collect()
    logger.info("Removed %d records from %s", len(removed), cache.location)
    return removed


def gc(cache: FingerprintStore) -> int:
    """Delete content blobs no longer referenced by any record.

    Returns
    -------
    int
        Count of deleted blobs.
    """
    return cache.garbage_collect()


def verify(cache: FingerprintStore) -> int:
    """Run backend consistency checks and return the warning count.

    Returns
    -------
    int
        Count of consistency warnings; always zero for memory caches.
    """
    backend = cache.backend
    if isinstance(backend, DiskCacheBackend):
        return backend.verify()
    return 0


def cache_stats(cache: FingerprintStore) -> dict[str, object]:
    """Return a summary of the cache contents.

    Returns
    -------
    dict[str, object]
        Location, algorithms, record and object counts, plus backend stats.
    """
    records = cache.records()
    stats: dict[str, object] = {
        "location": cache.location,
        "short_hash_algorithm": cache.short_hash_algorithm,
        "long_hash_algorithm": cache.long_hash_algorithm,
        "targets": sum(1 for record in records if record.kind == "target"),
        "imports": sum(1 for record in records if record.kind == "import"),
        "objects": len(cache.object_hashes()),
    }
    backend = cache.backend
    if isinstance(backend, DiskCacheBackend):
        stats["backend"] = backend.stats()
    return stats


__all__ = [
    "assess",
    "build_times",
    "cache_stats",
    "cached_names",
    "clean",
    "dependency_graph",
    "diagnose",
    "failed_names",
    "gc",
    "load",
    "make",
    "memory_cache",
    "missed",
    "new_cache",
    "open_cache",
    "outdated",
    "progress",
    "read",
    "ready_sets",
    "verify",
]
