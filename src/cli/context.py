"""Run context for CLI command injection."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path

from cache.diskcache_factory import default_cache_root
from cache.store import FingerprintStore
from engine.facade import memory_cache, new_cache, open_cache


@dataclass(frozen=True)
class RunContext:
    """Injected run context for CLI commands.

    Parameters
    ----------
    run_id
        Run identifier for the CLI invocation.
    log_level
        Logging level applied to the invocation.
    cache_dir
        Cache location selected by ``--cache-dir``; ``None`` uses the
        default location.
    """

    run_id: str
    log_level: str = "WARNING"
    cache_dir: Path | None = None

    @property
    def cache_location(self) -> Path:
        return self.cache_dir if self.cache_dir is not None else default_cache_root()

    def create_cache(self) -> FingerprintStore:
        """Open the cache for writing, creating it when absent.

        Returns
        -------
        FingerprintStore
            DiskCache-backed cache handle.
        """
        return new_cache(self.cache_location)

    def existing_cache(self) -> FingerprintStore:
        """Open the cache that must already exist.

        Returns
        -------
        FingerprintStore
            DiskCache-backed cache handle.
        """
        return open_cache(self.cache_location)

    def inspection_cache(self) -> FingerprintStore:
        """Open the cache for read-only inspection without creating it.

        A missing cache is represented by an empty in-memory cache, so every
        target reads as never built.

        Returns
        -------
        FingerprintStore
            Existing cache handle or an empty memory cache.
        """
        if self.cache_location.is_dir():
            return open_cache(self.cache_location)
        return memory_cache()


def resolve_run_context(run_context: RunContext | None) -> RunContext:
    """Return ``run_context`` or a default one for direct command calls.

    Returns
    -------
    RunContext
        Context to run the command with.
    """
    if run_context is not None:
        return run_context
    return RunContext(run_id=uuid.uuid4().hex)


__all__ = ["RunContext", "resolve_run_context"]
