"""Build engine: executor, make orchestration and the public facade."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from engine.build_orchestrator import BuildReport, MakeOptions
    from engine.executor import BuildExecutor, BuildOutcome
    from engine.facade import (
        cached_names,
        clean,
        load,
        make,
        memory_cache,
        new_cache,
        open_cache,
        outdated,
        read,
    )

_EXPORT_MAP: dict[str, tuple[str, str]] = {
    "BuildExecutor": ("engine.executor", "BuildExecutor"),
    "BuildOutcome": ("engine.executor", "BuildOutcome"),
    "BuildReport": ("engine.build_orchestrator", "BuildReport"),
    "MakeOptions": ("engine.build_orchestrator", "MakeOptions"),
    "cached_names": ("engine.facade", "cached_names"),
    "clean": ("engine.facade", "clean"),
    "load": ("engine.facade", "load"),
    "make": ("engine.facade", "make"),
    "memory_cache": ("engine.facade", "memory_cache"),
    "new_cache": ("engine.facade", "new_cache"),
    "open_cache": ("engine.facade", "open_cache"),
    "outdated": ("engine.facade", "outdated"),
    "read": ("engine.facade", "read"),
}


def __getattr__(name: str) -> object:
    target = _EXPORT_MAP.get(name)
    if target is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    module_path, attr_name = target
    module = importlib.import_module(module_path)
    return getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(list(globals()) + list(_EXPORT_MAP))


__all__ = [
    "BuildExecutor",
    "BuildOutcome",
    "BuildReport",
    "MakeOptions",
    "cached_names",
    "clean",
    "load",
    "make",
    "memory_cache",
    "new_cache",
    "open_cache",
    "outdated",
    "read",
]
