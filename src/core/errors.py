"""Error taxonomy for plan validation, graph construction, builds and caching."""

from __future__ import annotations

from collections.abc import Sequence


class TargetflowError(Exception):
    """Base class for targetflow errors."""


class PlanValidationError(TargetflowError, ValueError):
    """Raised when a plan declaration is malformed."""


class ConfigurationError(TargetflowError, ValueError):
    """Raised when engine or cache configuration is invalid."""


class CycleError(TargetflowError, ValueError):
    """Raised when the dependency graph contains a directed cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        path = " -> ".join((*self.cycle, self.cycle[0])) if self.cycle else "<unknown>"
        super().__init__(f"Dependency graph contains a cycle: {path}.")


class AmbiguousOutputError(TargetflowError, ValueError):
    """Raised when two targets declare the same output file."""

    def __init__(self, path: str, targets: Sequence[str]) -> None:
        self.path = path
        self.targets = tuple(targets)
        super().__init__(
            f"Output file {path!r} is declared by more than one target: {list(self.targets)}."
        )


class ExtractionError(TargetflowError, RuntimeError):
    """Raised when dependencies cannot be extracted for a node."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Cannot extract dependencies for {name!r}: {message}")


class BuildError(TargetflowError, RuntimeError):
    """Raised (or recorded) when a node's command fails.

    The underlying exception is attached as ``__cause__`` when available.
    """

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Failed to build {name!r}: {message}")


class CacheIOError(TargetflowError, OSError):
    """Raised when the cache backend cannot be read or written."""


__all__ = [
    "AmbiguousOutputError",
    "BuildError",
    "CacheIOError",
    "ConfigurationError",
    "CycleError",
    "ExtractionError",
    "PlanValidationError",
    "TargetflowError",
]
