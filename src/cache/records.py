"""Persisted record contracts for the fingerprint store."""

from __future__ import annotations

from typing import Literal

import msgspec

from serde_msgspec import StructBaseCompat

type RecordKind = Literal["target", "import"]
type ProgressState = Literal["running", "built", "failed"]

CACHE_LAYOUT_VERSION = 1


class CacheSettings(StructBaseCompat, frozen=True):
    """Hash configuration fixed at cache creation time."""

    short_hash_algorithm: str
    long_hash_algorithm: str
    layout_version: int = CACHE_LAYOUT_VERSION


class FingerprintRecord(StructBaseCompat, frozen=True):
    """Fingerprints of a node at its last successful build.

    ``output_hash`` is the node's fingerprint as seen by its dependents. For
    targets it combines ``value_hash`` with the declared output file hashes;
    for imports it is the hash of the imported value or definition.
    """

    name: str
    kind: RecordKind
    output_hash: str
    hash_algorithm: str
    built_at: float
    command_hash: str | None = None
    dependency_hash: str | None = None
    value_hash: str | None = None
    file_hashes: dict[str, str] = msgspec.field(default_factory=dict)
    input_hashes: dict[str, str] = msgspec.field(default_factory=dict)
    dependencies: tuple[str, ...] = ()
    trigger: str = "any"
    elapsed_s: float = 0.0


class FailureRecord(StructBaseCompat, frozen=True):
    """Diagnostics for the most recent failed build of a node."""

    name: str
    error_type: str
    message: str
    traceback: str
    failed_at: float


class ProgressRecord(StructBaseCompat, frozen=True):
    """Latest build progress marker for a node."""

    name: str
    state: ProgressState
    updated_at: float


__all__ = [
    "CACHE_LAYOUT_VERSION",
    "CacheSettings",
    "FailureRecord",
    "FingerprintRecord",
    "ProgressRecord",
    "ProgressState",
    "RecordKind",
]
