"""Explicit hash utilities with stable serialization semantics.

Two algorithm families are exposed. Short algorithms produce bounded,
filename-safe digests used to address storage keys. Long algorithms produce
collision-resistant digests used for content fingerprints.
"""

from __future__ import annotations

import hashlib
import zlib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from serde_msgspec import JSON_ENCODER_SORTED, MSGPACK_ENCODER, to_builtins

if TYPE_CHECKING:
    from pathlib import Path

type ShortHashAlgorithm = Literal["blake2b-64", "md5", "crc32"]
type LongHashAlgorithm = Literal["sha256", "sha512", "blake2b", "sha3-256"]

DEFAULT_SHORT_HASH: ShortHashAlgorithm = "blake2b-64"
DEFAULT_LONG_HASH: LongHashAlgorithm = "sha256"

_FILE_CHUNK_SIZE = 1024 * 1024


def _crc32_hex(payload: bytes) -> str:
    return f"{zlib.crc32(payload) & 0xFFFFFFFF:08x}"


def _blake2b_64_hex(payload: bytes) -> str:
    return hashlib.blake2b(payload, digest_size=8).hexdigest()


def _md5_hex(payload: bytes) -> str:
    return hashlib.md5(payload, usedforsecurity=False).hexdigest()


_SHORT_HASHERS: Mapping[str, Callable[[bytes], str]] = {
    "blake2b-64": _blake2b_64_hex,
    "md5": _md5_hex,
    "crc32": _crc32_hex,
}

_LONG_HASH_FACTORIES: Mapping[str, Callable[[], hashlib._Hash]] = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
    "blake2b": hashlib.blake2b,
    "sha3-256": hashlib.sha3_256,
}

SHORT_HASH_ALGORITHMS: tuple[str, ...] = tuple(_SHORT_HASHERS)
LONG_HASH_ALGORITHMS: tuple[str, ...] = tuple(_LONG_HASH_FACTORIES)


def validate_short_algorithm(algorithm: str) -> ShortHashAlgorithm:
    """Return the algorithm when it names a supported short hash.

    Raises
    ------
    ValueError
        Raised when the algorithm is unknown.

    Returns
    -------
    ShortHashAlgorithm
        The validated algorithm name.
    """
    if algorithm not in _SHORT_HASHERS:
        msg = (
            f"Unsupported short hash algorithm {algorithm!r}; "
            f"expected one of {SHORT_HASH_ALGORITHMS}."
        )
        raise ValueError(msg)
    return algorithm  # type: ignore[return-value]


def validate_long_algorithm(algorithm: str) -> LongHashAlgorithm:
    """Return the algorithm when it names a supported long hash.

    Raises
    ------
    ValueError
        Raised when the algorithm is unknown.

    Returns
    -------
    LongHashAlgorithm
        The validated algorithm name.
    """
    if algorithm not in _LONG_HASH_FACTORIES:
        msg = (
            f"Unsupported long hash algorithm {algorithm!r}; "
            f"expected one of {LONG_HASH_ALGORITHMS}."
        )
        raise ValueError(msg)
    return algorithm  # type: ignore[return-value]


def short_hash(payload: bytes, *, algorithm: str = DEFAULT_SHORT_HASH) -> str:
    """Return a bounded hex digest suitable for storage keys.

    Parameters
    ----------
    payload
        Raw bytes to hash.
    algorithm
        Short hash algorithm name.

    Returns
    -------
    str
        Hex digest string.
    """
    return _SHORT_HASHERS[validate_short_algorithm(algorithm)](payload)


def long_hash(payload: bytes, *, algorithm: str = DEFAULT_LONG_HASH) -> str:
    """Return a collision-resistant hex digest for content fingerprints.

    Parameters
    ----------
    payload
        Raw bytes to hash.
    algorithm
        Long hash algorithm name.

    Returns
    -------
    str
        Hex digest string.
    """
    hasher = _LONG_HASH_FACTORIES[validate_long_algorithm(algorithm)]()
    hasher.update(payload)
    return hasher.hexdigest()


def short_hash_text(value: str, *, algorithm: str = DEFAULT_SHORT_HASH) -> str:
    """Return the short hash of UTF-8 encoded text.

    Returns
    -------
    str
        Hex digest string.
    """
    return short_hash(value.encode("utf-8"), algorithm=algorithm)


# -----------------------------------------------------------------------------
# Payload hashing
# -----------------------------------------------------------------------------


def hash_msgpack_canonical(payload: object, *, algorithm: str = DEFAULT_LONG_HASH) -> str:
    """Return a long hash of the payload encoded with MSGPACK_ENCODER.

    Parameters
    ----------
    payload
        Payload to encode.
    algorithm
        Long hash algorithm name.

    Returns
    -------
    str
        Hex digest string.
    """
    return long_hash(MSGPACK_ENCODER.encode(payload), algorithm=algorithm)


def hash_json_canonical(payload: object, *, str_keys: bool = False) -> str:
    """Return SHA-256 hexdigest using JSON_ENCODER_SORTED.

    Parameters
    ----------
    payload
        Payload to encode.
    str_keys
        Whether to coerce mapping keys to strings.

    Returns
    -------
    str
        SHA-256 hexdigest.
    """
    buffer = bytearray()
    JSON_ENCODER_SORTED.encode_into(to_builtins(payload, str_keys=str_keys), buffer)
    return long_hash(bytes(buffer), algorithm="sha256")


# -----------------------------------------------------------------------------
# Cache key builder
# -----------------------------------------------------------------------------


@dataclass
class CacheKeyBuilder:
    """Builder for deterministic cache keys."""

    prefix: str = ""
    algorithm: str = DEFAULT_LONG_HASH
    _components: dict[str, object] = field(default_factory=dict)

    def add(self, name: str, value: object) -> CacheKeyBuilder:
        """Add a component to the cache key.

        Returns
        -------
        CacheKeyBuilder
            The updated builder instance.
        """
        self._components[name] = value
        return self

    def build(self) -> str:
        """Return the cache key string.

        Returns
        -------
        str
            Cache key string.
        """
        digest = hash_msgpack_canonical(self._components, algorithm=self.algorithm)
        return f"{self.prefix}:{digest}" if self.prefix else digest


# -----------------------------------------------------------------------------
# File content hashing
# -----------------------------------------------------------------------------


def hash_file(
    path: Path,
    *,
    algorithm: str = DEFAULT_LONG_HASH,
    chunk_size: int = _FILE_CHUNK_SIZE,
) -> str:
    """Return the long hash of file contents (chunked reading).

    Parameters
    ----------
    path
        File path to hash.
    algorithm
        Long hash algorithm name.
    chunk_size
        Read chunk size in bytes.

    Returns
    -------
    str
        Hex digest string.
    """
    h = _LONG_HASH_FACTORIES[validate_long_algorithm(algorithm)]()
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            h.update(chunk)
    return h.hexdigest()


__all__ = [
    "DEFAULT_LONG_HASH",
    "DEFAULT_SHORT_HASH",
    "LONG_HASH_ALGORITHMS",
    "SHORT_HASH_ALGORITHMS",
    "CacheKeyBuilder",
    "LongHashAlgorithm",
    "ShortHashAlgorithm",
    "hash_file",
    "hash_json_canonical",
    "hash_msgpack_canonical",
    "long_hash",
    "short_hash",
    "short_hash_text",
    "validate_long_algorithm",
    "validate_short_algorithm",
]
