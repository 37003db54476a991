"""Content-addressed fingerprint store layered over a key/value backend.

Key layout
----------
``config/settings``
    Hash configuration (:class:`cache.records.CacheSettings`).
``records/<short(name)>``
    One :class:`cache.records.FingerprintRecord` per node name.
``objects/<long(content)>``
    Serialized target values, addressed by their long hash. Blobs are never
    rewritten in place; identical content maps to the same key.
``failures/<short(name)>``
    Diagnostics for the last failed build of a node.
``progress/<short(name)>``
    Latest progress marker for a node.

Node names are addressed through the short hash so that keys stay bounded
and filename-safe whatever the backend. Content is addressed through the
long hash.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from pathlib import Path

import msgspec

from cache.backends import CacheBackend, MemoryBackend
from cache.codec import decode_value
from cache.records import (
    CacheSettings,
    FailureRecord,
    FingerprintRecord,
    ProgressRecord,
    ProgressState,
)
from core.errors import CacheIOError, ConfigurationError
from serde_msgspec import dumps_msgpack, loads_msgpack
from utils.hashing import (
    DEFAULT_LONG_HASH,
    DEFAULT_SHORT_HASH,
    hash_file,
    long_hash,
    short_hash_text,
    validate_long_algorithm,
    validate_short_algorithm,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "config/settings"
RECORDS_PREFIX = "records/"
OBJECTS_PREFIX = "objects/"
FAILURES_PREFIX = "failures/"
PROGRESS_PREFIX = "progress/"


class FingerprintStore:
    """Persistent cache of node fingerprints and built values.

    Instances are cheap handles over a backend; all state lives in the
    backend. Use :meth:`open` to create or attach to a cache.
    """

    def __init__(self, backend: CacheBackend, settings: CacheSettings) -> None:
        self._backend = backend
        self._settings = settings

    @classmethod
    def open(
        cls,
        backend: CacheBackend,
        *,
        short_hash_algorithm: str | None = None,
        long_hash_algorithm: str | None = None,
    ) -> FingerprintStore:
        """Attach to the cache held by ``backend``, initializing it if empty.

        Parameters
        ----------
        backend
            Key/value backend holding the cache.
        short_hash_algorithm
            Short algorithm for a new cache, or the expected one for an
            existing cache.
        long_hash_algorithm
            Long algorithm for a new cache, or the expected one for an
            existing cache.

        Returns
        -------
        FingerprintStore
            Store handle bound to the backend.

        Raises
        ------
        ConfigurationError
            Raised when the requested algorithms differ from the ones the
            existing cache was created with, or are unsupported.
        """
        try:
            requested_short = validate_short_algorithm(short_hash_algorithm or DEFAULT_SHORT_HASH)
            requested_long = validate_long_algorithm(long_hash_algorithm or DEFAULT_LONG_HASH)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        existing = _read_settings(backend)
        if existing is None:
            settings = CacheSettings(
                short_hash_algorithm=requested_short,
                long_hash_algorithm=requested_long,
            )
            backend.set(SETTINGS_KEY, dumps_msgpack(settings))
            logger.debug(
                "Initialized cache at %s (short=%s, long=%s)",
                backend.location,
                settings.short_hash_algorithm,
                settings.long_hash_algorithm,
            )
            return cls(backend, settings)
        if short_hash_algorithm is not None and short_hash_algorithm != (
            existing.short_hash_algorithm
        ):
            msg = (
                f"Cache at {backend.location} uses short hash "
                f"{existing.short_hash_algorithm!r}; it cannot be reopened with "
                f"{short_hash_algorithm!r}."
            )
            raise ConfigurationError(msg)
        if long_hash_algorithm is not None and long_hash_algorithm != (
            existing.long_hash_algorithm
        ):
            msg = (
                f"Cache at {backend.location} uses long hash "
                f"{existing.long_hash_algorithm!r}; call configure() to switch to "
                f"{long_hash_algorithm!r}."
            )
            raise ConfigurationError(msg)
        return cls(backend, existing)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def location(self) -> str:
        return self._backend.location

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def short_hash_algorithm(self) -> str:
        return self._settings.short_hash_algorithm

    @property
    def long_hash_algorithm(self) -> str:
        return self._settings.long_hash_algorithm

    @property
    def is_durable(self) -> bool:
        return not isinstance(self._backend, MemoryBackend)

    def configure(self, *, long_hash_algorithm: str) -> FingerprintStore:
        """Switch the long hash algorithm of this cache.

        Records written under the previous algorithm remain readable but are
        outdated from now on, which forces a full rebuild.

        Returns
        -------
        FingerprintStore
            A new handle reflecting the updated settings.

        Raises
        ------
        ConfigurationError
            Raised when the algorithm is unsupported.
        """
        try:
            algorithm = validate_long_algorithm(long_hash_algorithm)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if algorithm == self._settings.long_hash_algorithm:
            return self
        settings = CacheSettings(
            short_hash_algorithm=self._settings.short_hash_algorithm,
            long_hash_algorithm=algorithm,
            layout_version=self._settings.layout_version,
        )
        self._backend.set(SETTINGS_KEY, dumps_msgpack(settings))
        logger.info(
            "Cache at %s switched long hash %s -> %s; all records are now outdated",
            self.location,
            self._settings.long_hash_algorithm,
            algorithm,
        )
        return FingerprintStore(self._backend, settings)

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    def name_key(self, name: str) -> str:
        """Return the bounded storage key component for a node name.

        Returns
        -------
        str
            Short hash of the name.
        """
        return short_hash_text(name, algorithm=self.short_hash_algorithm)

    def content_hash(self, payload: bytes) -> str:
        """Return the long hash of a payload.

        Returns
        -------
        str
            Long hash hex digest.
        """
        return long_hash(payload, algorithm=self.long_hash_algorithm)

    def text_hash(self, text: str) -> str:
        """Return the long hash of UTF-8 text.

        Returns
        -------
        str
            Long hash hex digest.
        """
        return self.content_hash(text.encode("utf-8"))

    def file_hash(self, path: Path) -> str:
        """Return the long hash of a file's contents.

        Returns
        -------
        str
            Long hash hex digest.
        """
        return hash_file(path, algorithm=self.long_hash_algorithm)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, name: str) -> FingerprintRecord | None:
        """Return the fingerprint record for ``name`` when one exists.

        Returns
        -------
        FingerprintRecord | None
            Stored record, or ``None`` when the node was never built.
        """
        payload = self._backend.get(RECORDS_PREFIX + self.name_key(name))
        if payload is None:
            return None
        record = _decode(payload, FingerprintRecord, what=f"record for {name!r}")
        if record.name != name:
            logger.warning(
                "Record key for %r holds a record for %r; treating as absent",
                name,
                record.name,
            )
            return None
        return record

    def records(self) -> tuple[FingerprintRecord, ...]:
        """Return every stored fingerprint record, sorted by name.

        Returns
        -------
        tuple[FingerprintRecord, ...]
            Stored records.
        """
        records: list[FingerprintRecord] = []
        for key in self._backend.list(RECORDS_PREFIX):
            payload = self._backend.get(key)
            if payload is None:
                continue
            records.append(_decode(payload, FingerprintRecord, what=f"record {key!r}"))
        return tuple(sorted(records, key=lambda record: record.name))

    def cached_names(self, *, include_imports: bool = False) -> frozenset[str]:
        """Return the names of nodes that have a fingerprint record.

        Returns
        -------
        frozenset[str]
            Names with a stored record.
        """
        return frozenset(
            record.name
            for record in self.records()
            if include_imports or record.kind == "target"
        )

    def commit(self, record: FingerprintRecord, payload: bytes | None = None) -> None:
        """Atomically publish a record, storing its value payload first.

        The payload lands under its content address before the record is
        written with a single backend ``set``, so a reader sees either the
        previous record or the complete new one.

        Raises
        ------
        CacheIOError
            Raised when the payload does not match ``record.value_hash`` or
            when the record key is owned by a different name.
        """
        if payload is not None:
            digest = self.put_object(payload)
            if record.value_hash != digest:
                msg = (
                    f"Value hash mismatch for {record.name!r}: "
                    f"record has {record.value_hash!r}, payload hashes to {digest!r}."
                )
                raise CacheIOError(msg)
        key = RECORDS_PREFIX + self.name_key(record.name)
        current = self._backend.get(key)
        if current is not None:
            owner = _decode(current, FingerprintRecord, what=f"record {key!r}").name
            if owner != record.name:
                msg = (
                    f"Short hash collision: {record.name!r} and {owner!r} both map to "
                    f"{key!r} under {self.short_hash_algorithm!r}."
                )
                raise CacheIOError(msg)
        self._backend.set(key, dumps_msgpack(record))
        self._backend.delete(FAILURES_PREFIX + self.name_key(record.name))

    def delete_record(self, name: str) -> bool:
        """Delete the record for ``name``.

        Returns
        -------
        bool
            True when a record was removed.
        """
        if self.get_record(name) is None:
            return False
        return self._backend.delete(RECORDS_PREFIX + self.name_key(name))

    # ------------------------------------------------------------------
    # Content objects
    # ------------------------------------------------------------------

    def put_object(self, payload: bytes) -> str:
        """Store a payload under its content address.

        Returns
        -------
        str
            Long hash of the payload.
        """
        digest = self.content_hash(payload)
        key = OBJECTS_PREFIX + digest
        if not self._backend.exists(key):
            self._backend.set(key, payload)
        return digest

    def get_object(self, digest: str) -> bytes:
        """Return the payload stored under a content address.

        Raises
        ------
        CacheIOError
            Raised when the object is missing.

        Returns
        -------
        bytes
            Stored payload.
        """
        payload = self._backend.get(OBJECTS_PREFIX + digest)
        if payload is None:
            msg = f"Object {digest!r} is missing from cache {self.location}."
            raise CacheIOError(msg)
        return payload

    def object_hashes(self) -> frozenset[str]:
        """Return the content addresses of all stored objects.

        Returns
        -------
        frozenset[str]
            Stored object digests.
        """
        return frozenset(
            key.removeprefix(OBJECTS_PREFIX) for key in self._backend.list(OBJECTS_PREFIX)
        )

    def delete_objects(self, digests: Iterable[str]) -> int:
        """Delete content objects by address.

        Returns
        -------
        int
            Count of deleted objects.
        """
        return sum(1 for digest in digests if self._backend.delete(OBJECTS_PREFIX + digest))

    def read_value(self, name: str) -> object:
        """Return the stored value of a built target.

        Raises
        ------
        KeyError
            Raised when ``name`` has no stored value.

        Returns
        -------
        object
            The target's value from its last successful build.
        """
        record = self.get_record(name)
        if record is None:
            msg = f"{name!r} is not in the cache at {self.location}."
            raise KeyError(msg)
        if record.value_hash is None:
            msg = f"{name!r} is an import; only target values are stored."
            raise KeyError(msg)
        return decode_value(self.get_object(record.value_hash))

    def garbage_collect(self) -> int:
        """Delete objects no longer referenced by any record.

        Returns
        -------
        int
            Count of deleted objects.
        """
        referenced = {record.value_hash for record in self.records() if record.value_hash}
        orphans = self.object_hashes() - referenced
        removed = self.delete_objects(sorted(orphans))
        logger.info("Garbage collected %d unreferenced objects from %s", removed, self.location)
        return removed

    # ------------------------------------------------------------------
    # Failures and progress
    # ------------------------------------------------------------------

    def record_failure(self, failure: FailureRecord) -> None:
        self._backend.set(FAILURES_PREFIX + self.name_key(failure.name), dumps_msgpack(failure))

    def get_failure(self, name: str) -> FailureRecord | None:
        """Return diagnostics for the last failed build of ``name``.

        Returns
        -------
        FailureRecord | None
            Failure diagnostics, or ``None`` when the last build succeeded.
        """
        payload = self._backend.get(FAILURES_PREFIX + self.name_key(name))
        if payload is None:
            return None
        failure = _decode(payload, FailureRecord, what=f"failure for {name!r}")
        return failure if failure.name == name else None

    def set_progress(self, name: str, state: ProgressState) -> None:
        record = ProgressRecord(name=name, state=state, updated_at=time.time())
        self._backend.set(PROGRESS_PREFIX + self.name_key(name), dumps_msgpack(record))

    def progress(self) -> dict[str, ProgressState]:
        """Return the latest progress state of every tracked node.

        Returns
        -------
        dict[str, ProgressState]
            Mapping of node names to progress states.
        """
        states: dict[str, ProgressState] = {}
        for key in self._backend.list(PROGRESS_PREFIX):
            payload = self._backend.get(key)
            if payload is None:
                continue
            record = _decode(payload, ProgressRecord, what=f"progress {key!r}")
            states[record.name] = record.state
        return dict(sorted(states.items()))

    def clear_progress(self) -> None:
        """Drop every progress entry, including markers left by an interrupted run."""
        for key in self._backend.list(PROGRESS_PREFIX):
            self._backend.delete(key)

    def forget(self, name: str) -> None:
        """Drop failure and progress entries for ``name``."""
        self._backend.delete(FAILURES_PREFIX + self.name_key(name))
        self._backend.delete(PROGRESS_PREFIX + self.name_key(name))

    def destroy(self) -> None:
        """Remove the whole cache, including its storage location."""
        self._backend.destroy()


def _read_settings(backend: CacheBackend) -> CacheSettings | None:
    payload = backend.get(SETTINGS_KEY)
    if payload is None:
        return None
    return _decode(payload, CacheSettings, what="cache settings")


def _decode[T](payload: bytes, target_type: type[T], *, what: str) -> T:
    try:
        return loads_msgpack(payload, target_type=target_type)
    except (msgspec.DecodeError, msgspec.ValidationError) as exc:
        msg = f"Corrupt {what}: {exc}"
        raise CacheIOError(msg) from exc


__all__ = [
    "FAILURES_PREFIX",
    "OBJECTS_PREFIX",
    "PROGRESS_PREFIX",
    "RECORDS_PREFIX",
    "SETTINGS_KEY",
    "FingerprintStore",
]
