"""Snapshot imported values and definitions for change detection."""

from __future__ import annotations

import inspect
import textwrap
import types

from cache.codec import fingerprint_bytes
from core.errors import ExtractionError


def definition_source(value: object) -> str | None:
    """Return the dedented source of a function or class, if available.

    Returns
    -------
    str | None
        Source text, or ``None`` for objects without retrievable source.
    """
    if not (inspect.isfunction(value) or inspect.isclass(value) or inspect.ismethod(value)):
        return None
    try:
        source = inspect.getsource(value)
    except (OSError, TypeError):
        return None
    return textwrap.dedent(source)


def _qualified_name(value: object) -> str:
    module = getattr(value, "__module__", None) or "<unknown>"
    qualname = getattr(value, "__qualname__", None) or getattr(value, "__name__", repr(value))
    return f"{module}.{qualname}"


def import_payload(name: str, value: object) -> bytes:
    """Return the bytes an import's fingerprint is computed from.

    Functions and classes are fingerprinted by their source text, so editing
    a helper marks every command that uses it as outdated. Modules and
    callables without source are fingerprinted by their qualified name; any
    other value by its canonical serialized form.

    Raises
    ------
    ExtractionError
        Raised when the value cannot be serialized.

    Returns
    -------
    bytes
        Fingerprint payload.
    """
    if isinstance(value, types.ModuleType):
        return f"module:{value.__name__}".encode()
    source = definition_source(value)
    if source is not None:
        return f"source:{source}".encode()
    if callable(value) and hasattr(value, "__qualname__"):
        return f"callable:{_qualified_name(value)}".encode()
    try:
        return fingerprint_bytes(value)
    except TypeError as exc:
        msg = f"imported value of type {type(value).__name__} cannot be fingerprinted: {exc}"
        raise ExtractionError(name, msg) from exc


__all__ = ["definition_source", "import_payload"]
