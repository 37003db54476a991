"""Value serialization for stored target values."""

from __future__ import annotations

import dataclasses
import pickle
from enum import Enum

import msgspec

from core.errors import CacheIOError
from serde_msgspec import MSGPACK_ENCODER

PICKLE_PROTOCOL = 5


def encode_value(value: object) -> bytes:
    """Serialize a target value for content-addressed storage.

    Raises
    ------
    TypeError
        Raised when the value cannot be serialized.

    Returns
    -------
    bytes
        Serialized payload.
    """
    try:
        return pickle.dumps(value, protocol=PICKLE_PROTOCOL)
    except (pickle.PicklingError, AttributeError, TypeError) as exc:
        msg = f"Value of type {type(value).__name__} cannot be serialized: {exc}"
        raise TypeError(msg) from exc


def decode_value(payload: bytes) -> object:
    """Deserialize a payload written by :func:`encode_value`.

    Raises
    ------
    CacheIOError
        Raised when the stored payload is corrupt.

    Returns
    -------
    object
        The stored value.
    """
    try:
        return pickle.loads(payload)  # noqa: S301
    except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
        msg = f"Stored value cannot be decoded: {exc}"
        raise CacheIOError(msg) from exc



_PLAIN_SCALARS = (type(None), bool, int, float, str, bytes)


def _type_tag(value: object) -> str:
    kind = type(value)
    return f"{kind.__module__}.{kind.__qualname__}"


def _sorted_by_encoding(items: list[object]) -> list[object]:
    return sorted(items, key=MSGPACK_ENCODER.encode)


def _canonical(value: object) -> object:
    """Lower a value to a msgpack tree where every container names its type.

    Scalars pass through only when their type is exact, so an ``IntEnum``
    member or a ``str`` subclass never collides with its raw value.

    Raises
    ------
    TypeError
        Raised when the value has no canonical form.
    """
    kind = type(value)
    if kind in _PLAIN_SCALARS:
        return value
    tag = _type_tag(value)
    if isinstance(value, (list, tuple)) and kind in {list, tuple}:
        return [tag, [_canonical(item) for item in value]]
    if isinstance(value, (set, frozenset)) and kind in {set, frozenset}:
        return [tag, _sorted_by_encoding([_canonical(item) for item in value])]
    if isinstance(value, dict) and kind is dict:
        pairs = [[_canonical(key), _canonical(item)] for key, item in value.items()]
        return [tag, _sorted_by_encoding(pairs)]
    if isinstance(value, Enum):
        return [tag, value.name]
    if isinstance(value, msgspec.Struct):
        names = value.__struct_fields__
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        names = tuple(field.name for field in dataclasses.fields(value))
    else:
        msg = f"no canonical form for {tag}"
        raise TypeError(msg)
    return [tag, [[name, _canonical(getattr(value, name))] for name in names]]


def fingerprint_bytes(value: object) -> bytes:
    """Return a canonical byte form of a value for change detection.

    Plain data (scalars, builtin containers, enums, dataclasses and msgspec
    structs) is lowered to a type-tagged tree and encoded with the
    deterministic msgpack encoder. Set and dict ordering never leaks into a
    fingerprint, while values of different types never share one. Anything
    else falls back to its pickle payload.

    Returns
    -------
    bytes
        Canonical payload.
    """
    try:
        return b"msgpack:" + MSGPACK_ENCODER.encode(_canonical(value))
    except (TypeError, OverflowError, RecursionError):
        return b"pickle:" + encode_value(value)


__all__ = ["PICKLE_PROTOCOL", "decode_value", "encode_value", "fingerprint_bytes"]
