"""Shared msgspec policy for persisted records and canonical hashing."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Literal

import msgspec


class StructBaseStrict(
    msgspec.Struct,
    frozen=True,
    kw_only=True,
    omit_defaults=True,
    repr_omit_defaults=True,
    forbid_unknown_fields=True,
):
    """Base struct for declarations and options validated on construction."""


class StructBaseCompat(
    msgspec.Struct,
    frozen=True,
    kw_only=True,
    omit_defaults=True,
    repr_omit_defaults=True,
    forbid_unknown_fields=False,
):
    """Base struct for cache records that newer releases may extend."""


_DEFAULT_ORDER: Literal["deterministic"] = "deterministic"


def _json_enc_hook(obj: object) -> object:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, type):
        return f"{obj.__module__}.{obj.__qualname__}"
    if isinstance(obj, (frozenset, set)):
        return sorted(obj, key=str)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj).hex()
    raise TypeError


def _msgpack_enc_hook(obj: object) -> object:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (frozenset, set)):
        return sorted(obj, key=str)
    raise TypeError


JSON_ENCODER_SORTED = msgspec.json.Encoder(
    enc_hook=_json_enc_hook,
    order="sorted",
    decimal_format="string",
    uuid_format="canonical",
)
MSGPACK_ENCODER = msgspec.msgpack.Encoder(
    enc_hook=_msgpack_enc_hook,
    order=_DEFAULT_ORDER,
    decimal_format="string",
    uuid_format="canonical",
)

_DECODERS: dict[Any, msgspec.msgpack.Decoder[Any]] = {}
_DECODERS_LOCK = threading.Lock()


def _decoder(target_type: Any) -> msgspec.msgpack.Decoder[Any]:
    with _DECODERS_LOCK:
        decoder = _DECODERS.get(target_type)
        if decoder is None:
            decoder = msgspec.msgpack.Decoder(type=target_type)
            _DECODERS[target_type] = decoder
        return decoder


def dumps_msgpack(obj: object) -> bytes:
    """Serialize an object to MessagePack bytes.

    Returns
    -------
    bytes
        MessagePack payload with deterministic map ordering.
    """
    return MSGPACK_ENCODER.encode(obj)


def loads_msgpack[T](buf: bytes, *, target_type: type[T]) -> T:
    """Deserialize MessagePack bytes into the requested type.

    Decoders are built once per target type and shared across threads.

    Raises
    ------
    msgspec.DecodeError
        Raised when the payload is malformed or does not match the type.

    Returns
    -------
    T
        Decoded payload.
    """
    return _decoder(target_type).decode(buf)


def to_builtins(obj: object, *, str_keys: bool = True) -> object:
    """Convert an object into builtin JSON-friendly types.

    Returns
    -------
    object
        Builtin-friendly representation.
    """
    return msgspec.to_builtins(
        obj,
        order=_DEFAULT_ORDER,
        str_keys=str_keys,
        enc_hook=_json_enc_hook,
    )


__all__ = [
    "JSON_ENCODER_SORTED",
    "MSGPACK_ENCODER",
    "StructBaseCompat",
    "StructBaseStrict",
    "dumps_msgpack",
    "loads_msgpack",
    "to_builtins",
]
