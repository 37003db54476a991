"""Tests for stored-value serialization and value fingerprints."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntEnum

import msgspec
import pytest

from cache.codec import decode_value, encode_value, fingerprint_bytes
from core.errors import CacheIOError


@dataclass(frozen=True)
class Point:
    x: int
    y: int


class Opaque:
    def __init__(self, value: int) -> None:
        self.value = value


def test_fingerprint_bytes_is_order_independent_for_sets() -> None:
    """Set and dict ordering never changes a value fingerprint."""
    assert fingerprint_bytes({"b", "a", "c"}) == fingerprint_bytes({"c", "a", "b"})
    assert fingerprint_bytes({"y": 1, "x": 2}) == fingerprint_bytes({"x": 2, "y": 1})


def test_fingerprint_bytes_distinguishes_values() -> None:
    """Different plain values produce different fingerprints."""
    assert fingerprint_bytes([1, 2]) != fingerprint_bytes([2, 1])
    assert fingerprint_bytes(Point(1, 2)) != fingerprint_bytes(Point(2, 1))


@dataclass(frozen=True)
class Meters:
    amount: int


@dataclass(frozen=True)
class Feet:
    amount: int


class Unit(IntEnum):
    ONE = 1


class Span(msgspec.Struct, frozen=True):
    amount: int


def test_fingerprint_bytes_keeps_container_types_apart() -> None:
    """Lists, tuples and sets with the same items fingerprint differently."""
    payloads = {
        fingerprint_bytes([1, 2]),
        fingerprint_bytes((1, 2)),
        fingerprint_bytes({1, 2}),
        fingerprint_bytes(frozenset({1, 2})),
    }
    assert len(payloads) == 4


def test_fingerprint_bytes_keeps_record_types_apart() -> None:
    """Records with identical fields but different types never collide."""
    payloads = {
        fingerprint_bytes(Meters(3)),
        fingerprint_bytes(Feet(3)),
        fingerprint_bytes(Span(amount=3)),
        fingerprint_bytes({"amount": 3}),
    }
    assert len(payloads) == 4


def test_fingerprint_bytes_keeps_enum_apart_from_raw_value() -> None:
    """An enum member is not fingerprinted as its underlying value."""
    assert fingerprint_bytes(Unit.ONE) != fingerprint_bytes(1)
    assert fingerprint_bytes(True) != fingerprint_bytes(1)
    assert fingerprint_bytes(1) != fingerprint_bytes(1.0)


def test_fingerprint_bytes_is_order_independent_for_nested_mixed_keys() -> None:
    """Dicts with non-string keys still fingerprint independently of order."""
    first = {1: "a", "1": [frozenset({"x", "y"})]}
    second = {"1": [frozenset({"y", "x"})], 1: "a"}
    assert fingerprint_bytes(first) == fingerprint_bytes(second)


def test_fingerprint_bytes_falls_back_to_pickle() -> None:
    """Objects msgpack cannot encode are fingerprinted from their pickle."""
    payload = fingerprint_bytes(Opaque(3))
    assert payload.startswith(b"pickle:")
    assert payload == fingerprint_bytes(Opaque(3))


def test_unserializable_value_raises_type_error() -> None:
    """Values that cannot be pickled are reported as TypeError."""
    with pytest.raises(TypeError, match="cannot be serialized"):
        encode_value(threading.Lock())


def test_corrupt_payload_raises_cache_io_error() -> None:
    """A damaged blob surfaces as CacheIOError."""
    with pytest.raises(CacheIOError):
        decode_value(encode_value(list(range(100)))[:-5])


def test_round_trip_preserves_type() -> None:
    """Stored values decode to an equal object of the same type."""
    value = Point(3, 4)
    assert decode_value(encode_value(value)) == value
