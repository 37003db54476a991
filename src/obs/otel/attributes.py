"""Normalize OpenTelemetry attributes for targetflow telemetry."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import cast

from opentelemetry.util.types import AttributeValue

from utils.env_utils import env_int

_MAX_ATTRIBUTE_LENGTH = env_int("OTEL_ATTRIBUTE_VALUE_LENGTH_LIMIT")


def _truncate_str(value: str) -> str:
    if _MAX_ATTRIBUTE_LENGTH is None or len(value) <= _MAX_ATTRIBUTE_LENGTH:
        return value
    return value[:_MAX_ATTRIBUTE_LENGTH]


def _is_scalar(value: object) -> bool:
    return isinstance(value, (str, bool, int, float))


def _normalize_sequence(values: Sequence[object]) -> AttributeValue:
    items = [item for item in values if item is not None]
    if not items:
        return []
    if all(isinstance(item, bool) for item in items):
        return [bool(item) for item in items]
    if all(isinstance(item, int) and not isinstance(item, bool) for item in items):
        return [cast("int", item) for item in items]
    if all(isinstance(item, (int, float)) and not isinstance(item, bool) for item in items):
        return [float(cast("int | float", item)) for item in items]
    return [_truncate_str(str(item)) for item in items]


def normalize_attributes(attrs: Mapping[str, object] | None) -> dict[str, AttributeValue]:
    """Return attributes coerced to OpenTelemetry-compatible values.

    ``None`` values are dropped, sequences are made homogeneous and anything
    else is stringified.

    Returns
    -------
    dict[str, AttributeValue]
        Normalized attributes.
    """
    if not attrs:
        return {}
    normalized: dict[str, AttributeValue] = {}
    for key, value in attrs.items():
        if value is None:
            continue
        if isinstance(value, str):
            normalized[key] = _truncate_str(value)
        elif _is_scalar(value):
            normalized[key] = cast("AttributeValue", value)
        elif isinstance(value, (set, frozenset)):
            normalized[key] = _normalize_sequence(sorted(value, key=str))
        elif isinstance(value, (list, tuple)):
            normalized[key] = _normalize_sequence(value)
        else:
            normalized[key] = _truncate_str(str(value))
    return normalized


__all__ = ["normalize_attributes"]
