"""Metrics catalog and helpers for targetflow telemetry.

Only the OpenTelemetry API is used; without a configured SDK meter provider
every instrument is a no-op.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass

from opentelemetry import metrics

from obs.otel.attributes import normalize_attributes
from obs.otel.scope_metadata import instrumentation_schema_url, instrumentation_version
from obs.otel.scopes import SCOPE_OBS

STAGE_DURATION = "targetflow.stage.duration"
TASK_DURATION = "targetflow.task.duration"
ERROR_COUNT = "targetflow.error.count"


@dataclass
class MetricsRegistry:
    """Registry for targetflow metric instruments."""

    stage_duration: metrics.Histogram
    task_duration: metrics.Histogram
    error_count: metrics.Counter


_REGISTRY_CACHE: dict[str, MetricsRegistry | None] = {"value": None}
_REGISTRY_LOCK = threading.Lock()


def _meter() -> metrics.Meter:
    version = instrumentation_version() or "unknown"
    return metrics.get_meter(SCOPE_OBS, version, schema_url=instrumentation_schema_url())


def _registry() -> MetricsRegistry:
    with _REGISTRY_LOCK:
        cached = _REGISTRY_CACHE["value"]
        if cached is not None:
            return cached
        meter = _meter()
        registry = MetricsRegistry(
            stage_duration=meter.create_histogram(
                STAGE_DURATION,
                unit="s",
                description="Engine stage duration (seconds).",
            ),
            task_duration=meter.create_histogram(
                TASK_DURATION,
                unit="s",
                description="Target build duration (seconds).",
            ),
            error_count=meter.create_counter(
                ERROR_COUNT,
                unit="1",
                description="Errors raised or recorded by the engine.",
            ),
        )
        _REGISTRY_CACHE["value"] = registry
        return registry


def reset_metrics_registry() -> None:
    """Drop cached instruments so the next call binds to the current provider."""
    with _REGISTRY_LOCK:
        _REGISTRY_CACHE["value"] = None


def record_stage_duration(
    stage: str,
    duration_s: float,
    *,
    status: str,
    attributes: Mapping[str, object] | None = None,
) -> None:
    """Record a stage duration histogram value."""
    payload: dict[str, object] = {"stage": stage, "status": status}
    if attributes:
        payload.update(attributes)
    _registry().stage_duration.record(duration_s, normalize_attributes(payload))


def record_task_duration(
    task_kind: str,
    duration_s: float,
    *,
    status: str,
    attributes: Mapping[str, object] | None = None,
) -> None:
    """Record a target build duration histogram value."""
    payload: dict[str, object] = {"task_kind": task_kind, "status": status}
    if attributes:
        payload.update(attributes)
    _registry().task_duration.record(duration_s, normalize_attributes(payload))


def record_error(
    stage: str,
    error_type: str,
    *,
    attributes: Mapping[str, object] | None = None,
) -> None:
    """Increment the error count metric."""
    payload: dict[str, object] = {"stage": stage, "error_type": error_type}
    if attributes:
        payload.update(attributes)
    _registry().error_count.add(1, normalize_attributes(payload))


__all__ = [
    "ERROR_COUNT",
    "STAGE_DURATION",
    "TASK_DURATION",
    "MetricsRegistry",
    "record_error",
    "record_stage_duration",
    "record_task_duration",
    "reset_metrics_registry",
]
