"""OpenTelemetry helpers for targetflow observability."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from obs.otel.attributes import normalize_attributes
    from obs.otel.metrics import (
        record_error,
        record_stage_duration,
        record_task_duration,
        reset_metrics_registry,
    )
    from obs.otel.scopes import (
        SCOPE_CACHE,
        SCOPE_EXECUTION,
        SCOPE_GRAPH,
        SCOPE_OBS,
        SCOPE_ROOT,
        SCOPE_SCHEDULING,
        scope_for_stage,
    )
    from obs.otel.tracing import (
        get_tracer,
        record_exception,
        set_span_attributes,
        span_attributes,
        stage_span,
    )

__all__ = [
    "SCOPE_CACHE",
    "SCOPE_EXECUTION",
    "SCOPE_GRAPH",
    "SCOPE_OBS",
    "SCOPE_ROOT",
    "SCOPE_SCHEDULING",
    "get_tracer",
    "normalize_attributes",
    "record_error",
    "record_exception",
    "record_stage_duration",
    "record_task_duration",
    "reset_metrics_registry",
    "scope_for_stage",
    "set_span_attributes",
    "span_attributes",
    "stage_span",
]

_EXPORT_MAP: dict[str, tuple[str, str]] = {
    "normalize_attributes": ("obs.otel.attributes", "normalize_attributes"),
    "record_error": ("obs.otel.metrics", "record_error"),
    "record_stage_duration": ("obs.otel.metrics", "record_stage_duration"),
    "record_task_duration": ("obs.otel.metrics", "record_task_duration"),
    "reset_metrics_registry": ("obs.otel.metrics", "reset_metrics_registry"),
    "SCOPE_CACHE": ("obs.otel.scopes", "SCOPE_CACHE"),
    "SCOPE_EXECUTION": ("obs.otel.scopes", "SCOPE_EXECUTION"),
    "SCOPE_GRAPH": ("obs.otel.scopes", "SCOPE_GRAPH"),
    "SCOPE_OBS": ("obs.otel.scopes", "SCOPE_OBS"),
    "SCOPE_ROOT": ("obs.otel.scopes", "SCOPE_ROOT"),
    "SCOPE_SCHEDULING": ("obs.otel.scopes", "SCOPE_SCHEDULING"),
    "scope_for_stage": ("obs.otel.scopes", "scope_for_stage"),
    "get_tracer": ("obs.otel.tracing", "get_tracer"),
    "record_exception": ("obs.otel.tracing", "record_exception"),
    "set_span_attributes": ("obs.otel.tracing", "set_span_attributes"),
    "span_attributes": ("obs.otel.tracing", "span_attributes"),
    "stage_span": ("obs.otel.tracing", "stage_span"),
}


def __getattr__(name: str) -> object:
    export = _EXPORT_MAP.get(name)
    if export is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    module_name, attr_name = export
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(__all__)
