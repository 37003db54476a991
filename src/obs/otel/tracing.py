"""Tracing helpers for targetflow instrumentation."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.util.types import AttributeValue

from obs.otel.attributes import normalize_attributes
from obs.otel.metrics import record_error, record_stage_duration
from obs.otel.scope_metadata import instrumentation_schema_url, instrumentation_version
from obs.otel.scopes import scope_for_stage

_SLOW_THRESHOLD_S = 5.0


def get_tracer(scope_name: str) -> trace.Tracer:
    """Return a tracer for the given instrumentation scope.

    Parameters
    ----------
    scope_name
        Instrumentation scope name.

    Returns
    -------
    opentelemetry.trace.Tracer
        Tracer bound to the requested scope.
    """
    return trace.get_tracer(
        scope_name,
        instrumenting_library_version=instrumentation_version() or "unknown",
        schema_url=instrumentation_schema_url(),
    )


def set_span_attributes(span: Span, attrs: Mapping[str, object] | None) -> None:
    """Attach normalized attributes to a span."""
    for key, value in normalize_attributes(attrs).items():
        span.set_attribute(key, value)


def record_exception(span: Span, exc: Exception) -> None:
    """Record an exception on a span and mark it as error."""
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR))


def span_attributes(*, attrs: Mapping[str, object] | None = None) -> dict[str, AttributeValue]:
    return normalize_attributes(attrs)


@contextmanager
def stage_span(
    name: str,
    *,
    stage: str,
    scope_name: str | None = None,
    attributes: Mapping[str, object] | None = None,
) -> Iterator[Span]:
    """Start a stage span and emit stage duration metrics.

    Parameters
    ----------
    name
        Span name.
    stage
        Stage name for metrics and attributes.
    scope_name
        Instrumentation scope name; derived from ``stage`` when omitted.
    attributes
        Optional span attributes.

    Yields
    ------
    Span
        The started span.
    """
    base_attrs: dict[str, object] = {"targetflow.stage": stage}
    if attributes:
        base_attrs.update(attributes)
    tracer = get_tracer(scope_name or scope_for_stage(stage))
    start = time.monotonic()
    status = "ok"
    with tracer.start_as_current_span(name, attributes=span_attributes(attrs=base_attrs)) as span:
        try:
            yield span
        except Exception as exc:
            status = "error"
            record_exception(span, exc)
            record_error(stage, type(exc).__name__)
            raise
        finally:
            duration_s = time.monotonic() - start
            record_stage_duration(stage, duration_s, status=status)
            slow_attrs: dict[str, object] = {}
            if duration_s >= _SLOW_THRESHOLD_S:
                slow_attrs = {"targetflow.slow": True}
            set_span_attributes(span, {"duration_s": duration_s, "status": status, **slow_attrs})


__all__ = [
    "get_tracer",
    "record_exception",
    "set_span_attributes",
    "span_attributes",
    "stage_span",
]
