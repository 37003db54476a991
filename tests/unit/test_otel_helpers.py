"""Tests for tracing and metric helpers without a configured SDK."""

from __future__ import annotations

import pytest

from obs.otel import (
    SCOPE_EXECUTION,
    SCOPE_GRAPH,
    SCOPE_ROOT,
    normalize_attributes,
    record_task_duration,
    scope_for_stage,
    stage_span,
)


def test_normalize_attributes() -> None:
    attrs = normalize_attributes(
        {
            "name": "a",
            "jobs": 4,
            "dry_run": False,
            "missing": None,
            "names": frozenset({"b", "a"}),
            "mixed": (1, 2.5),
            "path": object,
        }
    )
    assert attrs["name"] == "a"
    assert attrs["jobs"] == 4
    assert attrs["dry_run"] is False
    assert "missing" not in attrs
    assert attrs["names"] == ["a", "b"]
    assert attrs["mixed"] == [1.0, 2.5]
    assert attrs["path"] == str(object)
    assert normalize_attributes(None) == {}


def test_scope_for_stage() -> None:
    assert scope_for_stage("graph") == SCOPE_GRAPH
    assert scope_for_stage("build") == SCOPE_EXECUTION
    assert scope_for_stage("unknown") == SCOPE_ROOT
    assert scope_for_stage(None) == SCOPE_ROOT


def test_stage_span_propagates_errors() -> None:
    with pytest.raises(ValueError, match="bad"), stage_span("test", stage="build"):
        raise ValueError("bad")
    with stage_span("test", stage="graph", attributes={"targets": 2}) as span:
        assert span is not None
    record_task_duration("target", 0.1, status="ok")
