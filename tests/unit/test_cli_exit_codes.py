"""Tests for mapping exceptions and results to CLI exit codes."""

from __future__ import annotations

import pytest

from cli.exit_codes import ExitCode
from cli.result import CliResult
from core.errors import (
    AmbiguousOutputError,
    BuildError,
    CacheIOError,
    ConfigurationError,
    CycleError,
    ExtractionError,
    PlanValidationError,
)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigurationError("bad jobs"), ExitCode.CONFIG_ERROR),
        (PlanValidationError("duplicate"), ExitCode.VALIDATION_ERROR),
        (CycleError(["a", "b"]), ExitCode.GRAPH_ERROR),
        (AmbiguousOutputError("out.txt", ["a", "b"]), ExitCode.GRAPH_ERROR),
        (ExtractionError("a", "syntax error"), ExitCode.EXTRACTION_ERROR),
        (BuildError("a", "boom"), ExitCode.BUILD_ERROR),
        (CacheIOError("disk full"), ExitCode.CACHE_ERROR),
        (KeyError("a"), ExitCode.VALIDATION_ERROR),
        (FileNotFoundError("plan.py"), ExitCode.CONFIG_ERROR),
        (RuntimeError("unexpected"), ExitCode.GENERAL_ERROR),
    ],
)
def test_exit_code_from_exception(exc: BaseException, expected: ExitCode) -> None:
    assert ExitCode.from_exception(exc) == expected


def test_cache_errors_are_not_config_errors() -> None:
    """CacheIOError subclasses OSError but keeps its own code."""
    assert isinstance(CacheIOError("x"), OSError)
    assert ExitCode.from_exception(CacheIOError("x")) == ExitCode.CACHE_ERROR


def test_cli_result_constructors() -> None:
    ok = CliResult.success(summary="done")
    assert ok.ok
    assert ok.details == {}
    failed = CliResult.from_exception(CycleError(["a"]))
    assert not failed.ok
    assert failed.exit_code == ExitCode.GRAPH_ERROR
    assert failed.summary is not None
    assert "a -> a" in failed.summary
