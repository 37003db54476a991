"""Tests for rendering command results."""

from __future__ import annotations

import io

from rich.console import Console

from cli.app import app
from cli.exit_codes import ExitCode
from cli.result import CliResult
from cli.result_action import cli_result_action


def _render(result: object) -> tuple[int, str]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)
    exit_code = cli_result_action(app, None, result, console=console)
    return exit_code, buffer.getvalue()


def test_none_and_int_results() -> None:
    assert _render(None) == (ExitCode.SUCCESS, "")
    assert _render(7)[0] == 7


def test_success_result_renders_details_and_duration() -> None:
    result = CliResult.success(
        summary="Built 2 target(s)",
        details={"built": ("a", "b"), "failed": {"c": "boom"}, "skipped": ()},
        metrics={"duration_s": 0.25},
    )
    exit_code, output = _render(result)
    assert exit_code == ExitCode.SUCCESS
    assert "Built 2 target(s)" in output
    assert "a, b" in output
    assert "c: boom" in output
    assert "Duration: 0.250s" in output


def test_error_result_returns_its_code() -> None:
    exit_code, output = _render(CliResult.error(ExitCode.BUILD_ERROR, summary="1 failed"))
    assert exit_code == ExitCode.BUILD_ERROR
    assert "1 failed" in output


def test_unexpected_result_type() -> None:
    exit_code, output = _render(object())
    assert exit_code == ExitCode.GENERAL_ERROR
    assert "Unexpected command return type" in output
