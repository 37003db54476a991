"""Telemetry wrappers for CLI invocation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from cyclopts import App
from cyclopts.exceptions import CycloptsError
from rich.console import Console

from cli.context import RunContext
from cli.exit_codes import ExitCode
from cli.result_action import cli_result_action
from core.errors import TargetflowError
from obs.otel import SCOPE_OBS, set_span_attributes, stage_span

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CliInvokeEvent:
    """Structured telemetry event for CLI invocation."""

    ok: bool
    command: str | None
    parse_ms: float
    exec_ms: float
    exit_code: int
    error_class: str | None = None
    error_message: str | None = None


@dataclass
class _InvokeState:
    t0: float
    command_name: str
    parse_ms: float | None = None
    exec_ms: float | None = None

    def finish_parse(self) -> None:
        if self.parse_ms is None:
            self.parse_ms = (time.perf_counter() - self.t0) * 1000.0

    def failed(self, exc: BaseException, exit_code: int) -> CliInvokeEvent:
        self.finish_parse()
        return CliInvokeEvent(
            ok=False,
            command=self.command_name,
            parse_ms=self.parse_ms or 0.0,
            exec_ms=self.exec_ms or 0.0,
            exit_code=exit_code,
            error_class=exc.__class__.__name__,
            error_message=str(exc),
        )


def _command_name_from_tokens(tokens: list[str] | None) -> str:
    if not tokens:
        return "<default>"
    return tokens[0]


def _run_command(
    app: App,
    tokens: list[str],
    *,
    run_context: RunContext | None,
    state: _InvokeState,
) -> int:
    command, bound, ignored = app.parse_args(tokens, exit_on_error=False, print_error=True)
    state.parse_ms = (time.perf_counter() - state.t0) * 1000.0
    state.command_name = getattr(command, "__name__", repr(command))

    if run_context is not None and ignored:
        for name, hint in ignored.items():
            if hint is RunContext or name == "run_context":
                bound.arguments[name] = run_context

    t1 = time.perf_counter()
    with stage_span(
        "cli.command",
        stage="cli",
        scope_name=SCOPE_OBS,
        attributes={"cli.command": state.command_name},
    ):
        result = command(*bound.args, **bound.kwargs)
    state.exec_ms = (time.perf_counter() - t1) * 1000.0
    return cli_result_action(app, command, result)


def invoke_with_telemetry(
    app: App,
    tokens: list[str] | None,
    *,
    run_context: RunContext | None,
    console: Console | None = None,
) -> tuple[int, CliInvokeEvent]:
    """Execute CLI with telemetry capture.

    Parameters
    ----------
    app
        CLI app instance.
    tokens
        Command tokens to execute.
    run_context
        Runtime context injected into commands that accept one.
    console
        Console used to report domain errors.

    Returns
    -------
    tuple[int, CliInvokeEvent]
        Exit code and the invocation event.
    """
    tokens = list(tokens or ())
    state = _InvokeState(time.perf_counter(), _command_name_from_tokens(tokens))
    attributes: dict[str, object] = {"cli.command": state.command_name, "cli.tokens": len(tokens)}
    if run_context is not None:
        attributes["cli.run_id"] = run_context.run_id
    with stage_span(
        "cli.invocation", stage="cli", scope_name=SCOPE_OBS, attributes=attributes
    ) as span:
        try:
            exit_code = _run_command(app, tokens, run_context=run_context, state=state)
        except CycloptsError as exc:
            exit_code = int(ExitCode.from_exception(exc))
            event = state.failed(exc, exit_code)
        except TargetflowError as exc:
            exit_code = int(ExitCode.from_exception(exc))
            (console or Console(stderr=True)).print(f"Error: {exc}", style="bold red")
            event = state.failed(exc, exit_code)
        except Exception as exc:
            exit_code = int(ExitCode.from_exception(exc))
            _LOGGER.exception("Command execution failed.")
            event = state.failed(exc, exit_code)
        else:
            event = CliInvokeEvent(
                ok=exit_code == ExitCode.SUCCESS,
                command=state.command_name,
                parse_ms=state.parse_ms or 0.0,
                exec_ms=state.exec_ms or 0.0,
                exit_code=exit_code,
            )
        set_span_attributes(span, {"cli.exit_code": exit_code, "cli.ok": event.ok})
    _LOGGER.debug(
        "CLI command %s finished with exit code %d (parse %.1fms, exec %.1fms)",
        event.command,
        event.exit_code,
        event.parse_ms,
        event.exec_ms,
    )
    return exit_code, event


__all__ = ["CliInvokeEvent", "invoke_with_telemetry"]
