"""Result action handler for Cyclopts integration."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from cli.exit_codes import ExitCode
from cli.result import CliResult

if TYPE_CHECKING:
    from cyclopts import App


def cli_result_action(
    app: App,
    cmd: object,
    result: Any,
    *,
    console: Console | None = None,
) -> int:
    """Handle command results and convert to exit codes.

    This function is registered as the ``result_action`` for the CLI app.
    It normalizes different return types to integer exit codes.

    Parameters
    ----------
    app
        The Cyclopts application instance.
    cmd
        The resolved command that was executed.
    result
        The return value from the command function.
    console
        Console to print to; a new stdout console when omitted.

    Returns
    -------
    int
        Exit code for the process.
    """
    _ = app, cmd
    console = console or Console()

    if result is None:
        return ExitCode.SUCCESS

    if isinstance(result, int):
        return result

    if isinstance(result, CliResult):
        style = None if result.ok else "bold red"
        if result.summary:
            console.print(result.summary, style=style)
        if result.details:
            console.print(_details_table(result.details))
        duration = result.metrics.get("duration_s")
        if duration is not None:
            console.print(f"Duration: {duration:.3f}s")
        return int(result.exit_code)

    console.print(f"Unexpected command return type: {type(result).__name__} (value: {result!r})")
    return ExitCode.GENERAL_ERROR


def _details_table(details: Mapping[str, object]) -> Table:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="bold")
    table.add_column()
    for label, value in details.items():
        table.add_row(label, _render_value(value))
    return table


def _render_value(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return "\n".join(f"{key}: {item}" for key, item in value.items()) or "-"
    if isinstance(value, Iterable):
        return ", ".join(str(item) for item in value) or "-"
    return str(value)


__all__ = ["cli_result_action"]
