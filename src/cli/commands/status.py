"""Read-only plan inspection commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from cyclopts import Parameter, validators

from cli.context import RunContext, resolve_run_context
from cli.result import CliResult
from engine.facade import assess, missed
from plan.loader import load_plan_module

_PLAN_FILE_PARAMETER = Parameter(
    help="Python file defining a module-level ``plan``.",
    validator=validators.Path(exists=True, dir_okay=False),
)


def outdated_command(
    plan_file: Annotated[Path, _PLAN_FILE_PARAMETER],
    *,
    imports: Annotated[
        bool,
        Parameter(name="--imports", help="Also list outdated imported functions and values."),
    ] = False,
    run_context: Annotated[RunContext | None, Parameter(parse=False)] = None,
) -> CliResult:
    """List the targets the next ``make`` would rebuild, with the reason.

    Returns
    -------
    CliResult
        Outdated names mapped to their reason.
    """
    context = resolve_run_context(run_context)
    loaded = load_plan_module(plan_file)
    report = assess(loaded.plan, context.inspection_cache(), environment=loaded.environment)
    names = sorted(report.outdated_names(include_imports=imports))
    if not names:
        return CliResult.success(summary="Everything is up to date.")
    details = {name: report.assessments[name].reason or "outdated" for name in names}
    return CliResult.success(summary=f"{len(names)} node(s) outdated.", details=details)


def missed_command(
    plan_file: Annotated[Path, _PLAN_FILE_PARAMETER],
) -> CliResult:
    """List names commands reference that are neither targets nor globals.

    Returns
    -------
    CliResult
        Untracked names.
    """
    loaded = load_plan_module(plan_file)
    names = sorted(missed(loaded.plan, environment=loaded.environment))
    if not names:
        return CliResult.success(summary="No untracked names.")
    return CliResult.success(
        summary=f"{len(names)} untracked name(s).",
        details={"untracked": names},
    )


__all__ = ["missed_command", "outdated_command"]
