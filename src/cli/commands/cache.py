"""Cache query and maintenance commands."""

from __future__ import annotations

import logging
from typing import Annotated

from cyclopts import Parameter
from rich.pretty import pretty_repr

from cli.context import RunContext, resolve_run_context
from cli.exit_codes import ExitCode
from cli.groups import maintenance_group
from cli.result import CliResult
from engine.facade import (
    build_times,
    cache_stats,
    cached_names,
    clean,
    diagnose,
    gc,
    progress,
    read,
    verify,
)

logger = logging.getLogger(__name__)

_RUN_CONTEXT = Parameter(parse=False)


def cached_command(
    *,
    imports: Annotated[
        bool,
        Parameter(name="--imports", help="Also list cached imports."),
    ] = False,
    run_context: Annotated[RunContext | None, _RUN_CONTEXT] = None,
) -> CliResult:
    """List the nodes that have a cache record.

    Returns
    -------
    CliResult
        Cached names with the duration of their last build.
    """
    cache = resolve_run_context(run_context).existing_cache()
    times = build_times(cache)
    states = progress(cache)
    names = sorted(cached_names(cache, include_imports=imports))
    details: dict[str, object] = {}
    for name in names:
        line = f"{times[name]:.3f}s" if name in times else "import"
        state = states.get(name)
        details[name] = f"{line} ({state})" if state is not None else line
    return CliResult.success(summary=f"{len(names)} cached node(s).", details=details)


def show_command(
    name: Annotated[str, Parameter(help="Target whose cached value is printed.")],
    *,
    run_context: Annotated[RunContext | None, _RUN_CONTEXT] = None,
) -> CliResult:
    """Print the value a target had at its last successful build.

    Returns
    -------
    CliResult
        The rendered value, or a validation error for unknown targets.
    """
    cache = resolve_run_context(run_context).existing_cache()
    try:
        value = read(name, cache)
    except KeyError:
        return CliResult.error(ExitCode.VALIDATION_ERROR, summary=f"{name!r} is not cached.")
    return CliResult.success(summary=pretty_repr(value))


def diagnose_command(
    name: Annotated[str, Parameter(help="Target whose last failure is shown.")],
    *,
    run_context: Annotated[RunContext | None, _RUN_CONTEXT] = None,
) -> CliResult:
    """Show the error and traceback of a target's last failed build.

    Returns
    -------
    CliResult
        Failure diagnostics, or a short note when there is none.
    """
    cache = resolve_run_context(run_context).existing_cache()
    failure = diagnose(name, cache)
    if failure is None:
        return CliResult.success(summary=f"No recorded failure for {name!r}.")
    return CliResult.success(
        summary=failure.traceback.rstrip() or f"{failure.error_type}: {failure.message}",
        details={"target": failure.name, "error": failure.error_type, "message": failure.message},
    )


def clean_command(
    names: Annotated[
        tuple[str, ...],
        Parameter(help="Records to remove; all target records when omitted."),
    ] = (),
    *,
    purge: Annotated[
        bool,
        Parameter(
            name="--purge",
            help="Also remove import records and unreferenced values.",
            negative="",
            group=maintenance_group,
        ),
    ] = False,
    destroy: Annotated[
        bool,
        Parameter(
            name="--destroy",
            help="Delete the whole cache directory.",
            negative="",
            group=maintenance_group,
        ),
    ] = False,
    run_context: Annotated[RunContext | None, _RUN_CONTEXT] = None,
) -> CliResult:
    """Remove cache records so the affected targets rebuild.

    Returns
    -------
    CliResult
        Names of the removed records.
    """
    cache = resolve_run_context(run_context).existing_cache()
    removed = clean(*names, cache=cache, destroy=destroy, purge=purge)
    if destroy:
        return CliResult.success(summary=f"Destroyed cache at {cache.location}.")
    return CliResult.success(
        summary=f"Removed {len(removed)} record(s).",
        details={"removed": removed} if removed else None,
    )


def gc_command(
    *,
    check: Annotated[
        bool,
        Parameter(
            name="--check",
            help="Also run backend consistency checks.",
            negative="",
            group=maintenance_group,
        ),
    ] = False,
    run_context: Annotated[RunContext | None, _RUN_CONTEXT] = None,
) -> CliResult:
    """Delete stored values no record refers to any more.

    Returns
    -------
    CliResult
        Count of deleted values and cache statistics.
    """
    cache = resolve_run_context(run_context).existing_cache()
    deleted = gc(cache)
    stats = cache_stats(cache)
    details: dict[str, object] = {
        "location": stats["location"],
        "targets": stats["targets"],
        "imports": stats["imports"],
        "objects": stats["objects"],
    }
    if check:
        warnings = verify(cache)
        details["warnings"] = warnings
        if warnings:
            logger.warning("Cache consistency check reported %d warning(s)", warnings)
    return CliResult.success(summary=f"Deleted {deleted} unreferenced value(s).", details=details)


__all__ = [
    "cached_command",
    "clean_command",
    "diagnose_command",
    "gc_command",
    "show_command",
]
