"""Build every outdated target of a plan file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import Parameter, validators

from cli.context import RunContext, resolve_run_context
from cli.exit_codes import ExitCode
from cli.groups import execution_group
from cli.result import CliResult
from engine.build_orchestrator import BuildReport
from engine.facade import make
from plan.loader import load_plan_module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MakeCommandOptions:
    """Execution options for ``targetflow make``."""

    jobs: Annotated[
        int,
        Parameter(
            name=["--jobs", "-j"],
            help="Maximum number of targets built at the same time.",
            env_var="TARGETFLOW_JOBS",
            validator=validators.Number(gte=1),
            group=execution_group,
        ),
    ] = 1
    keep_going: Annotated[
        bool,
        Parameter(
            name=["--keep-going", "-k"],
            help="Keep building independent targets after a failure.",
            negative="",
            group=execution_group,
        ),
    ] = False
    dry_run: Annotated[
        bool,
        Parameter(
            name=["--dry-run", "-n"],
            help="Print the dispatch frontiers without building anything.",
            negative="",
            group=execution_group,
        ),
    ] = False
    recheck: Annotated[
        bool,
        Parameter(
            name="--recheck",
            help="Skip a target when its upstream rebuilt to an identical value.",
            group=execution_group,
        ),
    ] = True


_DEFAULT_MAKE_OPTIONS = MakeCommandOptions()


def make_command(
    plan_file: Annotated[
        Path,
        Parameter(
            help="Python file defining a module-level ``plan``.",
            validator=validators.Path(exists=True, dir_okay=False),
        ),
    ],
    targets: Annotated[
        tuple[str, ...],
        Parameter(help="Restrict the build to these targets and their upstream."),
    ] = (),
    options: Annotated[MakeCommandOptions, Parameter(name="*")] = _DEFAULT_MAKE_OPTIONS,
    *,
    run_context: Annotated[RunContext | None, Parameter(parse=False)] = None,
) -> CliResult:
    """Build every outdated target of a plan.

    Returns
    -------
    CliResult
        Build summary; a non-zero exit code when any target failed.
    """
    context = resolve_run_context(run_context)
    loaded = load_plan_module(plan_file)
    cache = context.create_cache()
    logger.info("Building %s with cache %s", loaded.source, cache.location)
    report = make(
        loaded.plan,
        cache,
        environment=loaded.environment,
        jobs=options.jobs,
        keep_going=options.keep_going,
        dry_run=options.dry_run,
        recheck=options.recheck,
        targets=tuple(targets),
    )
    return make_result(report)


def make_result(report: BuildReport) -> CliResult:
    """Convert a build report into a CLI result.

    Returns
    -------
    CliResult
        Summary, per-outcome names and duration.
    """
    metrics = {"duration_s": report.elapsed_s}
    if report.dry_run:
        details = {
            f"frontier {index}": frontier
            for index, frontier in enumerate(report.frontiers, start=1)
        }
        summary = f"Dry run: {len(report.built)} target(s) would be built."
        return CliResult.success(summary=summary, details=details, metrics=metrics)
    details: dict[str, object] = {"built": report.built, "skipped": report.skipped}
    if report.failed:
        details["failed"] = {name: str(error) for name, error in report.failed}
    if report.blocked:
        details["blocked"] = report.blocked
    if report.ok:
        summary = f"Built {len(report.built)} target(s); {len(report.skipped)} up to date."
        return CliResult.success(summary=summary, details=details, metrics=metrics)
    summary = (
        f"{len(report.failed)} target(s) failed; {len(report.blocked)} blocked. "
        "Run `targetflow diagnose NAME` for details."
    )
    return CliResult.error(ExitCode.BUILD_ERROR, summary=summary, details=details, metrics=metrics)


__all__ = ["MakeCommandOptions", "make_command", "make_result"]
