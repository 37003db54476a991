"""Main application setup for the targetflow CLI."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Literal

from cyclopts import App, Parameter
from cyclopts.config import Toml

from cache.diskcache_factory import CACHE_DIR_ENV
from cli.commands.version import get_version
from cli.context import RunContext
from cli.groups import session_group
from cli.result_action import cli_result_action
from cli.telemetry import invoke_with_telemetry

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_HELP_EPILOGUE = """
Examples:
  targetflow make plan.py               Build every outdated target
  targetflow make plan.py --jobs 4      Build independent targets in parallel
  targetflow outdated plan.py           List targets that would be rebuilt
  targetflow show summary               Print the cached value of a target
  targetflow clean --purge              Drop all records and unused blobs

Environment Variables:
  TARGETFLOW_LOG_LEVEL   Default log level (DEBUG, INFO, WARNING, ERROR)
  TARGETFLOW_CACHE_DIR   Cache location (default: ./.targetflow)
  TARGETFLOW_JOBS        Default worker count for make
"""

app = App(
    name="targetflow",
    help="Incremental build engine for Python computation plans.",
    help_format="rich",
    help_epilogue=_HELP_EPILOGUE,
    version=get_version(),
    version_flags=["--version", "-V"],
    default_parameter=Parameter(
        show_default=True,
        show_env_var=True,
    ),
    result_action=cli_result_action,
    config=[
        Toml("targetflow.toml", must_exist=False, search_parents=True),
        Toml(
            "pyproject.toml",
            root_keys=("tool", "targetflow"),
            must_exist=False,
            search_parents=True,
        ),
    ],
    exit_on_error=True,
    print_error=True,
    help_on_error=False,
)

app.meta.group_parameters = session_group


@dataclass(frozen=True)
class SessionOptions:
    """Session-level configuration parameters."""

    log_level: Annotated[
        Literal["DEBUG", "INFO", "WARNING", "ERROR"],
        Parameter(
            name="--log-level",
            help="Logging verbosity level.",
            env_var="TARGETFLOW_LOG_LEVEL",
            group=session_group,
        ),
    ] = "WARNING"
    cache_dir: Annotated[
        Path | None,
        Parameter(
            name="--cache-dir",
            help="Cache directory (default: ./.targetflow).",
            env_var=CACHE_DIR_ENV,
            group=session_group,
        ),
    ] = None
    run_id: Annotated[
        str | None,
        Parameter(
            name="--run-id",
            help="Explicit run identifier (random if not provided).",
            group=session_group,
        ),
    ] = None


_DEFAULT_SESSION_OPTIONS = SessionOptions()


@app.meta.default
def meta_launcher(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    session: Annotated[SessionOptions, Parameter(name="*")] = _DEFAULT_SESSION_OPTIONS,
) -> int:
    """Meta launcher for logging setup and context injection.

    Returns
    -------
    int
        Exit status code from command execution.

    Raises
    ------
    ValueError
        Raised when the log level is invalid.
    """
    if session.log_level not in LOG_LEVELS:
        msg = f"Unsupported log level {session.log_level!r}."
        raise ValueError(msg)
    logging.basicConfig(
        level=session.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    run_context = RunContext(
        run_id=session.run_id or uuid.uuid4().hex,
        log_level=session.log_level,
        cache_dir=session.cache_dir,
    )
    exit_code, _event = invoke_with_telemetry(app, list(tokens), run_context=run_context)
    return exit_code


# Lazy-loaded commands
app.command("cli.commands.make:make_command", name="make", alias="m")
app.command("cli.commands.status:outdated_command", name="outdated")
app.command("cli.commands.status:missed_command", name="missed")
app.command("cli.commands.cache:cached_command", name="cached")
app.command("cli.commands.cache:show_command", name="show")
app.command("cli.commands.cache:diagnose_command", name="diagnose")
app.command("cli.commands.cache:clean_command", name="clean")
app.command("cli.commands.cache:gc_command", name="gc")
app.command("cli.commands.version:version_command", name="version", alias="v")


def main() -> None:
    """Run the targetflow CLI."""
    raise SystemExit(app.meta())


__all__ = ["SessionOptions", "app", "main", "meta_launcher"]
