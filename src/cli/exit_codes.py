"""Exit code taxonomy for the targetflow CLI."""

from __future__ import annotations

from enum import IntEnum

from core.errors import (
    AmbiguousOutputError,
    BuildError,
    CacheIOError,
    ConfigurationError,
    CycleError,
    ExtractionError,
    PlanValidationError,
)


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Exit codes follow Unix conventions with domain-specific extensions:
    - 0: Success
    - 1-9: General errors (parse, validation, config)
    - 10-19: Graph and build errors
    - 20-29: Cache errors
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    PARSE_ERROR = 2
    VALIDATION_ERROR = 3
    CONFIG_ERROR = 4

    # Graph and build errors (10-19)
    EXTRACTION_ERROR = 10
    GRAPH_ERROR = 11
    BUILD_ERROR = 13

    # Cache errors (20-29)
    CACHE_ERROR = 20

    @classmethod
    def from_exception(cls, exc: BaseException) -> ExitCode:
        """Map an exception to an appropriate exit code.

        Parameters
        ----------
        exc
            Exception to classify.

        Returns
        -------
        ExitCode
            Exit code appropriate for the exception type.
        """
        cyclopts_code = _exit_code_for_cyclopts(exc)
        if cyclopts_code is not None:
            return cyclopts_code

        domain_code = _exit_code_for_domain_error(exc)
        if domain_code is not None:
            return domain_code

        type_code = _exit_code_for_exception_type(exc)
        if type_code is not None:
            return type_code

        return cls.GENERAL_ERROR


def _exit_code_for_cyclopts(exc: BaseException) -> ExitCode | None:
    module = exc.__class__.__module__
    if not module.startswith("cyclopts"):
        return None
    if exc.__class__.__name__ == "ValidationError":
        return ExitCode.VALIDATION_ERROR
    return ExitCode.PARSE_ERROR


_DOMAIN_CODES: tuple[tuple[type[BaseException], ExitCode], ...] = (
    (ConfigurationError, ExitCode.CONFIG_ERROR),
    (PlanValidationError, ExitCode.VALIDATION_ERROR),
    (CycleError, ExitCode.GRAPH_ERROR),
    (AmbiguousOutputError, ExitCode.GRAPH_ERROR),
    (ExtractionError, ExitCode.EXTRACTION_ERROR),
    (BuildError, ExitCode.BUILD_ERROR),
    (CacheIOError, ExitCode.CACHE_ERROR),
)


def _exit_code_for_domain_error(exc: BaseException) -> ExitCode | None:
    for error_type, exit_code in _DOMAIN_CODES:
        if isinstance(exc, error_type):
            return exit_code
    return None


def _exit_code_for_exception_type(exc: BaseException) -> ExitCode | None:
    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return ExitCode.VALIDATION_ERROR
    if isinstance(exc, (FileNotFoundError, FileExistsError, PermissionError)):
        return ExitCode.CONFIG_ERROR
    return None


__all__ = ["ExitCode"]
