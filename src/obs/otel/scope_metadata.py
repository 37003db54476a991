"""Instrumentation scope metadata resolution for OpenTelemetry."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from utils.env_utils import env_value

_SCHEMA_URL_ENV = "TARGETFLOW_OTEL_SCHEMA_URL"
_ALT_SCHEMA_URL_ENV = "OTEL_SCHEMA_URL"


def _resolve_schema_url() -> str | None:
    return env_value(_SCHEMA_URL_ENV) or env_value(_ALT_SCHEMA_URL_ENV)


def _resolve_instrumentation_version() -> str | None:
    try:
        return version("targetflow")
    except PackageNotFoundError:
        return None


_INSTRUMENTATION_VERSION = _resolve_instrumentation_version()
_SCHEMA_URL = _resolve_schema_url()


def instrumentation_version() -> str | None:
    """Return the installed targetflow version, if available.

    Returns
    -------
    str | None
        Instrumentation version, if detected.
    """
    return _INSTRUMENTATION_VERSION


def instrumentation_schema_url() -> str | None:
    return _SCHEMA_URL


__all__ = ["instrumentation_schema_url", "instrumentation_version"]
