"""Version reporting for the targetflow CLI."""

from __future__ import annotations

import json
import platform
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

_DEPENDENCIES = ("cyclopts", "diskcache", "msgspec", "opentelemetry-api", "rich", "rustworkx")


def get_version() -> str:
    """Get the targetflow package version string.

    Returns
    -------
    str
        Version string, or "0.0.0-dev" if not installed.
    """
    return _package_version("targetflow") or "0.0.0-dev"


def get_version_info() -> dict[str, object]:
    """Get detailed version information.

    Returns
    -------
    dict[str, object]
        Structured version payload.
    """
    return {
        "targetflow": get_version(),
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "dependencies": {name: _package_version(name) for name in _DEPENDENCIES},
    }


def version_command() -> int:
    """Show version and dependency information.

    Returns
    -------
    int
        Exit status code.
    """
    payload = json.dumps(get_version_info(), indent=2, sort_keys=True)
    sys.stdout.write(payload + "\n")
    return 0


def _package_version(name: str) -> str | None:
    try:
        return pkg_version(name)
    except PackageNotFoundError:
        return None


__all__ = ["get_version", "get_version_info", "version_command"]
