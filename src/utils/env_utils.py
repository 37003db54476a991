"""Environment variable readers used by configuration defaults."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import overload

_LOGGER = logging.getLogger(__name__)


def env_value(name: str) -> str | None:
    """Return the stripped value of ``name``; blank values count as unset.

    Returns
    -------
    str | None
        Stripped value or None.
    """
    raw = os.environ.get(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


@overload
def env_int(name: str) -> int | None: ...


@overload
def env_int(name: str, *, default: int) -> int: ...


def env_int(name: str, *, default: int | None = None) -> int | None:
    """Parse an environment variable as an integer.

    Unparseable values are logged and replaced by ``default``.

    Returns
    -------
    int | None
        Parsed integer or default/None.
    """
    raw = env_value(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _LOGGER.warning("Invalid integer for %s: %r", name, raw)
        return default


def env_path(name: str) -> Path | None:
    """Return ``name`` as a user-expanded path, or None when unset.

    Returns
    -------
    pathlib.Path | None
        Expanded path.
    """
    raw = env_value(name)
    return Path(raw).expanduser() if raw is not None else None


__all__ = ["env_int", "env_path", "env_value"]
