"""Canonical OpenTelemetry instrumentation scopes for targetflow."""

from __future__ import annotations

SCOPE_ROOT = "targetflow"
SCOPE_GRAPH = "targetflow.graph"
SCOPE_SCHEDULING = "targetflow.scheduling"
SCOPE_EXECUTION = "targetflow.execution"
SCOPE_CACHE = "targetflow.cache"
SCOPE_OBS = "targetflow.obs"

_STAGE_SCOPE_MAP = {
    "graph": SCOPE_GRAPH,
    "outdated": SCOPE_GRAPH,
    "schedule": SCOPE_SCHEDULING,
    "make": SCOPE_SCHEDULING,
    "build": SCOPE_EXECUTION,
    "cache": SCOPE_CACHE,
}


def scope_for_stage(stage: str | None) -> str:
    """Return the canonical scope for a stage name.

    Returns
    -------
    str
        Instrumentation scope name.
    """
    if stage is None:
        return SCOPE_ROOT
    return _STAGE_SCOPE_MAP.get(stage, SCOPE_ROOT)


__all__ = [
    "SCOPE_CACHE",
    "SCOPE_EXECUTION",
    "SCOPE_GRAPH",
    "SCOPE_OBS",
    "SCOPE_ROOT",
    "SCOPE_SCHEDULING",
    "scope_for_stage",
]
