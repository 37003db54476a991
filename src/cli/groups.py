"""Shared help-panel groups for the targetflow CLI."""

from __future__ import annotations

from cyclopts import Group

session_group = Group(
    "Session",
    help="Session and cache location options.",
    sort_key=0,
)

execution_group = Group(
    "Execution",
    help="Control build parallelism and failure handling.",
    sort_key=1,
)

maintenance_group = Group(
    "Maintenance",
    help="Cache cleanup options.",
    sort_key=2,
)

__all__ = ["execution_group", "maintenance_group", "session_group"]
