"""Tests for loading plans from Python modules."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import PlanValidationError
from plan import Plan, load_plan_module
from tests.test_helpers.plan_files import write_plan_file


def test_load_plan_module_returns_plan_and_environment(tmp_path: Path) -> None:
    """Module globals, minus the plan itself, become the environment."""
    path = write_plan_file(
        tmp_path,
        """
        from plan import Plan, target

        SCALE = 3

        def double(x):
            return 2 * x

        plan = Plan.of(target("a", "double(SCALE)"))
        """,
    )
    loaded = load_plan_module(path)
    assert isinstance(loaded.plan, Plan)
    assert loaded.plan.names == ("a",)
    assert loaded.environment["SCALE"] == 3
    assert callable(loaded.environment["double"])
    assert "plan" not in loaded.environment
    assert not any(name.startswith("__") for name in loaded.environment)
    assert loaded.source == path.resolve()


def test_missing_plan_file(tmp_path: Path) -> None:
    """A missing file is a plan validation error."""
    with pytest.raises(PlanValidationError, match="not found"):
        load_plan_module(tmp_path / "absent.py")


def test_module_without_plan(tmp_path: Path) -> None:
    """A module that does not define a Plan is rejected."""
    path = write_plan_file(tmp_path, "plan = 42\n")
    with pytest.raises(PlanValidationError):
        load_plan_module(path)
