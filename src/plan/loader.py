"""Load a plan and its evaluation environment from a Python module file."""

from __future__ import annotations

import importlib.util
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from core.errors import PlanValidationError
from plan.model import Plan

logger = logging.getLogger(__name__)

PLAN_ATTRIBUTE = "plan"


@dataclass(frozen=True)
class LoadedPlan:
    """Plan together with the namespace its commands are evaluated in."""

    plan: Plan
    environment: Mapping[str, object]
    source: Path


def load_plan_module(path: Path | str, *, attribute: str = PLAN_ATTRIBUTE) -> LoadedPlan:
    """Execute a plan module and return its plan and globals.

    The module is registered in ``sys.modules`` under a private name so that
    functions defined in it can be inspected for their source.

    Parameters
    ----------
    path
        Path to a ``.py`` file defining a module-level plan.
    attribute
        Name of the module attribute holding the plan.

    Returns
    -------
    LoadedPlan
        Plan and environment loaded from the module.

    Raises
    ------
    PlanValidationError
        Raised when the file is missing or does not define a ``Plan``.
    """
    source = Path(path).resolve()
    if not source.is_file():
        msg = f"Plan file not found: {source}."
        raise PlanValidationError(msg)
    module_name = f"_targetflow_plan_{source.stem}"
    spec = importlib.util.spec_from_file_location(module_name, source)
    if spec is None or spec.loader is None:
        msg = f"Cannot import plan file {source}."
        raise PlanValidationError(msg)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    plan = getattr(module, attribute, None)
    if not isinstance(plan, Plan):
        msg = f"{source} must define a module-level {attribute!r} of type Plan."
        raise PlanValidationError(msg)
    environment = {
        name: value for name, value in vars(module).items() if not name.startswith("__")
    }
    environment.pop(attribute, None)
    logger.debug("Loaded plan with %d targets from %s", len(plan), source)
    return LoadedPlan(plan=plan, environment=environment, source=source)


__all__ = ["PLAN_ATTRIBUTE", "LoadedPlan", "load_plan_module"]
