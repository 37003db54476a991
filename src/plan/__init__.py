"""Plan declarations and plan-module loading."""

from plan.loader import LoadedPlan, load_plan_module
from plan.model import DEFAULT_TRIGGER, TRIGGERS, Plan, TargetSpec, Trigger, target

__all__ = [
    "DEFAULT_TRIGGER",
    "TRIGGERS",
    "LoadedPlan",
    "Plan",
    "TargetSpec",
    "Trigger",
    "load_plan_module",
    "target",
]
