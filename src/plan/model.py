"""Plan declarations: the targets a user wants built."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Literal, cast

from core.errors import PlanValidationError
from serde_msgspec import StructBaseStrict

type Trigger = Literal["any", "always", "command", "depend", "file", "missing"]

TRIGGERS: tuple[Trigger, ...] = ("any", "always", "command", "depend", "file", "missing")
DEFAULT_TRIGGER: Trigger = "any"


class TargetSpec(StructBaseStrict, frozen=True):
    """Declaration of one target.

    ``command`` is a Python expression. ``inputs`` and ``outputs`` are file
    paths the user declares explicitly; they are never inferred.
    """

    name: str
    command: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    trigger: Trigger = DEFAULT_TRIGGER

    def __post_init__(self) -> None:
        if not self.name or not self.name.isidentifier():
            msg = f"Target names must be non-empty Python identifiers, got {self.name!r}."
            raise PlanValidationError(msg)
        if not self.command.strip():
            msg = f"Target {self.name!r} has an empty command."
            raise PlanValidationError(msg)
        if self.trigger not in TRIGGERS:
            msg = f"Target {self.name!r} has unknown trigger {self.trigger!r}."
            raise PlanValidationError(msg)
        for paths, label in ((self.inputs, "inputs"), (self.outputs, "outputs")):
            if len(set(paths)) != len(paths):
                msg = f"Target {self.name!r} lists a duplicate path in {label}: {list(paths)}."
                raise PlanValidationError(msg)


def target(
    name: str,
    command: str,
    *,
    inputs: Iterable[str] = (),
    outputs: Iterable[str] = (),
    trigger: str = DEFAULT_TRIGGER,
) -> TargetSpec:
    """Return a target declaration.

    Returns
    -------
    TargetSpec
        Validated declaration.
    """
    return TargetSpec(
        name=name,
        command=command,
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        trigger=cast("Trigger", trigger),
    )


class Plan(StructBaseStrict, frozen=True):
    """Ordered, immutable collection of target declarations."""

    targets: tuple[TargetSpec, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for spec in self.targets:
            if spec.name in seen:
                msg = f"Duplicate target name: {spec.name!r}."
                raise PlanValidationError(msg)
            seen.add(spec.name)

    @classmethod
    def of(cls, *targets: TargetSpec) -> Plan:
        """Return a plan from positional target declarations.

        Returns
        -------
        Plan
            Plan containing the targets in the given order.
        """
        return cls(targets=tuple(targets))

    @classmethod
    def from_commands(cls, commands: Mapping[str, str]) -> Plan:
        """Return a plan of default-trigger targets from ``name -> command``.

        Returns
        -------
        Plan
            Plan with one target per mapping entry.
        """
        return cls(targets=tuple(target(name, command) for name, command in commands.items()))

    def __iter__(self) -> Iterator[TargetSpec]:
        return iter(self.targets)

    def __len__(self) -> int:
        return len(self.targets)

    def __contains__(self, name: object) -> bool:
        return any(spec.name == name for spec in self.targets)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.targets)

    def get(self, name: str) -> TargetSpec:
        """Return the declaration named ``name``.

        Raises
        ------
        KeyError
            Raised when the plan has no such target.

        Returns
        -------
        TargetSpec
            The matching declaration.
        """
        for spec in self.targets:
            if spec.name == name:
                return spec
        msg = f"Plan has no target named {name!r}."
        raise KeyError(msg)

    def replace(self, spec: TargetSpec) -> Plan:
        """Return a copy of the plan with one declaration swapped in by name.

        Returns
        -------
        Plan
            Updated plan preserving declaration order.
        """
        self.get(spec.name)
        swapped = tuple(spec if item.name == spec.name else item for item in self.targets)
        return Plan(targets=swapped)


__all__ = ["DEFAULT_TRIGGER", "TRIGGERS", "Plan", "TargetSpec", "Trigger", "target"]
