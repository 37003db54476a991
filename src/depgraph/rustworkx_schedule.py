"""Frontier scheduling over the dependency graph.

The coordinator drives a ``rustworkx.TopologicalSorter``: current nodes are
marked done as soon as they become ready, outdated nodes are dispatched to a
bounded thread pool, and each completion may release new nodes immediately.
Only the coordinating thread touches the sorter.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol

import rustworkx as rx

from core.errors import BuildError, ConfigurationError
from depgraph.outdated import ChangeDetector, ChangeReport, NodeAssessment
from depgraph.rustworkx_graph import DependencyGraph, ensure_acyclic
from obs.otel.tracing import stage_span

logger = logging.getLogger(__name__)


class NodeOutcome(Protocol):
    """Result of running one node, as seen by the scheduler."""

    @property
    def name(self) -> str: ...

    @property
    def fingerprint(self) -> str | None: ...

    @property
    def error(self) -> BuildError | None: ...


type NodeRunner = Callable[[str, Mapping[str, str]], NodeOutcome]


@dataclass(frozen=True)
class ScheduleOptions:
    """Dispatch policy for one scheduling pass."""

    jobs: int = 1
    keep_going: bool = False
    dry_run: bool = False
    recheck: bool = True

    def __post_init__(self) -> None:
        if self.jobs < 1:
            msg = f"jobs must be at least 1, got {self.jobs}."
            raise ConfigurationError(msg)


@dataclass(frozen=True)
class ScheduleResult:
    """What the scheduler did with each node.

    ``built``, ``skipped`` and ``blocked`` list targets only; refreshed
    imports are listed in ``imported``. ``frontiers`` holds each dispatch
    batch in the order it was released.
    """

    built: tuple[str, ...] = ()
    imported: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[tuple[str, BuildError], ...] = ()
    blocked: tuple[str, ...] = ()
    frontiers: tuple[tuple[str, ...], ...] = ()


@dataclass
class _RunState:
    fingerprints: dict[str, str]
    queue: deque[str] = field(default_factory=deque)
    running: dict[Future[NodeOutcome], str] = field(default_factory=dict)
    built: list[str] = field(default_factory=list)
    imported: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, BuildError]] = field(default_factory=list)
    frontiers: list[tuple[str, ...]] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    stopped: bool = False


class FrontierScheduler:
    """Dispatch outdated nodes as soon as their dependencies resolve."""

    def __init__(self, graph: DependencyGraph, detector: ChangeDetector) -> None:
        self._graph = graph
        self._detector = detector

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def run(
        self,
        report: ChangeReport,
        runner: NodeRunner,
        *,
        options: ScheduleOptions | None = None,
    ) -> ScheduleResult:
        """Walk the graph, running outdated nodes through ``runner``.

        Parameters
        ----------
        report
            Change detection results for every node of the graph.
        runner
            Callable building one node given the fingerprints of its
            dependencies. Never called in dry-run mode.
        options
            Dispatch policy.

        Returns
        -------
        ScheduleResult
            Per-node outcome of the pass.
        """
        resolved = options or ScheduleOptions()
        ensure_acyclic(self._graph)
        sorter = rx.TopologicalSorter(self._graph.graph, check_cycle=False)
        state = _RunState(fingerprints=report.fingerprints())
        attributes = {"jobs": resolved.jobs, "dry_run": resolved.dry_run}
        with stage_span("depgraph.schedule", stage="schedule", attributes=attributes):
            if resolved.dry_run:
                self._simulate(sorter, report, state, jobs=resolved.jobs)
            else:
                self._execute(sorter, report, runner, state, options=resolved)
        return self._result(report, state)

    def _release(
        self,
        sorter: rx.TopologicalSorter,
        report: ChangeReport,
        state: _RunState,
        *,
        recheck: bool,
    ) -> None:
        while not state.stopped:
            ready = sorted(self._graph.graph[idx].name for idx in sorter.get_ready())
            if not ready:
                return
            finished: list[int] = []
            for name in ready:
                state.visited.add(name)
                assessment = report.assessments[name]
                if assessment.outdated and recheck and assessment.reason == "upstream":
                    assessment = self._detector.reassess(name, state.fingerprints)
                if assessment.outdated:
                    logger.debug("%s is outdated (%s)", name, assessment.reason)
                    state.queue.append(name)
                    continue
                self._mark_current(state, assessment)
                finished.append(self._graph.index(name))
            if finished:
                sorter.done(finished)

    def _mark_current(self, state: _RunState, assessment: NodeAssessment) -> None:
        if assessment.fingerprint is not None:
            state.fingerprints[assessment.name] = assessment.fingerprint
        if assessment.kind == "target":
            logger.debug("Skipping current target %s", assessment.name)
            state.skipped.append(assessment.name)

    def _execute(
        self,
        sorter: rx.TopologicalSorter,
        report: ChangeReport,
        runner: NodeRunner,
        state: _RunState,
        *,
        options: ScheduleOptions,
    ) -> None:
        with ThreadPoolExecutor(
            max_workers=options.jobs,
            thread_name_prefix="targetflow-build",
        ) as pool:
            while True:
                self._release(sorter, report, state, recheck=options.recheck)
                batch: list[str] = []
                while state.queue and not state.stopped and len(state.running) < options.jobs:
                    name = state.queue.popleft()
                    deps = {dep: state.fingerprints[dep] for dep in self._graph.dependencies(name)}
                    state.running[pool.submit(runner, name, deps)] = name
                    batch.append(name)
                if batch:
                    logger.debug("Dispatching frontier %s", batch)
                    state.frontiers.append(tuple(batch))
                if not state.running:
                    return
                done, _ = wait(tuple(state.running), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda item: state.running[item]):
                    state.running.pop(future)
                    self._complete(sorter, state, future.result(), keep_going=options.keep_going)

    def _complete(
        self,
        sorter: rx.TopologicalSorter,
        state: _RunState,
        outcome: NodeOutcome,
        *,
        keep_going: bool,
    ) -> None:
        node = self._graph.node(outcome.name)
        if outcome.error is not None or outcome.fingerprint is None:
            error = outcome.error or BuildError(outcome.name, "no fingerprint produced")
            state.failed.append((outcome.name, error))
            if not keep_going:
                logger.info("Stopping dispatch after %s failed", outcome.name)
                state.stopped = True
            return
        state.fingerprints[outcome.name] = outcome.fingerprint
        if node.is_target:
            state.built.append(outcome.name)
            self._detector.forget_files(node.outputs)
        else:
            state.imported.append(outcome.name)
        sorter.done([self._graph.index(outcome.name)])

    def _simulate(
        self,
        sorter: rx.TopologicalSorter,
        report: ChangeReport,
        state: _RunState,
        *,
        jobs: int,
    ) -> None:
        while True:
            self._release(sorter, report, state, recheck=False)
            if not state.queue:
                return
            batch = [state.queue.popleft() for _ in range(min(jobs, len(state.queue)))]
            state.frontiers.append(tuple(batch))
            for name in batch:
                if self._graph.node(name).is_target:
                    state.built.append(name)
                else:
                    state.imported.append(name)
            sorter.done([self._graph.index(name) for name in batch])

    def _result(self, report: ChangeReport, state: _RunState) -> ScheduleResult:
        failed_names = {name for name, _ in state.failed}
        resolved = set(state.built) | set(state.imported) | set(state.skipped) | failed_names
        skipped = list(state.skipped)
        blocked: list[str] = []
        for name in self._graph.target_names:
            if name in resolved:
                continue
            if report.assessments[name].outdated or name in state.visited:
                blocked.append(name)
            else:
                skipped.append(name)
        return ScheduleResult(
            built=tuple(state.built),
            imported=tuple(state.imported),
            skipped=tuple(skipped),
            failed=tuple(state.failed),
            blocked=tuple(blocked),
            frontiers=tuple(state.frontiers),
        )


def ready_sets(
    graph: DependencyGraph,
    detector: ChangeDetector,
    report: ChangeReport | None = None,
    *,
    jobs: int | None = None,
) -> tuple[tuple[str, ...], ...]:
    """Return the projected dispatch frontiers without building anything.

    With ``jobs`` unset every ready node joins the same frontier.

    Returns
    -------
    tuple[tuple[str, ...], ...]
        Projected frontiers in dispatch order.
    """
    resolved_report = report or detector.detect()
    options = ScheduleOptions(jobs=jobs or max(len(graph), 1), dry_run=True)
    result = FrontierScheduler(graph, detector).run(
        resolved_report, _no_runner, options=options
    )
    return result.frontiers


def _no_runner(name: str, _fingerprints: Mapping[str, str]) -> NodeOutcome:
    msg = f"dry run must not build {name!r}"
    raise RuntimeError(msg)


__all__ = [
    "FrontierScheduler",
    "NodeOutcome",
    "NodeRunner",
    "ScheduleOptions",
    "ScheduleResult",
    "ready_sets",
]
