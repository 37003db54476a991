"""Top-level make orchestration.

Builds the dependency graph, runs change detection against the store, and
walks the frontier, dispatching outdated nodes to the build executor.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass

from cache.store import FingerprintStore
from core.errors import BuildError, ConfigurationError, PlanValidationError
from depgraph.extractors import DependencyExtractor, DocumentExtractorRegistry
from depgraph.outdated import ChangeDetector
from depgraph.rustworkx_graph import DependencyGraph, build_dependency_graph
from depgraph.rustworkx_schedule import FrontierScheduler, ScheduleOptions
from engine.executor import BuildExecutor
from obs.otel.tracing import stage_span
from plan.model import Plan
from serde_msgspec import StructBaseStrict

logger = logging.getLogger(__name__)


class MakeOptions(StructBaseStrict, frozen=True):
    """Options for a make run.

    ``targets`` restricts the run to the named targets and everything
    upstream of them; an empty tuple means the whole plan.
    """

    jobs: int = 1
    keep_going: bool = False
    dry_run: bool = False
    recheck: bool = True
    targets: tuple[str, ...] = ()


@dataclass(frozen=True)
class BuildReport:
    """Outcome of a make run."""

    built: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[tuple[str, BuildError], ...] = ()
    blocked: tuple[str, ...] = ()
    imported: tuple[str, ...] = ()
    frontiers: tuple[tuple[str, ...], ...] = ()
    elapsed_s: float = 0.0
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked

    @property
    def failed_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.failed)

    def summary(self) -> dict[str, object]:
        """Return a JSON-friendly summary of the run.

        Returns
        -------
        dict[str, object]
            Names per outcome plus timing.
        """
        return {
            "ok": self.ok,
            "dry_run": self.dry_run,
            "built": list(self.built),
            "skipped": list(self.skipped),
            "failed": {name: str(error) for name, error in self.failed},
            "blocked": list(self.blocked),
            "imported": list(self.imported),
            "frontiers": [list(frontier) for frontier in self.frontiers],
            "elapsed_s": round(self.elapsed_s, 6),
        }


def validate_make_options(options: MakeOptions, store: FingerprintStore) -> None:
    """Reject option combinations the store cannot honour.

    Raises
    ------
    ConfigurationError
        Raised when ``jobs`` is not positive, or when parallel jobs are
        requested on a backend that is not thread safe.
    """
    if options.jobs < 1:
        msg = f"jobs must be at least 1, got {options.jobs}."
        raise ConfigurationError(msg)
    if options.jobs > 1 and not store.backend.thread_safe:
        msg = (
            f"Cache backend at {store.location} is not safe for concurrent access; "
            "run with jobs=1."
        )
        raise ConfigurationError(msg)


def make(
    plan: Plan,
    store: FingerprintStore,
    *,
    environment: Mapping[str, object] | None = None,
    options: MakeOptions | None = None,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> BuildReport:
    """Bring every outdated target of ``plan`` up to date.

    Graph-level errors (cycles, ambiguous outputs, extraction failures) and
    configuration errors are raised before anything is built. Command
    failures are reported per target in the returned report.

    Parameters
    ----------
    plan
        Target declarations.
    store
        Fingerprint store to check against and commit to.
    environment
        Namespace commands are evaluated in.
    options
        Run options.
    extractor
        Symbol extractor override.
    document_extractors
        Literate-document extractor registry override.

    Returns
    -------
    BuildReport
        Built, skipped, failed and blocked targets.
    """
    resolved = options or MakeOptions()
    validate_make_options(resolved, store)
    start = time.perf_counter()
    attributes = {"targets": len(plan), "jobs": resolved.jobs, "dry_run": resolved.dry_run}
    with stage_span("make", stage="make", attributes=attributes):
        graph = build_dependency_graph(
            plan,
            environment=environment,
            extractor=extractor,
            document_extractors=document_extractors,
        )
        graph = _restrict(graph, resolved.targets)
        if not resolved.dry_run:
            store.clear_progress()
        detector = ChangeDetector(store, graph)
        report = detector.detect()
        executor = BuildExecutor(store, graph, detector, environment=environment)
        result = FrontierScheduler(graph, detector).run(
            report,
            executor,
            options=ScheduleOptions(
                jobs=resolved.jobs,
                keep_going=resolved.keep_going,
                dry_run=resolved.dry_run,
                recheck=resolved.recheck,
            ),
        )
    build_report = BuildReport(
        built=result.built,
        skipped=result.skipped,
        failed=result.failed,
        blocked=result.blocked,
        imported=result.imported,
        frontiers=result.frontiers,
        elapsed_s=time.perf_counter() - start,
        dry_run=resolved.dry_run,
    )
    logger.info(
        "%s: %d built, %d skipped, %d failed, %d blocked in %.3fs",
        "Dry run" if resolved.dry_run else "Make",
        len(build_report.built),
        len(build_report.skipped),
        len(build_report.failed),
        len(build_report.blocked),
        build_report.elapsed_s,
    )
    return build_report


def _restrict(graph: DependencyGraph, targets: tuple[str, ...]) -> DependencyGraph:
    if not targets:
        return graph
    unknown = sorted(name for name in targets if name not in graph)
    if unknown:
        msg = f"Unknown targets requested: {unknown}."
        raise PlanValidationError(msg)
    return graph.subgraph(targets)


__all__ = ["BuildReport", "MakeOptions", "make", "validate_make_options"]
