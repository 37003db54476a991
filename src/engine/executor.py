"""Run one node and commit its fingerprint record."""

from __future__ import annotations

import logging
import time
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from cache.codec import encode_value, fingerprint_bytes
from cache.records import FailureRecord, FingerprintRecord
from cache.store import FingerprintStore
from core.errors import BuildError
from depgraph.outdated import ChangeDetector, import_fingerprint, target_fingerprint
from depgraph.rustworkx_graph import DependencyGraph, GraphNode
from obs.otel.metrics import record_error, record_task_duration
from obs.otel.tracing import stage_span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOutcome:
    """Result of building a target or refreshing an import."""

    name: str
    fingerprint: str | None = None
    record: FingerprintRecord | None = None
    error: BuildError | None = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class _Evaluated:
    value: object
    payload: bytes


class BuildExecutor:
    """Evaluate target commands and snapshot imports into the store.

    Instances are callable with ``(name, dependency_fingerprints)`` so they
    can be handed to the frontier scheduler directly. Command failures are
    returned as :class:`BuildOutcome` errors; cache failures propagate.
    """

    def __init__(
        self,
        store: FingerprintStore,
        graph: DependencyGraph,
        detector: ChangeDetector,
        *,
        environment: Mapping[str, object] | None = None,
    ) -> None:
        self._store = store
        self._graph = graph
        self._detector = detector
        self._environment = dict(environment or {})

    def __call__(self, name: str, fingerprints: Mapping[str, str]) -> BuildOutcome:
        return self.build(name, fingerprints)

    def build(self, name: str, fingerprints: Mapping[str, str]) -> BuildOutcome:
        """Build ``name`` given the current fingerprints of its dependencies.

        Returns
        -------
        BuildOutcome
            Fingerprint and record on success, or the recorded error.
        """
        node = self._graph.node(name)
        if node.is_target:
            return self._build_target(node, fingerprints)
        return self._refresh_import(node, fingerprints)

    def namespace(self, node: GraphNode) -> dict[str, object]:
        """Return the evaluation namespace for a target's command.

        Returns
        -------
        dict[str, object]
            Environment overlaid with upstream target values.
        """
        namespace = dict(self._environment)
        for dep in node.dependencies:
            if self._graph.node(dep).is_target:
                namespace[dep] = self._store.read_value(dep)
        return namespace

    def _build_target(self, node: GraphNode, fingerprints: Mapping[str, str]) -> BuildOutcome:
        name = node.name
        algorithm = self._store.long_hash_algorithm
        self._store.set_progress(name, "running")
        start = time.perf_counter()
        with stage_span("target.build", stage="build", attributes={"targetflow.target": name}):
            dependency_hash = self._detector.dependency_hash(node, fingerprints)
            input_hashes = self._detector.input_hashes(node)
            namespace = self.namespace(node)
            try:
                evaluated = self._evaluate(node, namespace)
            except Exception as exc:  # noqa: BLE001
                return self._fail(node, exc, time.perf_counter() - start)
            file_hashes = {path: self._store.file_hash(Path(path)) for path in node.outputs}
            value_fingerprint = self._store.content_hash(fingerprint_bytes(evaluated.value))
            output_hash = target_fingerprint(value_fingerprint, file_hashes, algorithm=algorithm)
            elapsed_s = time.perf_counter() - start
            record = FingerprintRecord(
                name=name,
                kind="target",
                output_hash=output_hash,
                hash_algorithm=algorithm,
                built_at=time.time(),
                command_hash=self._detector.command_hash(node),
                dependency_hash=dependency_hash,
                value_hash=self._store.content_hash(evaluated.payload),
                file_hashes=file_hashes,
                input_hashes=input_hashes,
                dependencies=node.dependencies,
                trigger=node.trigger,
                elapsed_s=elapsed_s,
            )
            self._store.commit(record, evaluated.payload)
            self._store.set_progress(name, "built")
        record_task_duration("target", elapsed_s, status="ok")
        logger.info("Built %s in %.3fs", name, elapsed_s)
        return BuildOutcome(name=name, fingerprint=output_hash, record=record, elapsed_s=elapsed_s)

    def _evaluate(self, node: GraphNode, namespace: dict[str, object]) -> _Evaluated:
        code = compile(node.command or "", f"<target {node.name}>", "eval")
        value = eval(code, namespace)  # noqa: S307
        missing = [path for path in node.outputs if not Path(path).exists()]
        if missing:
            msg = f"declared output files were not produced: {', '.join(missing)}"
            raise BuildError(node.name, msg)
        return _Evaluated(value=value, payload=encode_value(value))

    def _fail(self, node: GraphNode, exc: Exception, elapsed_s: float) -> BuildOutcome:
        if isinstance(exc, BuildError):
            error = exc
        else:
            error = BuildError(node.name, f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
        failure = FailureRecord(
            name=node.name,
            error_type=type(exc).__name__,
            message=str(exc),
            traceback="".join(traceback.format_exception(exc)),
            failed_at=time.time(),
        )
        self._store.record_failure(failure)
        self._store.set_progress(node.name, "failed")
        record_task_duration("target", elapsed_s, status="error")
        record_error("build", type(exc).__name__, attributes={"targetflow.target": node.name})
        logger.error("Target %s failed: %s", node.name, exc)
        return BuildOutcome(name=node.name, error=error, elapsed_s=elapsed_s)

    def _refresh_import(self, node: GraphNode, fingerprints: Mapping[str, str]) -> BuildOutcome:
        start = time.perf_counter()
        algorithm = self._store.long_hash_algorithm
        definition = self._detector.definition_hash(node)
        dependency_hash = self._detector.dependency_hash(node, fingerprints)
        fingerprint = import_fingerprint(definition, dependency_hash, algorithm=algorithm)
        record = FingerprintRecord(
            name=node.name,
            kind="import",
            output_hash=fingerprint,
            hash_algorithm=algorithm,
            built_at=time.time(),
            command_hash=definition,
            dependency_hash=dependency_hash,
            dependencies=node.dependencies,
            elapsed_s=time.perf_counter() - start,
        )
        self._store.commit(record)
        logger.debug("Recorded import %s", node.name)
        return BuildOutcome(
            name=node.name,
            fingerprint=fingerprint,
            record=record,
            elapsed_s=record.elapsed_s,
        )


__all__ = ["BuildExecutor", "BuildOutcome"]
