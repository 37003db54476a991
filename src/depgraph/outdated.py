"""Change detection: classify graph nodes as current or outdated.

Nodes are assessed once, in dependency order, against the fingerprint store.
Checks run in a fixed order and the first one that fires becomes the
assessment's reason:

``missing``
    No record exists (never built, or cleaned).
``hash_algorithm``
    The record was written under a different long hash algorithm.
``always``
    The target's trigger is ``always``.
``command``
    The command text (or an import's definition) changed.
``upstream``
    A dependency is itself outdated.
``depend``
    A dependency's fingerprint or a declared input file drifted.
``file``
    A declared output file is missing or its content changed.

Which of ``command``, ``depend`` and ``file`` run depends on the trigger;
``upstream`` applies to every trigger, so outdatedness always propagates
downstream.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from cache.records import FingerprintRecord
from cache.store import FingerprintStore
from core.fingerprinting import CompositeFingerprint
from depgraph.imports import import_payload
from depgraph.rustworkx_graph import DependencyGraph, GraphNode, NodeKind
from obs.otel.tracing import stage_span
from plan.model import Trigger
from serde_msgspec import StructBaseStrict
from utils.hashing import CacheKeyBuilder

logger = logging.getLogger(__name__)

type OutdatedReason = Literal[
    "missing", "always", "command", "depend", "file", "hash_algorithm", "upstream"
]

MISSING_FILE = "<missing>"

_COMMAND_TRIGGERS: frozenset[Trigger] = frozenset({"any", "command"})
_DEPEND_TRIGGERS: frozenset[Trigger] = frozenset({"any", "depend"})
_FILE_TRIGGERS: frozenset[Trigger] = frozenset({"any", "file"})


class NodeAssessment(StructBaseStrict, frozen=True):
    """Outcome of assessing one node.

    ``fingerprint`` is the node's current fingerprint as its dependents see
    it; it is ``None`` for outdated targets, whose fingerprint is only known
    after they are rebuilt.
    """

    name: str
    kind: NodeKind
    outdated: bool
    reason: OutdatedReason | None = None
    fingerprint: str | None = None
    detail: str | None = None


class ChangeReport(StructBaseStrict, frozen=True):
    """Assessments for every node of a graph."""

    assessments: dict[str, NodeAssessment]

    def outdated_names(self, *, include_imports: bool = False) -> frozenset[str]:
        """Return the names of outdated nodes.

        Returns
        -------
        frozenset[str]
            Outdated targets, plus imports when requested.
        """
        return frozenset(
            name
            for name, assessment in self.assessments.items()
            if assessment.outdated and (include_imports or assessment.kind == "target")
        )

    def current_names(self) -> frozenset[str]:
        return frozenset(
            name for name, assessment in self.assessments.items() if not assessment.outdated
        )

    def fingerprints(self) -> dict[str, str]:
        """Return known current fingerprints keyed by node name.

        Returns
        -------
        dict[str, str]
            Fingerprints of current nodes and of every import.
        """
        return {
            name: assessment.fingerprint
            for name, assessment in self.assessments.items()
            if assessment.fingerprint is not None
        }


def dependency_fingerprint(
    dependencies: Mapping[str, str],
    inputs: Mapping[str, str],
    *,
    algorithm: str,
) -> str:
    """Return the hash of dependency fingerprints and declared input hashes.

    Dependencies are hashed as name-sorted ``(name, fingerprint)`` pairs,
    followed by path-sorted ``(path, content hash)`` pairs.

    Returns
    -------
    str
        Long hash digest.
    """
    builder = CacheKeyBuilder(algorithm=algorithm)
    builder.add("dependencies", [[name, dependencies[name]] for name in sorted(dependencies)])
    builder.add("inputs", [[path, inputs[path]] for path in sorted(inputs)])
    return builder.build()


def target_fingerprint(
    value_fingerprint: str,
    file_hashes: Mapping[str, str],
    *,
    algorithm: str,
) -> str:
    """Return a target's fingerprint from its value and output file hashes.

    Returns
    -------
    str
        Long hash digest.
    """
    components = {"value": value_fingerprint}
    components.update({f"file:{path}": digest for path, digest in file_hashes.items()})
    return CompositeFingerprint.from_mapping(components).digest(algorithm=algorithm)


def import_fingerprint(definition_hash: str, dependency_hash: str, *, algorithm: str) -> str:
    """Return an import's fingerprint from its definition and its dependencies.

    Returns
    -------
    str
        Long hash digest.
    """
    components = {"definition": definition_hash, "dependencies": dependency_hash}
    return CompositeFingerprint.from_mapping(components).digest(algorithm=algorithm)


class ChangeDetector:
    """Assess graph nodes against a fingerprint store.

    A detector memoizes file and import hashes, so create one per run.
    """

    def __init__(self, store: FingerprintStore, graph: DependencyGraph) -> None:
        self._store = store
        self._graph = graph
        self._definition_hashes: dict[str, str] = {}
        self._file_hashes: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> FingerprintStore:
        return self._store

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def detect(self) -> ChangeReport:
        """Assess every node in dependency order.

        Returns
        -------
        ChangeReport
            Assessment per node.
        """
        assessments: dict[str, NodeAssessment] = {}
        attributes = {"nodes": len(self._graph)}
        with stage_span("depgraph.outdated", stage="outdated", attributes=attributes):
            for name in self._graph.topological_order():
                assessments[name] = self.assess(name, assessments)
        outdated = sum(1 for item in assessments.values() if item.outdated)
        logger.debug("Change detection: %d of %d nodes outdated", outdated, len(assessments))
        return ChangeReport(assessments=assessments)

    def assess(self, name: str, resolved: Mapping[str, NodeAssessment]) -> NodeAssessment:
        """Assess one node given the assessments of all its dependencies.

        Returns
        -------
        NodeAssessment
            Assessment of ``name``.
        """
        node = self._graph.node(name)
        record = self._store.get_record(name)
        upstream = tuple(dep for dep in node.dependencies if resolved[dep].outdated)
        fingerprints = {
            dep: resolved[dep].fingerprint
            for dep in node.dependencies
            if resolved[dep].fingerprint is not None
        }
        if node.is_target:
            return self._assess_target(node, record, upstream, fingerprints)
        return self._assess_import(node, record, upstream, fingerprints)

    def reassess(self, name: str, fingerprints: Mapping[str, str]) -> NodeAssessment:
        """Re-check a node whose dependencies have all been resolved this run.

        Used for nodes that were outdated only because a dependency was. When
        every rebuilt dependency came out with the fingerprint this node last
        saw, and no other check fires, the node is current after all.

        Returns
        -------
        NodeAssessment
            Fresh assessment of ``name``.
        """
        node = self._graph.node(name)
        record = self._store.get_record(name)
        deps = {dep: fingerprints[dep] for dep in node.dependencies}
        if node.is_target:
            return self._assess_target(node, record, (), deps, check_depend=True)
        return self._assess_import(node, record, (), deps)

    # ------------------------------------------------------------------
    # Hash inputs
    # ------------------------------------------------------------------

    def command_hash(self, node: GraphNode) -> str:
        return self._store.text_hash(node.command or "")

    def definition_hash(self, node: GraphNode) -> str:
        """Return the hash of an import's current value or definition.

        Returns
        -------
        str
            Long hash digest.
        """
        cached = self._definition_hashes.get(node.name)
        if cached is None:
            cached = self._store.content_hash(import_payload(node.name, node.value))
            self._definition_hashes[node.name] = cached
        return cached

    def file_hash(self, path: str) -> str:
        """Return the content hash of ``path`` or the missing-file sentinel.

        Returns
        -------
        str
            Long hash digest or ``"<missing>"``.
        """
        with self._lock:
            cached = self._file_hashes.get(path)
        if cached is None:
            resolved = Path(path)
            cached = self._store.file_hash(resolved) if resolved.is_file() else MISSING_FILE
            with self._lock:
                self._file_hashes[path] = cached
        return cached

    def forget_files(self, paths: tuple[str, ...]) -> None:
        """Drop memoized hashes for files a build may have rewritten."""
        with self._lock:
            for path in paths:
                self._file_hashes.pop(path, None)

    def input_hashes(self, node: GraphNode) -> dict[str, str]:
        """Return content hashes of the node's declared input files.

        Returns
        -------
        dict[str, str]
            Hash per declared input path.
        """
        hashes = {path: self.file_hash(path) for path in node.inputs}
        for path, digest in hashes.items():
            if digest == MISSING_FILE:
                logger.warning("%s declares missing input file %s", node.name, path)
        return hashes

    def output_hashes(self, node: GraphNode) -> dict[str, str]:
        return {path: self.file_hash(path) for path in node.outputs}

    def dependency_hash(self, node: GraphNode, fingerprints: Mapping[str, str]) -> str:
        """Return the dependency hash of ``node`` for the given fingerprints.

        Returns
        -------
        str
            Long hash digest.
        """
        return dependency_fingerprint(
            {dep: fingerprints[dep] for dep in node.dependencies},
            self.input_hashes(node) if node.is_target else {},
            algorithm=self._store.long_hash_algorithm,
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _stale_record(
        self,
        node: GraphNode,
        record: FingerprintRecord | None,
        fingerprint: str | None = None,
    ) -> NodeAssessment | None:
        if record is None:
            return _outdated(node, "missing", "no fingerprint record", fingerprint)
        if record.hash_algorithm != self._store.long_hash_algorithm:
            detail = (
                f"recorded under {record.hash_algorithm}, "
                f"cache uses {self._store.long_hash_algorithm}"
            )
            return _outdated(node, "hash_algorithm", detail, fingerprint)
        return None

    def _assess_target(
        self,
        node: GraphNode,
        record: FingerprintRecord | None,
        upstream: tuple[str, ...],
        fingerprints: Mapping[str, str],
        *,
        check_depend: bool = False,
    ) -> NodeAssessment:
        stale = self._stale_record(node, record)
        if stale is not None or record is None:
            return stale or _outdated(node, "missing", "no fingerprint record")
        trigger = node.trigger
        if trigger == "always":
            return _outdated(node, "always", "trigger is always")
        if trigger in _COMMAND_TRIGGERS and self.command_hash(node) != record.command_hash:
            return _outdated(node, "command", "command text changed")
        if upstream:
            return _outdated(node, "upstream", f"outdated dependencies: {', '.join(upstream)}")
        if (check_depend or trigger in _DEPEND_TRIGGERS) and (
            self.dependency_hash(node, fingerprints) != record.dependency_hash
        ):
            reason: OutdatedReason = "depend" if trigger in _DEPEND_TRIGGERS else "upstream"
            return _outdated(node, reason, "dependency fingerprints changed")
        if trigger in _FILE_TRIGGERS:
            changed = _changed_files(self.output_hashes(node), record.file_hashes)
            if changed:
                return _outdated(node, "file", f"output files changed: {', '.join(changed)}")
        return NodeAssessment(
            name=node.name,
            kind=node.kind,
            outdated=False,
            fingerprint=record.output_hash,
        )

    def _assess_import(
        self,
        node: GraphNode,
        record: FingerprintRecord | None,
        upstream: tuple[str, ...],
        fingerprints: Mapping[str, str],
    ) -> NodeAssessment:
        fingerprint: str | None = None
        definition = self.definition_hash(node)
        missing_deps = [dep for dep in node.dependencies if dep not in fingerprints]
        if not missing_deps:
            fingerprint = import_fingerprint(
                definition,
                self.dependency_hash(node, fingerprints),
                algorithm=self._store.long_hash_algorithm,
            )
        stale = self._stale_record(node, record, fingerprint)
        if stale is not None or record is None:
            return stale or _outdated(node, "missing", "no fingerprint record", fingerprint)
        if definition != record.command_hash:
            return _outdated(node, "command", "definition changed", fingerprint)
        if upstream:
            detail = f"outdated dependencies: {', '.join(upstream)}"
            return _outdated(node, "upstream", detail, fingerprint)
        if fingerprint != record.output_hash:
            return _outdated(node, "depend", "dependency fingerprints changed", fingerprint)
        return NodeAssessment(
            name=node.name,
            kind=node.kind,
            outdated=False,
            fingerprint=fingerprint,
        )


def _outdated(
    node: GraphNode,
    reason: OutdatedReason,
    detail: str,
    fingerprint: str | None = None,
) -> NodeAssessment:
    return NodeAssessment(
        name=node.name,
        kind=node.kind,
        outdated=True,
        reason=reason,
        fingerprint=fingerprint,
        detail=detail,
    )


def _changed_files(current: Mapping[str, str], recorded: Mapping[str, str]) -> list[str]:
    return sorted(
        path
        for path, digest in current.items()
        if digest == MISSING_FILE or recorded.get(path) != digest
    )


__all__ = [
    "MISSING_FILE",
    "ChangeDetector",
    "ChangeReport",
    "NodeAssessment",
    "OutdatedReason",
    "dependency_fingerprint",
    "import_fingerprint",
    "target_fingerprint",
]
