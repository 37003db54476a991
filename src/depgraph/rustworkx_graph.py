"""Rustworkx-backed dependency graph of targets and imports."""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import rustworkx as rx

from core.errors import AmbiguousOutputError, CycleError, ExtractionError
from depgraph.extractors import (
    BUILTIN_NAMES,
    DependencyExtractor,
    DocumentExtractorRegistry,
    PythonSymbolExtractor,
    default_document_extractors,
)
from depgraph.imports import definition_source
from obs.otel.tracing import stage_span
from plan.model import DEFAULT_TRIGGER, Plan, TargetSpec, Trigger
from utils.hashing import hash_msgpack_canonical

logger = logging.getLogger(__name__)

NodeKind = Literal["target", "import"]
EdgeKind = Literal["symbol", "file"]

GRAPH_SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class GraphNode:
    """Node payload: a declared target or an imported value."""

    name: str
    kind: NodeKind
    command: str | None = None
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    trigger: Trigger = DEFAULT_TRIGGER
    value: object = field(default=None, compare=False, repr=False)

    @property
    def is_target(self) -> bool:
        return self.kind == "target"


@dataclass(frozen=True)
class GraphEdge:
    """Edge payload from a dependency to its dependent."""

    kind: EdgeKind
    name: str


@dataclass(frozen=True)
class GraphSnapshot:
    """Deterministic snapshot of a dependency graph."""

    version: int
    nodes: tuple[dict[str, object], ...]
    edges: tuple[dict[str, object], ...]


@dataclass(frozen=True)
class DependencyGraph:
    """Rustworkx graph plus name lookup indices.

    ``untracked`` maps node names to referenced names that resolved to
    neither a target nor an environment value (builtins excluded).
    """

    graph: rx.PyDiGraph
    node_idx: Mapping[str, int]
    untracked: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.node_idx

    def __len__(self) -> int:
        return len(self.node_idx)

    def index(self, name: str) -> int:
        """Return the graph index of ``name``.

        Raises
        ------
        KeyError
            Raised when the graph has no such node.

        Returns
        -------
        int
            Node index.
        """
        try:
            return self.node_idx[name]
        except KeyError:
            msg = f"Dependency graph has no node named {name!r}."
            raise KeyError(msg) from None

    def node(self, name: str) -> GraphNode:
        return self.graph[self.index(name)]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self.node_idx))

    @property
    def target_names(self) -> tuple[str, ...]:
        return tuple(name for name in self.names if self.node(name).is_target)

    @property
    def import_names(self) -> tuple[str, ...]:
        return tuple(name for name in self.names if not self.node(name).is_target)

    def dependencies(self, name: str) -> tuple[str, ...]:
        """Return the direct dependencies of ``name``, sorted.

        Returns
        -------
        tuple[str, ...]
            Dependency names.
        """
        return tuple(
            sorted(self.graph[idx].name for idx in self.graph.predecessor_indices(self.index(name)))
        )

    def dependents(self, name: str) -> tuple[str, ...]:
        """Return the direct dependents of ``name``, sorted.

        Returns
        -------
        tuple[str, ...]
            Dependent names.
        """
        return tuple(
            sorted(self.graph[idx].name for idx in self.graph.successor_indices(self.index(name)))
        )

    def upstream(self, name: str) -> frozenset[str]:
        """Return every transitive dependency of ``name``.

        Returns
        -------
        frozenset[str]
            Ancestor names.
        """
        return frozenset(self.graph[idx].name for idx in rx.ancestors(self.graph, self.index(name)))

    def downstream(self, name: str) -> frozenset[str]:
        """Return every transitive dependent of ``name``.

        Returns
        -------
        frozenset[str]
            Descendant names.
        """
        return frozenset(
            self.graph[idx].name for idx in rx.descendants(self.graph, self.index(name))
        )

    def topological_order(self) -> tuple[str, ...]:
        """Return node names in dependency order, ties broken by name.

        Returns
        -------
        tuple[str, ...]
            Names with every dependency before its dependents.
        """
        ordered = rx.lexicographical_topological_sort(self.graph, key=_node_sort_key)
        return tuple(node.name for node in ordered)

    def subgraph(self, names: Iterable[str]) -> DependencyGraph:
        """Return the graph restricted to ``names`` and their upstream nodes.

        Returns
        -------
        DependencyGraph
            Induced subgraph containing the requested nodes and ancestors.
        """
        keep: set[int] = set()
        for name in names:
            idx = self.index(name)
            keep.add(idx)
            keep.update(rx.ancestors(self.graph, idx))
        sub = self.graph.subgraph(sorted(keep))
        node_idx = {sub[idx].name: idx for idx in sub.node_indices()}
        untracked = {name: self.untracked[name] for name in node_idx if name in self.untracked}
        return DependencyGraph(graph=sub, node_idx=node_idx, untracked=untracked)


def _node_sort_key(node: GraphNode) -> str:
    return node.name


def _normalize_path(path: str) -> str:
    return os.path.normpath(path)


def _output_producers(plan: Plan) -> dict[str, str]:
    producers: dict[str, str] = {}
    for spec in plan:
        for path in spec.outputs:
            key = _normalize_path(path)
            owner = producers.get(key)
            if owner is not None:
                raise AmbiguousOutputError(path, (owner, spec.name))
            producers[key] = spec.name
    return producers


@dataclass
class _GraphBuilder:
    plan: Plan
    environment: Mapping[str, object]
    extractor: DependencyExtractor
    documents: DocumentExtractorRegistry
    producers: dict[str, str]
    nodes: dict[str, GraphNode] = field(default_factory=dict)
    edges: dict[tuple[str, str], GraphEdge] = field(default_factory=dict)
    untracked: dict[str, frozenset[str]] = field(default_factory=dict)

    def resolvable(self, name: str) -> bool:
        return name in self.plan or name in self.environment

    def split(self, owner: str, names: Iterable[str]) -> frozenset[str]:
        names = frozenset(names)
        tracked = frozenset(name for name in names if self.resolvable(name))
        missing = frozenset(names - tracked - BUILTIN_NAMES)
        if missing:
            self.untracked[owner] = missing
        return tracked

    def add_symbol_edges(self, owner: str, names: Iterable[str]) -> None:
        for name in names:
            self.edges[name, owner] = GraphEdge(kind="symbol", name=name)

    def add_target(self, spec: TargetSpec) -> frozenset[str]:
        referenced = set(self.extractor.extract(spec.command, name=spec.name))
        for path in spec.inputs:
            document = self.documents.for_path(path)
            if document is None:
                continue
            try:
                referenced.update(document.extract(Path(path)))
            except ExtractionError as exc:
                raise ExtractionError(spec.name, str(exc)) from exc
        symbols = self.split(spec.name, referenced)
        self.add_symbol_edges(spec.name, symbols)
        producers: set[str] = set()
        for path in spec.inputs:
            producer = self.producers.get(_normalize_path(path))
            if producer is None:
                continue
            producers.add(producer)
            self.edges.setdefault((producer, spec.name), GraphEdge(kind="file", name=path))
        self.nodes[spec.name] = GraphNode(
            name=spec.name,
            kind="target",
            command=spec.command,
            inputs=spec.inputs,
            outputs=spec.outputs,
            dependencies=tuple(sorted(symbols | producers)),
            trigger=spec.trigger,
        )
        return frozenset(name for name in symbols if name not in self.plan)

    def add_imports(self, pending: Iterable[str]) -> None:
        queue = deque(sorted(pending))
        while queue:
            name = queue.popleft()
            if name in self.nodes:
                continue
            value = self.environment[name]
            source = definition_source(value)
            symbols: frozenset[str] = frozenset()
            if source is not None:
                referenced = self.extractor.extract(source, name=name) - {name}
                symbols = self.split(name, referenced)
                self.add_symbol_edges(name, symbols)
            self.nodes[name] = GraphNode(
                name=name,
                kind="import",
                dependencies=tuple(sorted(symbols)),
                value=value,
            )
            queue.extend(
                sorted(dep for dep in symbols if dep not in self.plan and dep not in self.nodes)
            )

    def build(self) -> DependencyGraph:
        graph = rx.PyDiGraph(
            multigraph=False,
            check_cycle=False,
            node_count_hint=len(self.nodes),
            edge_count_hint=len(self.edges),
        )
        ordered = sorted(self.nodes.values(), key=_node_sort_key)
        indices = graph.add_nodes_from(ordered)
        node_idx = {node.name: idx for node, idx in zip(ordered, indices, strict=True)}
        graph.add_edges_from(
            [
                (node_idx[source], node_idx[target], payload)
                for (source, target), payload in sorted(self.edges.items())
            ]
        )
        return DependencyGraph(graph=graph, node_idx=node_idx, untracked=dict(self.untracked))


def build_dependency_graph(
    plan: Plan,
    *,
    environment: Mapping[str, object] | None = None,
    extractor: DependencyExtractor | None = None,
    document_extractors: DocumentExtractorRegistry | None = None,
) -> DependencyGraph:
    """Build the dependency graph for a plan.

    Parameters
    ----------
    plan
        Target declarations.
    environment
        Namespace that commands are evaluated in. Referenced names found
        here, and not declared as targets, become import nodes.
    extractor
        Symbol extractor; defaults to :class:`PythonSymbolExtractor`.
    document_extractors
        Literate-document extractors applied to declared inputs; defaults to
        the bundled Markdown chunk extractor.

    Returns
    -------
    DependencyGraph
        Acyclic graph of targets and imports.

    Raises
    ------
    AmbiguousOutputError
        Raised when two targets declare the same output path.
    CycleError
        Raised when the graph has a directed cycle.
    """
    with stage_span("depgraph.build", stage="graph", attributes={"targets": len(plan)}):
        builder = _GraphBuilder(
            plan=plan,
            environment=dict(environment or {}),
            extractor=extractor or PythonSymbolExtractor(),
            documents=(
                document_extractors
                if document_extractors is not None
                else default_document_extractors()
            ),
            producers=_output_producers(plan),
        )
        pending: set[str] = set()
        for spec in plan:
            pending.update(builder.add_target(spec))
        builder.add_imports(pending)
        graph = builder.build()
        ensure_acyclic(graph)
    for name, missing in sorted(graph.untracked.items()):
        logger.warning("%s references untracked names: %s", name, ", ".join(sorted(missing)))
    logger.debug(
        "Built dependency graph with %d targets, %d imports and %d edges",
        len(graph.target_names),
        len(graph.import_names),
        graph.graph.num_edges(),
    )
    return graph


def ensure_acyclic(graph: DependencyGraph) -> None:
    """Raise :class:`CycleError` naming one cycle when the graph is not a DAG.

    Raises
    ------
    CycleError
        Raised when a directed cycle exists.
    """
    if rx.is_directed_acyclic_graph(graph.graph):
        return
    raise CycleError(_cycle_names(graph.graph))


def _cycle_names(graph: rx.PyDiGraph) -> tuple[str, ...]:
    for idx in sorted(graph.node_indices()):
        if graph.has_edge(idx, idx):
            return (graph[idx].name,)
    edges = list(rx.digraph_find_cycle(graph))
    if edges:
        return tuple(graph[source].name for source, _ in edges)
    components = [
        sorted(graph[idx].name for idx in component)
        for component in rx.strongly_connected_components(graph)
        if len(component) > 1
    ]
    return tuple(min(components)) if components else ()


def graph_snapshot(graph: DependencyGraph) -> GraphSnapshot:
    """Return a deterministic, declaration-order independent snapshot.

    Returns
    -------
    GraphSnapshot
        Snapshot for hashing or diagnostics.
    """
    nodes = tuple(
        {
            "name": node.name,
            "kind": node.kind,
            "command": node.command,
            "inputs": list(node.inputs),
            "outputs": list(node.outputs),
            "dependencies": list(node.dependencies),
            "trigger": node.trigger,
        }
        for node in (graph.node(name) for name in graph.topological_order())
    )
    edges = tuple(
        sorted(
            (
                {
                    "source": graph.graph[source].name,
                    "target": graph.graph[target].name,
                    "kind": payload.kind,
                    "name": payload.name,
                }
                for source, target, payload in graph.graph.weighted_edge_list()
            ),
            key=lambda edge: (str(edge["source"]), str(edge["target"])),
        )
    )
    return GraphSnapshot(version=GRAPH_SNAPSHOT_VERSION, nodes=nodes, edges=edges)


def graph_signature(snapshot: GraphSnapshot) -> str:
    """Return a stable signature for a graph snapshot.

    Returns
    -------
    str
        Stable hash of the snapshot payload.
    """
    payload = {
        "version": snapshot.version,
        "nodes": list(snapshot.nodes),
        "edges": list(snapshot.edges),
    }
    return hash_msgpack_canonical(payload)


def untracked_names(graph: DependencyGraph) -> frozenset[str]:
    """Return every referenced name that resolved to nothing.

    Returns
    -------
    frozenset[str]
        Union of untracked names across nodes.
    """
    return frozenset().union(*graph.untracked.values()) if graph.untracked else frozenset()


__all__ = [
    "GRAPH_SNAPSHOT_VERSION",
    "DependencyGraph",
    "EdgeKind",
    "GraphEdge",
    "GraphNode",
    "GraphSnapshot",
    "NodeKind",
    "build_dependency_graph",
    "ensure_acyclic",
    "graph_signature",
    "graph_snapshot",
    "untracked_names",
]
