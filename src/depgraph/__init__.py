"""Dependency graph construction, change detection and frontier scheduling."""

from depgraph.extractors import (
    DependencyExtractor,
    DocumentExtractor,
    DocumentExtractorRegistry,
    MarkdownChunkExtractor,
    PythonSymbolExtractor,
    default_document_extractors,
)
from depgraph.outdated import ChangeDetector, ChangeReport, NodeAssessment, OutdatedReason
from depgraph.rustworkx_graph import (
    DependencyGraph,
    GraphEdge,
    GraphNode,
    build_dependency_graph,
    graph_signature,
    graph_snapshot,
)
from depgraph.rustworkx_schedule import (
    FrontierScheduler,
    ScheduleOptions,
    ScheduleResult,
    ready_sets,
)

__all__ = [
    "ChangeDetector",
    "ChangeReport",
    "DependencyExtractor",
    "DependencyGraph",
    "DocumentExtractor",
    "DocumentExtractorRegistry",
    "FrontierScheduler",
    "GraphEdge",
    "GraphNode",
    "MarkdownChunkExtractor",
    "NodeAssessment",
    "OutdatedReason",
    "PythonSymbolExtractor",
    "ScheduleOptions",
    "ScheduleResult",
    "build_dependency_graph",
    "default_document_extractors",
    "graph_signature",
    "graph_snapshot",
    "ready_sets",
]
