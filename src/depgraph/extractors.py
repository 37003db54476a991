"""Dependency extraction collaborators.

Two kinds of extractor feed the graph builder. A symbol extractor maps a
command (or an import's source) to the free names it references. A document
extractor maps a literate-document input file to the target names its code
chunks read.
"""

from __future__ import annotations

import ast
import builtins
import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from core.errors import ExtractionError

logger = logging.getLogger(__name__)

BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))

_NAMED_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@runtime_checkable
class DependencyExtractor(Protocol):
    """Map command or definition text to referenced symbol names."""

    def extract(self, text: str, *, name: str) -> frozenset[str]:
        """Return the names referenced by ``text``.

        ``name`` identifies the node being analysed and is used in errors.
        """
        ...


@runtime_checkable
class DocumentExtractor(Protocol):
    """Map a literate document to the target names it reads."""

    def extract(self, path: Path) -> frozenset[str]:
        """Return the target names referenced by the document at ``path``."""
        ...


class _BindingCollector(ast.NodeVisitor):
    """Collect loaded and bound names across a syntax tree."""

    def __init__(self) -> None:
        self.loaded: set[str] = set()
        self.bound: set[str] = set()

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            self.loaded.add(node.id)
        else:
            self.bound.add(node.id)

    def visit_arg(self, node: ast.arg) -> None:
        self.bound.add(node.arg)
        self.generic_visit(node)

    def visit_alias(self, node: ast.alias) -> None:
        bound = node.asname or node.name.split(".", maxsplit=1)[0]
        self.bound.add(bound)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self.bound.add(node.name)
        self.generic_visit(node)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name:
            self.bound.add(node.name)
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self.bound.add(node.name)

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        if node.rest:
            self.bound.add(node.rest)
        self.generic_visit(node)

    def generic_visit(self, node: ast.AST) -> None:
        if isinstance(node, _NAMED_DEFINITIONS):
            self.bound.add(node.name)
        super().generic_visit(node)


def free_names(tree: ast.AST) -> frozenset[str]:
    """Return names loaded in ``tree`` that are never bound inside it.

    Binding is tracked per tree rather than per scope, so a name bound
    anywhere in the analysed text shadows every load of it.

    Returns
    -------
    frozenset[str]
        Free names in the tree.
    """
    collector = _BindingCollector()
    collector.visit(tree)
    return frozenset(collector.loaded - collector.bound)


def parse_source(text: str, *, name: str) -> ast.AST:
    """Parse a command expression, falling back to module mode for definitions.

    Raises
    ------
    ExtractionError
        Raised when the text is not valid Python.

    Returns
    -------
    ast.AST
        Parsed syntax tree.
    """
    try:
        return ast.parse(text, filename=f"<{name}>", mode="eval")
    except SyntaxError:
        pass
    try:
        return ast.parse(text, filename=f"<{name}>", mode="exec")
    except SyntaxError as exc:
        msg = f"invalid Python syntax at line {exc.lineno}: {exc.msg}"
        raise ExtractionError(name, msg) from exc


class PythonSymbolExtractor:
    """Free-name extractor for Python expressions and definitions.

    Parameters
    ----------
    ignore_builtins
        Drop names that resolve to Python builtins.
    """

    def __init__(self, *, ignore_builtins: bool = True) -> None:
        self._ignore_builtins = ignore_builtins

    def extract(self, text: str, *, name: str) -> frozenset[str]:
        """Return the free names referenced by ``text``.

        Returns
        -------
        frozenset[str]
            Referenced names, excluding builtins when configured.
        """
        names = free_names(parse_source(text, name=name))
        if self._ignore_builtins:
            names = names - BUILTIN_NAMES
        return names


_FENCE_RE = re.compile(
    r"^(?P<fence>`{3,}|~{3,})[ \t]*\{?[ \t]*(?P<lang>[A-Za-z0-9_+-]*)[^\n]*\n"
    r"(?P<body>.*?)"
    r"^(?P=fence)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)
_PYTHON_LANGS = frozenset({"python", "py", "python3"})


class MarkdownChunkExtractor:
    """Find ``read("x")`` / ``load("a", "b")`` calls in fenced Python chunks.

    Both plain fences (````` ```python `````) and Quarto / R Markdown style
    fences (````` ```{python} `````) are recognised. Calls may be bare names or
    attribute access (``targetflow.read("x")``); string positional arguments
    and a ``name=`` keyword are collected.
    """

    def __init__(self, call_names: Iterable[str] = ("read", "load")) -> None:
        self._call_names = frozenset(call_names)

    @property
    def call_names(self) -> frozenset[str]:
        return self._call_names

    def extract(self, path: Path) -> frozenset[str]:
        """Return target names read by code chunks in ``path``.

        Raises
        ------
        ExtractionError
            Raised when the document is missing or a chunk does not parse.

        Returns
        -------
        frozenset[str]
            Referenced target names.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            msg = f"cannot read document {path}: {exc}"
            raise ExtractionError(str(path), msg) from exc
        found: set[str] = set()
        for index, chunk in enumerate(self._python_chunks(text)):
            try:
                tree = ast.parse(chunk, filename=f"{path}#chunk{index}")
            except SyntaxError as exc:
                msg = f"code chunk {index} is not valid Python: {exc.msg}"
                raise ExtractionError(str(path), msg) from exc
            found.update(self._calls_in(tree))
        logger.debug("Document %s references %s", path, sorted(found))
        return frozenset(found)

    @staticmethod
    def _python_chunks(text: str) -> list[str]:
        return [
            match.group("body")
            for match in _FENCE_RE.finditer(text)
            if match.group("lang").lower() in _PYTHON_LANGS
        ]

    def _calls_in(self, tree: ast.AST) -> set[str]:
        names: set[str] = set()
        for node in ast.walk(tree):
            if not isinstance(node, ast.Call) or _call_name(node) not in self._call_names:
                continue
            names.update(
                arg.value
                for arg in node.args
                if isinstance(arg, ast.Constant) and isinstance(arg.value, str)
            )
            names.update(
                keyword.value.value
                for keyword in node.keywords
                if keyword.arg == "name"
                and isinstance(keyword.value, ast.Constant)
                and isinstance(keyword.value.value, str)
            )
        return names


def _call_name(node: ast.Call) -> str | None:
    func = node.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


class DocumentExtractorRegistry:
    """Document extractors keyed by lower-case file extension."""

    def __init__(self, extractors: Mapping[str, DocumentExtractor] | None = None) -> None:
        self._extractors: dict[str, DocumentExtractor] = {}
        for extension, extractor in (extractors or {}).items():
            self.register(extension, extractor)

    def register(self, extension: str, extractor: DocumentExtractor) -> None:
        """Register ``extractor`` for files ending in ``extension``."""
        self._extractors[_normalize_extension(extension)] = extractor

    @property
    def extensions(self) -> tuple[str, ...]:
        return tuple(sorted(self._extractors))

    def for_path(self, path: str | Path) -> DocumentExtractor | None:
        """Return the extractor registered for ``path``'s extension, if any.

        Returns
        -------
        DocumentExtractor | None
            Matching extractor.
        """
        return self._extractors.get(Path(path).suffix.lower())

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.for_path(path) is not None


def _normalize_extension(extension: str) -> str:
    ext = extension.lower()
    return ext if ext.startswith(".") else f".{ext}"


def default_document_extractors() -> DocumentExtractorRegistry:
    """Return a registry with the Markdown chunk extractor for .md/.qmd/.rmd.

    Returns
    -------
    DocumentExtractorRegistry
        Registry with bundled extractors.
    """
    markdown = MarkdownChunkExtractor()
    return DocumentExtractorRegistry({".md": markdown, ".qmd": markdown, ".rmd": markdown})


__all__ = [
    "BUILTIN_NAMES",
    "DependencyExtractor",
    "DocumentExtractor",
    "DocumentExtractorRegistry",
    "MarkdownChunkExtractor",
    "PythonSymbolExtractor",
    "default_document_extractors",
    "free_names",
    "parse_source",
]
