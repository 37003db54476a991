"""Tests for symbol and literate-document dependency extraction."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import ExtractionError
from depgraph.extractors import (
    DependencyExtractor,
    DocumentExtractorRegistry,
    MarkdownChunkExtractor,
    PythonSymbolExtractor,
    default_document_extractors,
)


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        ("a + b * 2", {"a", "b"}),
        ("len(items)", {"items"}),
        ("[x * scale for x in data]", {"scale", "data"}),
        ("(lambda v: v + offset)(base)", {"offset", "base"}),
        ("helper(raw).mean()", {"helper", "raw"}),
        ("{k: v for k, v in table.items() if k in keep}", {"table", "keep"}),
        ("'literal'", set()),
    ],
)
def test_python_extractor_free_names(command: str, expected: set[str]) -> None:
    """Only free, non-builtin names are reported."""
    extractor = PythonSymbolExtractor()
    assert extractor.extract(command, name="t") == frozenset(expected)


def test_python_extractor_handles_definitions() -> None:
    """Function sources report globals but not parameters or locals."""
    source = (
        "def summarize(frame, column='x'):\n"
        "    import math\n"
        "    total = sum(frame[column])\n"
        "    try:\n"
        "        return math.sqrt(total) * FACTOR\n"
        "    except ValueError as exc:\n"
        "        return fallback(exc)\n"
    )
    assert PythonSymbolExtractor().extract(source, name="summarize") == frozenset(
        {"FACTOR", "fallback"}
    )


def test_python_extractor_can_keep_builtins() -> None:
    """Builtins are reported when filtering is disabled."""
    extractor = PythonSymbolExtractor(ignore_builtins=False)
    assert extractor.extract("len(a)", name="t") == frozenset({"len", "a"})


def test_python_extractor_satisfies_protocol() -> None:
    """The bundled extractor matches the extractor protocol."""
    assert isinstance(PythonSymbolExtractor(), DependencyExtractor)


def test_syntax_error_becomes_extraction_error() -> None:
    """Unparsable commands name the node in the error."""
    with pytest.raises(ExtractionError) as info:
        PythonSymbolExtractor().extract("a +", name="broken")
    assert info.value.name == "broken"


def test_markdown_chunks_are_scanned(tmp_path: Path) -> None:
    """Read and load calls in Python chunks are collected; other chunks are not."""
    report = tmp_path / "report.qmd"
    report.write_text(
        "# Report\n\n"
        "```{python}\n"
        "summary = read('summary')\n"
        "targetflow.load('fit', 'scores')\n"
        "```\n\n"
        "```python\n"
        "plot(read(name='chart'))\n"
        "```\n\n"
        "```r\n"
        "read('ignored')\n"
        "```\n\n"
        "Text mentioning read('prose') is ignored.\n",
        encoding="utf-8",
    )
    names = MarkdownChunkExtractor().extract(report)
    assert names == frozenset({"summary", "fit", "scores", "chart"})


def test_markdown_chunk_syntax_error(tmp_path: Path) -> None:
    """A chunk that does not parse is an extraction error."""
    report = tmp_path / "bad.md"
    report.write_text("```python\nread('a'\n```\n", encoding="utf-8")
    with pytest.raises(ExtractionError):
        MarkdownChunkExtractor().extract(report)


def test_missing_document_is_an_extraction_error(tmp_path: Path) -> None:
    """Documents that do not exist cannot be scanned."""
    with pytest.raises(ExtractionError):
        MarkdownChunkExtractor().extract(tmp_path / "absent.md")


def test_registry_matches_extensions_case_insensitively() -> None:
    """Registered extensions are normalized to a lower-case dotted suffix."""
    registry = default_document_extractors()
    assert registry.extensions == (".md", ".qmd", ".rmd")
    assert "notes/REPORT.Rmd" in registry
    assert registry.for_path("data.csv") is None
    custom = DocumentExtractorRegistry()
    custom.register("IPYNB", MarkdownChunkExtractor())
    assert custom.extensions == (".ipynb",)
    assert 42 not in custom
