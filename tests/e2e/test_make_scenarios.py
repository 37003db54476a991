"""E2E tests: make/outdated scenarios through the public API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import pytest

from cache.backends import MemoryBackend
from cache.store import FingerprintStore
from core.errors import AmbiguousOutputError, ConfigurationError, CycleError
from engine.facade import make, memory_cache, outdated, progress, read, ready_sets
from plan import Plan, target
from tests.test_helpers.build_recorder import CallRecorder


def write_report(path: str, text: str) -> int:
    return Path(path).write_text(text, encoding="utf-8")


def read_report(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


@dataclass(frozen=True)
class Meters:
    amount: int


@dataclass(frozen=True)
class Feet:
    amount: int


def double(value: int) -> int:
    return value * 2


class _ExplicitDependencies:
    def __init__(self, edges: Mapping[str, frozenset[str]]) -> None:
        self._edges = edges

    def extract(self, text: str, *, name: str) -> frozenset[str]:
        return self._edges.get(name, frozenset())


class _SingleThreadedBackend(MemoryBackend):
    @property
    def thread_safe(self) -> bool:
        return False


@pytest.fixture(params=["memory", "disk"])
def cache(request: pytest.FixtureRequest) -> FingerprintStore:
    """Run each scenario against both bundled backends."""
    fixture = "memory_store" if request.param == "memory" else "disk_store"
    return request.getfixturevalue(fixture)


@pytest.mark.e2e
def test_edit_upstream_command_rebuilds_dependents(cache: FingerprintStore) -> None:
    """Builds run in dependency order, are idempotent and follow command edits."""
    plan = Plan.from_commands({"A": "1 + 1", "B": "A * 2"})
    first = make(plan, cache)
    assert first.ok
    assert first.built == ("A", "B")
    assert first.frontiers == (("A",), ("B",))
    assert read("B", cache) == 4

    second = make(plan, cache)
    assert second.built == ()
    assert set(second.skipped) == {"A", "B"}
    assert outdated(plan, cache) == frozenset()

    edited = Plan.from_commands({"A": "1 + 2", "B": "A * 2"})
    assert outdated(edited, cache) == {"A", "B"}
    third = make(edited, cache)
    assert third.built == ("A", "B")
    assert read("B", cache) == 6


@pytest.mark.e2e
def test_unchanged_upstream_value_stops_propagation(cache: FingerprintStore) -> None:
    """A rebuilt target with an identical value leaves its dependents current."""
    make(Plan.from_commands({"A": "1 + 1", "B": "A * 2"}), cache)
    report = make(Plan.from_commands({"A": "2", "B": "A * 2"}), cache)
    assert report.built == ("A",)
    assert "B" in report.skipped


@pytest.mark.e2e
def test_upstream_type_change_rebuilds_dependents(cache: FingerprintStore) -> None:
    """An upstream value of a new type with equal items still propagates."""
    make(Plan.from_commands({"a": "[1, 2]", "b": "type(a).__name__"}), cache)
    assert read("b", cache) == "list"

    report = make(Plan.from_commands({"a": "(1, 2)", "b": "type(a).__name__"}), cache)
    assert report.built == ("a", "b")
    assert read("b", cache) == "tuple"


@pytest.mark.e2e
def test_upstream_type_change_surfaces_dependent_failure(cache: FingerprintStore) -> None:
    """A dependent that cannot handle the new upstream type fails instead of going stale."""
    make(Plan.from_commands({"a": "[1, 2]", "b": "a + [3]"}), cache)
    report = make(Plan.from_commands({"a": "(1, 2)", "b": "a + [3]"}), cache)
    assert report.built == ("a",)
    assert report.failed_names == ("b",)
    assert "b" not in report.skipped


@pytest.mark.e2e
def test_upstream_record_type_change_rebuilds_dependents(cache: FingerprintStore) -> None:
    """Records with identical fields but different classes are distinct values."""
    environment = {"Meters": Meters, "Feet": Feet}
    make(
        Plan.from_commands({"a": "Meters(3)", "b": "type(a).__name__"}),
        cache,
        environment=environment,
    )
    report = make(
        Plan.from_commands({"a": "Feet(3)", "b": "type(a).__name__"}),
        cache,
        environment=environment,
    )
    assert "b" in report.built
    assert read("b", cache) == "Feet"


@pytest.mark.e2e
def test_always_trigger_rebuilds_every_run(cache: FingerprintStore) -> None:
    """Targets with the always trigger run on every make."""
    recorder = CallRecorder()
    plan = Plan.of(target("C", "record('C', 3)", trigger="always"), target("D", "4"))
    environment = {"record": recorder.record}
    make(plan, cache, environment=environment)
    report = make(plan, cache, environment=environment)
    assert report.built == ("C",)
    assert report.skipped == ("D",)
    assert recorder.count("C") == 2


@pytest.mark.e2e
def test_ambiguous_outputs_fail_before_building(
    cache: FingerprintStore, workdir: Path
) -> None:
    """Two targets declaring one output path raise before anything runs."""
    recorder = CallRecorder()
    plan = Plan.of(
        target("first", "record('first')", outputs=["out.txt"]),
        target("second", "record('second')", outputs=["./out.txt"]),
    )
    with pytest.raises(AmbiguousOutputError) as excinfo:
        make(plan, cache, environment={"record": recorder.record})
    assert excinfo.value.targets == ("first", "second")
    assert recorder.calls == []
    assert cache.cached_names() == frozenset()


@pytest.mark.e2e
def test_cycles_fail_before_building(cache: FingerprintStore) -> None:
    """Cyclic plans are rejected at graph construction."""
    with pytest.raises(CycleError):
        make(Plan.from_commands({"a": "b + 1", "b": "a + 1"}), cache)
    assert cache.cached_names() == frozenset()


@pytest.mark.e2e
def test_failed_command_is_retried(cache: FingerprintStore) -> None:
    """A failing target keeps no record and is attempted again next run."""
    recorder = CallRecorder()
    environment = {"fail": recorder.fail, "record": recorder.record}
    plan = Plan.from_commands({"a": "fail('a')", "b": "a + 1"})
    report = make(plan, cache, environment=environment)
    assert not report.ok
    assert report.failed_names == ("a",)
    assert report.blocked == ("b",)
    assert cache.get_record("a") is None

    again = make(plan, cache, environment=environment)
    assert again.failed_names == ("a",)
    assert recorder.count("a") == 2

    fixed = Plan.from_commands({"a": "record('a', 1)", "b": "a + 1"})
    recovered = make(fixed, cache, environment=environment)
    assert recovered.ok
    assert read("b", cache) == 2
    assert cache.get_failure("a") is None


@pytest.mark.e2e
def test_keep_going_builds_independent_targets(cache: FingerprintStore) -> None:
    """With keep_going, failures only block their own dependents."""
    recorder = CallRecorder()
    plan = Plan.from_commands({"a": "fail('a')", "b": "a + 1", "c": "record('c', 5)"})
    report = make(
        plan,
        cache,
        environment={"fail": recorder.fail, "record": recorder.record},
        keep_going=True,
    )
    assert report.failed_names == ("a",)
    assert report.built == ("c",)
    assert report.blocked == ("b",)


@pytest.mark.e2e
def test_deleted_output_file_is_rebuilt(cache: FingerprintStore, workdir: Path) -> None:
    """Declared outputs are tracked by content and file edges order builds."""
    plan = Plan.of(
        target("summary", "read_report('report.txt').upper()", inputs=["report.txt"]),
        target("report", "write_report('report.txt', 'hello')", outputs=["report.txt"]),
    )
    environment = {"read_report": read_report, "write_report": write_report}
    first = make(plan, cache, environment=environment)
    assert first.built == ("report", "summary")
    assert read("summary", cache) == "HELLO"

    (workdir / "report.txt").unlink()
    assert outdated(plan, cache, environment=environment) == {"report", "summary"}
    second = make(plan, cache, environment=environment)
    assert second.built == ("report",)
    assert "summary" in second.skipped


@pytest.mark.e2e
def test_requested_targets_limit_the_run(cache: FingerprintStore) -> None:
    """Naming targets builds them and their upstream only."""
    plan = Plan.from_commands({"a": "1", "b": "a + 1", "c": "2"})
    report = make(plan, cache, targets=("b",))
    assert report.built == ("a", "b")
    assert cache.cached_names() == {"a", "b"}


@pytest.mark.e2e
def test_dry_run_writes_nothing(cache: FingerprintStore) -> None:
    """Dry runs report frontiers without running commands."""
    recorder = CallRecorder()
    plan = Plan.from_commands({"a": "record('a')", "b": "record('b')", "c": "a + b"})
    report = make(plan, cache, environment={"record": recorder.record}, jobs=2, dry_run=True)
    assert report.dry_run
    assert report.frontiers == (("record",), ("a", "b"), ("c",))
    assert recorder.calls == []
    assert cache.cached_names() == frozenset()


@pytest.mark.e2e
def test_parallel_jobs_overlap_independent_targets(cache: FingerprintStore) -> None:
    """Independent targets run concurrently up to the job limit."""
    recorder = CallRecorder(delay_s=0.2)
    commands = {f"t{index}": f"record('t{index}', {index})" for index in range(4)}
    commands["total"] = "t0 + t1 + t2 + t3"
    report = make(
        Plan.from_commands(commands),
        cache,
        environment={"record": recorder.record},
        jobs=4,
    )
    assert report.ok
    assert 2 <= recorder.max_active <= 4
    assert report.frontiers == (("record",), ("t0", "t1", "t2", "t3"), ("total",))
    assert report.imported == ("record",)
    assert read("total", cache) == 6


@pytest.mark.e2e
def test_parallel_jobs_require_thread_safe_backend() -> None:
    """Backends that are not thread safe only accept jobs=1."""
    store = FingerprintStore.open(_SingleThreadedBackend(name="single"))
    plan = Plan.from_commands({"a": "1"})
    with pytest.raises(ConfigurationError, match="jobs=1"):
        make(plan, store, jobs=2)
    assert make(plan, store).built == ("a",)


@pytest.mark.e2e
def test_declaration_order_does_not_change_fingerprints(cache: FingerprintStore) -> None:
    """The same plan declared in two orders yields identical records."""
    commands = {
        "base": "[3, 1, 2]",
        "ordered": "sorted(base)",
        "size": "len(base)",
        "total": "double(sum(ordered)) + size",
    }
    environment = {"double": double}
    reordered = memory_cache(
        short_hash_algorithm=cache.short_hash_algorithm,
        long_hash_algorithm=cache.long_hash_algorithm,
    )
    forward = make(Plan.from_commands(commands), cache, environment=environment)
    backward = make(
        Plan.from_commands(dict(reversed(commands.items()))),
        reordered,
        environment=environment,
    )
    assert forward.ok
    assert backward.ok
    assert cache.cached_names(include_imports=True) == reordered.cached_names(
        include_imports=True
    )
    for name in (*commands, "double"):
        first = cache.get_record(name)
        second = reordered.get_record(name)
        assert first is not None
        assert second is not None
        assert first.output_hash == second.output_hash
        assert first.dependency_hash == second.dependency_hash
        assert first.command_hash == second.command_hash


@pytest.mark.e2e
def test_ready_sets_follow_custom_extractor(cache: FingerprintStore) -> None:
    """Projected frontiers describe the graph make builds with the same extractor."""
    plan = Plan.from_commands({"a": "1", "b": "2"})
    extractor = _ExplicitDependencies({"b": frozenset({"a"})})
    assert ready_sets(plan, cache) == (("a", "b"),)
    projected = ready_sets(plan, cache, extractor=extractor)
    assert projected == (("a",), ("b",))
    assert make(plan, cache, extractor=extractor).frontiers == projected


@pytest.mark.e2e
def test_make_clears_interrupted_progress(cache: FingerprintStore) -> None:
    """Running markers from an interrupted run do not outlive the next make."""
    plan = Plan.from_commands({"a": "1", "b": "a + 1"})
    cache.set_progress("b", "running")
    cache.set_progress("gone", "running")
    make(plan, cache, dry_run=True)
    assert progress(cache) == {"b": "running", "gone": "running"}

    make(plan, cache)
    assert progress(cache) == {"a": "built", "b": "built"}
    make(plan, cache)
    assert progress(cache) == {}
