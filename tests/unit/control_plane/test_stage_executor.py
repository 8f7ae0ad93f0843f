"""
ci-driver — unit tests for the stage executor

File: tests/unit/control_plane/test_stage_executor.py

Purpose
- Validate declared stage order, terminal-stage semantics, fail-fast exit
  propagation, and run-to-run determinism.

What this test file should cover
- Fuzz and integration stages end the run on success; fuzz wins when both
  flags are set.
- Default tests run for every combination of the additive flags.
- A failure injected at any position aborts before the next invocation and
  surfaces the injected status.
- Identical configuration and outcomes produce identical invocation logs.

Functional requirements
- No real tool execution; RecordingExecutor stands in for cargo.
"""

from __future__ import annotations

import asyncio
import itertools
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ci_driver.config import ConfigSnapshot
from ci_driver.constants import STAGE_IDS_IN_ORDER
from ci_driver.control_plane import (
    Stage,
    StageAction,
    StageOutcome,
    StageRunReport,
    build_default_stages,
    execute_stages,
)
from ci_driver.execution import CargoFrontend, RecordingExecutor
from ci_driver.manifest import load_manifest

PROJECT = Path("/work/rust-miniscript")

FMT_ARGV = (
    ("rustup", "component", "add", "rustfmt"),
    ("cargo", "fmt", "--", "--check"),
)
FUZZ_ARGV = (
    ("cargo", "test", "--verbose"),
    ("./travis-fuzz.sh",),
)
INTEGRATION_ARGV = (("cargo", "test", "--verbose"),)
DEFAULT_TEST_ARGV = ("cargo", "test")
BENCH_ARGV = ("cargo", "bench", "--features=unstable compiler")
DOCS_ARGV = (
    "cargo",
    "+nightly",
    "rustdoc",
    "--features=compiler serde rand base64",
    "--",
    "-D",
    "rustdoc::broken-intra-doc-links",
)


def _run(
    snapshot: ConfigSnapshot, executor: RecordingExecutor | None = None
) -> tuple[StageRunReport, RecordingExecutor]:
    recorder = executor if executor is not None else RecordingExecutor()
    stages = build_default_stages(recorder, CargoFrontend(project_root=PROJECT), load_manifest())
    report = asyncio.run(execute_stages(stages, snapshot))
    return report, recorder


@pytest.mark.unit
def test_stage_order_is_declared_order() -> None:
    stages = build_default_stages(RecordingExecutor(), CargoFrontend(), load_manifest())

    assert tuple(stage.stage_id for stage in stages) == STAGE_IDS_IN_ORDER
    assert [stage.stage_id for stage in stages if stage.terminal] == ["fuzz", "integration"]


@pytest.mark.unit
def test_no_flags_runs_only_default_tests() -> None:
    report, executor = _run(ConfigSnapshot())

    assert executor.argv_log == [DEFAULT_TEST_ARGV]
    assert report.exit_code == 0
    assert report.executed == ("default_tests",)
    assert report.skipped == ("format", "fuzz", "integration", "feature_matrix", "bench", "docs")
    assert report.terminal_stage_id is None


@pytest.mark.unit
def test_fuzz_is_terminal_and_runs_in_fuzz_subproject() -> None:
    report, executor = _run(ConfigSnapshot(fuzz=True, feature_matrix=True, docs=True))

    assert tuple(executor.argv_log) == FUZZ_ARGV
    assert {spec.cwd for spec in executor.calls} == {str(PROJECT / "fuzz")}
    assert report.exit_code == 0
    assert report.terminal_stage_id == "fuzz"
    assert report.results[-1].outcome is StageOutcome.STOP_SUCCESS


@pytest.mark.unit
def test_integration_is_terminal_and_runs_in_its_subproject() -> None:
    report, executor = _run(ConfigSnapshot(integration_tests=True, bench=True))

    assert tuple(executor.argv_log) == INTEGRATION_ARGV
    assert executor.calls[0].cwd == str(PROJECT / "bitcoind-tests")
    assert report.terminal_stage_id == "integration"
    assert report.exit_code == 0


@pytest.mark.unit
def test_fuzz_wins_when_both_terminal_flags_are_set() -> None:
    report, executor = _run(ConfigSnapshot(fuzz=True, integration_tests=True))

    assert tuple(executor.argv_log) == FUZZ_ARGV
    assert report.executed == ("fuzz",)
    assert "integration" not in report.executed


@pytest.mark.unit
def test_format_runs_before_terminal_stage() -> None:
    report, executor = _run(ConfigSnapshot(format_check=True, integration_tests=True))

    assert tuple(executor.argv_log) == FMT_ARGV + INTEGRATION_ARGV
    assert report.executed == ("format", "integration")


@pytest.mark.unit
def test_failing_fuzz_stage_stops_with_its_status() -> None:
    executor = RecordingExecutor(exit_codes={("./travis-fuzz.sh",): 77})

    report, _ = _run(ConfigSnapshot(fuzz=True), executor)

    assert report.exit_code == 77
    assert report.results[-1].outcome is StageOutcome.STOP_FAILURE
    assert report.terminal_stage_id is None


@pytest.mark.unit
@pytest.mark.parametrize(
    ("format_check", "feature_matrix", "bench", "docs"),
    list(itertools.product((False, True), repeat=4)),
)
def test_default_tests_run_for_every_additive_flag_combination(
    format_check: bool, feature_matrix: bool, bench: bool, docs: bool
) -> None:
    snapshot = ConfigSnapshot(
        format_check=format_check, feature_matrix=feature_matrix, bench=bench, docs=docs
    )

    report, executor = _run(snapshot)

    assert report.exit_code == 0
    assert DEFAULT_TEST_ARGV in executor.argv_log
    assert (BENCH_ARGV in executor.argv_log) is bench
    assert (DOCS_ARGV in executor.argv_log) is docs
    assert (FMT_ARGV[1] in executor.argv_log) is format_check
    assert (("cargo", "build", "--examples") in executor.argv_log) is feature_matrix
    expected_stages = [
        stage_id
        for stage_id, enabled in (
            ("format", format_check),
            ("default_tests", True),
            ("feature_matrix", feature_matrix),
            ("bench", bench),
            ("docs", docs),
        )
        if enabled
    ]
    assert list(report.executed) == expected_stages


@pytest.mark.unit
def test_docs_stage_sets_rustdocflags() -> None:
    _, executor = _run(ConfigSnapshot(docs=True))

    docs_spec = executor.calls[-1]
    assert docs_spec.argv == DOCS_ARGV
    assert docs_spec.env == {"RUSTDOCFLAGS": "--cfg docsrs"}


_ALL_ADDITIVE = ConfigSnapshot(format_check=True, feature_matrix=True, bench=True, docs=True)


@pytest.mark.unit
@settings(max_examples=60, deadline=None)
@given(data=st.data(), status=st.integers(min_value=1, max_value=255))
def test_failure_at_position_k_aborts_before_k_plus_one(data: st.DataObject, status: int) -> None:
    _, baseline = _run(_ALL_ADDITIVE)
    full_log = baseline.argv_log
    assert len(set(full_log)) == len(full_log)

    k = data.draw(st.integers(min_value=0, max_value=len(full_log) - 1), label="k")
    report, executor = _run(_ALL_ADDITIVE, RecordingExecutor(exit_codes={full_log[k]: status}))

    assert executor.argv_log == full_log[: k + 1]
    assert report.exit_code == status
    assert report.results[-1].outcome is StageOutcome.STOP_FAILURE


@pytest.mark.unit
@settings(max_examples=40, deadline=None)
@given(flags=st.tuples(*(st.booleans() for _ in range(6))))
def test_identical_configuration_produces_identical_invocation_logs(
    flags: tuple[bool, bool, bool, bool, bool, bool],
) -> None:
    snapshot = ConfigSnapshot(*flags, toolchain_version="cargo 1.47.0")

    first_report, first = _run(snapshot)
    second_report, second = _run(snapshot)

    assert first.calls == second.calls
    assert first_report == second_report


@pytest.mark.unit
@settings(max_examples=40, deadline=None)
@given(flags=st.tuples(*(st.booleans() for _ in range(6))))
def test_at_most_one_terminal_stage_executes(
    flags: tuple[bool, bool, bool, bool, bool, bool],
) -> None:
    report, _ = _run(ConfigSnapshot(*flags))

    terminal_ran = [stage_id for stage_id in report.executed if stage_id in {"fuzz", "integration"}]
    assert len(terminal_ran) <= 1


@pytest.mark.unit
def test_execute_stages_accepts_custom_stages() -> None:
    calls: list[str] = []

    def _action(stage_id: str, status: int) -> StageAction:
        async def action() -> int:
            calls.append(stage_id)
            return status

        return action

    stages = (
        Stage("first", lambda snapshot: True, _action("first", 0)),
        Stage("gated", lambda snapshot: snapshot.bench, _action("gated", 0)),
        Stage("stop", lambda snapshot: True, _action("stop", 0), terminal=True),
        Stage("never", lambda snapshot: True, _action("never", 0)),
    )

    report = asyncio.run(execute_stages(stages, ConfigSnapshot()))

    assert calls == ["first", "stop"]
    assert report.skipped == ("gated",)
    assert report.terminal_stage_id == "stop"
    assert report.to_dict() == {
        "exit_code": 0,
        "results": [
            {"stage_id": "first", "outcome": "continue", "exit_code": 0},
            {"stage_id": "stop", "outcome": "stop_success", "exit_code": 0},
        ],
        "skipped": ["gated"],
        "terminal_stage_id": "stop",
    }
