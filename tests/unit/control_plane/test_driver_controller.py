"""
ci-driver — unit tests for the driver controller

File: tests/unit/control_plane/test_driver_controller.py

Purpose
- Validate the full pass: toolchain probe, configuration resolution, pins
  before any stage, the stage walk, and the resulting DriverReport.
"""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from ci_driver.control_plane import DriverReport, detect_toolchain, first_output_line, run_driver
from ci_driver.execution import CargoFrontend, OutputMode, RecordingExecutor
from ci_driver.manifest import load_manifest

CARGO_VERSION = ("cargo", "--version")
RUSTC_VERSION = ("rustc", "--version")
PIN_ONCE_CELL = ("cargo", "update", "-p", "once_cell", "--precise", "1.13.1")


def _executor(version_text: str, **kwargs: object) -> RecordingExecutor:
    return RecordingExecutor(
        stdout={CARGO_VERSION: version_text}, **kwargs  # type: ignore[arg-type]
    )


async def _drive(
    executor: RecordingExecutor,
    environ: dict[str, str],
    *,
    toolchain_version: str | None = None,
) -> DriverReport:
    return await run_driver(
        executor=executor,
        frontend=CargoFrontend(),
        manifest=load_manifest(),
        environ=environ,
        toolchain_version=toolchain_version,
    )


@pytest.mark.unit
def test_first_output_line_skips_blank_lines() -> None:
    text = "\n\n  cargo 1.47.0 (f3c7e066a)  \nextra\n"
    assert first_output_line(text) == "cargo 1.47.0 (f3c7e066a)"
    assert first_output_line("") == ""


@pytest.mark.asyncio
async def test_detect_toolchain_runs_cargo_then_rustc() -> None:
    executor = _executor("cargo 1.41.0 (626f0f40e 2019-12-03)\n")

    probe = await detect_toolchain(executor, CargoFrontend())

    assert probe.succeeded
    assert probe.version == "cargo 1.41.0 (626f0f40e 2019-12-03)"
    assert executor.argv_log == [CARGO_VERSION, RUSTC_VERSION]


@pytest.mark.asyncio
async def test_detect_toolchain_logs_rustc_version_instead_of_printing_it() -> None:
    executor = RecordingExecutor(
        stdout={
            CARGO_VERSION: "cargo 1.47.0 (f3c7e066a 2020-08-28)\n",
            RUSTC_VERSION: "rustc 1.47.0 (18bf6b4f0 2020-10-07)\n",
        }
    )

    with capture_logs() as captured:
        await detect_toolchain(executor, CargoFrontend())

    assert [spec.output for spec in executor.calls] == [OutputMode.CAPTURE, OutputMode.CAPTURE]
    (detected,) = [entry for entry in captured if entry["event"] == "toolchain_detected"]
    assert detected["toolchain_version"] == "cargo 1.47.0 (f3c7e066a 2020-08-28)"
    assert detected["rustc"] == "rustc 1.47.0 (18bf6b4f0 2020-10-07)"


@pytest.mark.asyncio
async def test_pinned_toolchain_pins_before_default_tests() -> None:
    executor = _executor("cargo 1.47.0 (f3c7e066a 2020-08-28)\n")

    report = await _drive(executor, {})

    assert executor.argv_log == [CARGO_VERSION, RUSTC_VERSION, PIN_ONCE_CELL, ("cargo", "test")]
    assert report.exit_code == 0
    assert report.toolchain_version == "cargo 1.47.0 (f3c7e066a 2020-08-28)"
    assert [rule.version_pattern for rule in report.applied_pins] == ["1.47.0"]
    assert report.failed_phase is None


@pytest.mark.asyncio
async def test_pins_apply_even_when_a_terminal_stage_is_selected() -> None:
    executor = _executor("cargo 1.41.0 (626f0f40e 2019-12-03)\n")

    report = await _drive(executor, {"DO_BITCOIND_TESTS": "true"})

    assert executor.argv_log == [
        CARGO_VERSION,
        RUSTC_VERSION,
        PIN_ONCE_CELL,
        ("cargo", "test", "--verbose"),
    ]
    assert report.terminal_stage_id == "integration"
    assert report.exit_code == 0


@pytest.mark.asyncio
async def test_unpinned_toolchain_runs_no_update() -> None:
    executor = _executor("cargo 1.75.0 (1d8b05cdd 2023-11-20)\n")

    report = await _drive(executor, {"DO_FMT": "true"})

    assert PIN_ONCE_CELL not in executor.argv_log
    assert report.applied_pins == ()
    assert [result.stage_id for result in report.stage_results] == ["format", "default_tests"]


@pytest.mark.asyncio
async def test_probe_failure_aborts_before_any_stage() -> None:
    executor = RecordingExecutor(exit_codes={CARGO_VERSION: 127})

    report = await _drive(executor, {"DO_FMT": "true"})

    assert executor.argv_log == [CARGO_VERSION]
    assert report.exit_code == 127
    assert report.failed_phase == "toolchain"
    assert report.snapshot is None


@pytest.mark.asyncio
async def test_rustc_probe_failure_aborts_with_its_status() -> None:
    executor = _executor("cargo 1.47.0\n", exit_codes={RUSTC_VERSION: 1})

    report = await _drive(executor, {})

    assert executor.argv_log == [CARGO_VERSION, RUSTC_VERSION]
    assert report.exit_code == 1
    assert report.failed_phase == "toolchain"


@pytest.mark.asyncio
async def test_pin_failure_is_fatal_before_any_stage() -> None:
    executor = _executor("cargo 1.41.0\n", exit_codes={PIN_ONCE_CELL: 101})

    report = await _drive(executor, {"DO_FMT": "true"})

    assert executor.argv_log[-1] == PIN_ONCE_CELL
    assert report.exit_code == 101
    assert report.failed_phase == "pin_dependencies"
    assert report.stage_results == ()


@pytest.mark.asyncio
async def test_given_toolchain_version_skips_probe() -> None:
    executor = RecordingExecutor()

    report = await _drive(executor, {"DO_FUZZ": "true"}, toolchain_version="cargo 1.47.0")

    assert CARGO_VERSION not in executor.argv_log
    assert executor.argv_log[0] == PIN_ONCE_CELL
    assert report.terminal_stage_id == "fuzz"


@pytest.mark.asyncio
async def test_stage_failure_status_is_the_run_status() -> None:
    executor = RecordingExecutor(exit_codes={("cargo", "bench", "--features=unstable compiler"): 3})

    report = await _drive(
        executor,
        {"DO_BENCH": "true", "DO_DOCS": "true"},
        toolchain_version="cargo 1.75.0",
    )

    assert report.exit_code == 3
    assert report.failed_phase == "bench"
    assert executor.argv_log[-1] == ("cargo", "bench", "--features=unstable compiler")


@pytest.mark.asyncio
async def test_report_to_dict_is_json_ready() -> None:
    report = await _drive(RecordingExecutor(), {"DO_DOCS": "yes"}, toolchain_version="cargo 1.47.0")

    payload = report.to_dict()

    assert payload["exit_code"] == 0
    assert payload["snapshot"] == {
        "format_check": False,
        "fuzz": False,
        "integration_tests": False,
        "feature_matrix": False,
        "bench": False,
        "docs": False,
        "toolchain_version": "cargo 1.47.0",
    }
    assert payload["applied_pins"] == [
        {"version_pattern": "1.47.0", "dependency": "once_cell", "exact_version": "1.13.1"}
    ]
    assert payload["stage_results"] == [
        {"stage_id": "default_tests", "outcome": "continue", "exit_code": 0}
    ]
    assert payload["terminal_stage_id"] is None
