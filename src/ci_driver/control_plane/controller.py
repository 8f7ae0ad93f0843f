"""Driver: toolchain probe, then pins, then the stage walk, reported as one result."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from ci_driver.config.loader import resolve_snapshot
from ci_driver.config.schema import ConfigSnapshot
from ci_driver.constants import PIN_STAGE_ID, TOOLCHAIN_STAGE_ID
from ci_driver.control_plane.pinning import apply_pins
from ci_driver.control_plane.stages import (
    StageResult,
    build_default_stages,
    execute_stages,
)
from ci_driver.control_plane.toolchain import detect_toolchain
from ci_driver.domain.models import BuildManifest, JSONValue, PinRule
from ci_driver.execution.cargo import CargoFrontend
from ci_driver.execution.commands import CommandExecutor
from ci_driver.observability import correlation_scope


@dataclass(frozen=True, slots=True)
class DriverReport:
    """Everything a caller needs to turn one run into an exit status."""

    exit_code: int
    toolchain_version: str
    snapshot: ConfigSnapshot | None = None
    applied_pins: tuple[PinRule, ...] = ()
    stage_results: tuple[StageResult, ...] = ()
    skipped_stages: tuple[str, ...] = ()
    terminal_stage_id: str | None = None
    failed_phase: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "exit_code": self.exit_code,
            "toolchain_version": self.toolchain_version,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "applied_pins": [rule.to_dict() for rule in self.applied_pins],
            "stage_results": [result.to_dict() for result in self.stage_results],
            "skipped_stages": list(self.skipped_stages),
            "terminal_stage_id": self.terminal_stage_id,
            "failed_phase": self.failed_phase,
        }


async def run_driver(
    *,
    executor: CommandExecutor,
    frontend: CargoFrontend,
    manifest: BuildManifest,
    environ: Mapping[str, str],
    toolchain_version: str | None = None,
    logger: Any | None = None,
) -> DriverReport:
    """Run one full driver pass.

    ``environ`` is the only source of stage flags; callers pass the process
    environment explicitly. When ``toolchain_version`` is given the live
    ``cargo --version`` / ``rustc --version`` probe is skipped.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)

    if toolchain_version is None:
        with correlation_scope(stage_id=TOOLCHAIN_STAGE_ID):
            probe = await detect_toolchain(executor, frontend, logger=log)
        if not probe.succeeded:
            return DriverReport(
                exit_code=probe.exit_code,
                toolchain_version=probe.version,
                failed_phase=TOOLCHAIN_STAGE_ID,
            )
        toolchain_version = probe.version

    snapshot = resolve_snapshot(environ, toolchain_version)
    log.info("configuration_resolved", **snapshot.to_dict())

    with correlation_scope(stage_id=PIN_STAGE_ID):
        pins = await apply_pins(
            executor, frontend, manifest.pin_rules, toolchain_version, logger=log
        )
    if not pins.succeeded:
        return DriverReport(
            exit_code=pins.exit_code,
            toolchain_version=toolchain_version,
            snapshot=snapshot,
            applied_pins=pins.applied,
            failed_phase=PIN_STAGE_ID,
        )

    stages = build_default_stages(executor, frontend, manifest, logger=log)
    stage_report = await execute_stages(stages, snapshot, logger=log)

    failed_phase: str | None = None
    if stage_report.exit_code != 0:
        failed_phase = stage_report.results[-1].stage_id

    report = DriverReport(
        exit_code=stage_report.exit_code,
        toolchain_version=toolchain_version,
        snapshot=snapshot,
        applied_pins=pins.applied,
        stage_results=stage_report.results,
        skipped_stages=stage_report.skipped,
        terminal_stage_id=stage_report.terminal_stage_id,
        failed_phase=failed_phase,
    )
    log.info(
        "driver_finished",
        exit_code=report.exit_code,
        executed=list(stage_report.executed),
        terminal_stage_id=report.terminal_stage_id,
    )
    return report


__all__ = ["DriverReport", "run_driver"]
