"""
ci-driver — stage executor.

File: src/ci_driver/control_plane/stages.py

Purpose
- Declare the ordered stage list and walk it against a ``ConfigSnapshot``.

Functional requirements
- Stages are evaluated strictly in declared order: format, fuzz, integration,
  default tests, feature matrix, bench, docs.
- A stage whose predicate is false is skipped; it never runs a command.
- Within a stage, the first non-zero command status aborts the stage and the
  whole run with that same status.
- A terminal stage that succeeds ends the run with status 0; later stages
  never run. At most one terminal stage executes per run.
- Each stage runs inside ``correlation_scope(stage_id=...)``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from ci_driver.config.schema import ConfigSnapshot
from ci_driver.constants import (
    BENCH_STAGE_ID,
    DEFAULT_TEST_STAGE_ID,
    DOCS_STAGE_ID,
    FEATURE_MATRIX_STAGE_ID,
    FORMAT_STAGE_ID,
    FUZZ_DIR,
    FUZZ_DRIVER_SCRIPT,
    FUZZ_STAGE_ID,
    INTEGRATION_DIR,
    INTEGRATION_STAGE_ID,
)
from ci_driver.control_plane.feature_matrix import run_feature_matrix
from ci_driver.domain.models import BuildManifest, JSONValue
from ci_driver.execution.cargo import CargoFrontend
from ci_driver.execution.commands import CommandExecutor, CommandSpec, run_sequence
from ci_driver.observability import correlation_scope

StagePredicate = Callable[[ConfigSnapshot], bool]
StageAction = Callable[[], Awaitable[int]]


class StageOutcome(StrEnum):
    """What the executor does after a stage finishes."""

    CONTINUE = "continue"
    STOP_SUCCESS = "stop_success"
    STOP_FAILURE = "stop_failure"


@dataclass(frozen=True, slots=True)
class StageResult:
    stage_id: str
    outcome: StageOutcome
    exit_code: int

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "stage_id": self.stage_id,
            "outcome": self.outcome.value,
            "exit_code": self.exit_code,
        }


@dataclass(frozen=True, slots=True)
class Stage:
    """A unit of orchestrated work gated by a snapshot predicate."""

    stage_id: str
    predicate: StagePredicate
    action: StageAction
    terminal: bool = False

    def outcome_for(self, exit_code: int) -> StageOutcome:
        if exit_code != 0:
            return StageOutcome.STOP_FAILURE
        if self.terminal:
            return StageOutcome.STOP_SUCCESS
        return StageOutcome.CONTINUE


@dataclass(frozen=True, slots=True)
class StageRunReport:
    """Executed stage results in order, plus the ids of skipped stages."""

    results: tuple[StageResult, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def exit_code(self) -> int:
        if not self.results:
            return 0
        last = self.results[-1]
        return last.exit_code if last.outcome is StageOutcome.STOP_FAILURE else 0

    @property
    def terminal_stage_id(self) -> str | None:
        if self.results and self.results[-1].outcome is StageOutcome.STOP_SUCCESS:
            return self.results[-1].stage_id
        return None

    @property
    def executed(self) -> tuple[str, ...]:
        return tuple(result.stage_id for result in self.results)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "exit_code": self.exit_code,
            "results": [result.to_dict() for result in self.results],
            "skipped": list(self.skipped),
            "terminal_stage_id": self.terminal_stage_id,
        }


def build_default_stages(
    executor: CommandExecutor,
    frontend: CargoFrontend,
    manifest: BuildManifest,
    *,
    logger: Any | None = None,
) -> tuple[Stage, ...]:
    """Return the driver's stages in evaluation order."""

    log = logger if logger is not None else structlog.get_logger(__name__)

    def sequence(*specs: CommandSpec) -> StageAction:
        async def action() -> int:
            return await run_sequence(executor, specs, logger=log)

        return action

    async def feature_matrix() -> int:
        return await run_feature_matrix(executor, frontend, manifest, logger=log)

    return (
        Stage(
            FORMAT_STAGE_ID,
            lambda snapshot: snapshot.format_check,
            sequence(frontend.install_component(), frontend.format_check()),
        ),
        Stage(
            FUZZ_STAGE_ID,
            lambda snapshot: snapshot.fuzz,
            sequence(
                frontend.test(verbose=True, subdir=FUZZ_DIR),
                frontend.script(FUZZ_DRIVER_SCRIPT, subdir=FUZZ_DIR),
            ),
            terminal=True,
        ),
        Stage(
            INTEGRATION_STAGE_ID,
            lambda snapshot: snapshot.integration_tests,
            sequence(frontend.test(verbose=True, subdir=INTEGRATION_DIR)),
            terminal=True,
        ),
        Stage(DEFAULT_TEST_STAGE_ID, lambda snapshot: True, sequence(frontend.test())),
        Stage(FEATURE_MATRIX_STAGE_ID, lambda snapshot: snapshot.feature_matrix, feature_matrix),
        Stage(
            BENCH_STAGE_ID,
            lambda snapshot: snapshot.bench,
            sequence(frontend.bench(manifest.bench_features)),
        ),
        Stage(
            DOCS_STAGE_ID,
            lambda snapshot: snapshot.docs,
            sequence(frontend.rustdoc(manifest.features)),
        ),
    )


async def execute_stages(
    stages: Sequence[Stage],
    snapshot: ConfigSnapshot,
    *,
    logger: Any | None = None,
) -> StageRunReport:
    """Walk ``stages`` in order and stop at the first failure or terminal success."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    results: list[StageResult] = []
    skipped: list[str] = []

    for index, stage in enumerate(stages):
        if not stage.predicate(snapshot):
            log.debug("stage_skipped", stage=stage.stage_id)
            skipped.append(stage.stage_id)
            continue

        with correlation_scope(stage_id=stage.stage_id):
            log.info("stage_started", terminal=stage.terminal)
            exit_code = await stage.action()
            outcome = stage.outcome_for(exit_code)
            log.info("stage_finished", outcome=outcome.value, exit_code=exit_code)

        results.append(StageResult(stage_id=stage.stage_id, outcome=outcome, exit_code=exit_code))
        if outcome is not StageOutcome.CONTINUE:
            remaining = [later.stage_id for later in stages[index + 1 :]]
            if remaining:
                log.debug("stages_not_reached", stages=remaining)
            break

    return StageRunReport(results=tuple(results), skipped=tuple(skipped))


__all__ = [
    "Stage",
    "StageAction",
    "StageOutcome",
    "StagePredicate",
    "StageResult",
    "StageRunReport",
    "build_default_stages",
    "execute_stages",
]
