"""
Dependency pinning for toolchain-specific incompatibilities.

Every declared rule whose ``version_pattern`` occurs in the detected toolchain
version is applied, in declared order, before any stage runs. Rules are not
assumed to be exclusive. A failing pin command stops the run with that
command's status.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from ci_driver.domain.models import JSONValue, PinRule
from ci_driver.execution.cargo import CargoFrontend
from ci_driver.execution.commands import CommandExecutor, CommandSpec, run_command


@dataclass(frozen=True, slots=True)
class PinReport:
    """Rules whose pin command succeeded, plus the overall status."""

    applied: tuple[PinRule, ...] = ()
    exit_code: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "applied": [rule.to_dict() for rule in self.applied],
            "exit_code": self.exit_code,
        }


def matching_rules(toolchain_version: str, rules: Sequence[PinRule]) -> tuple[PinRule, ...]:
    """Return the rules that apply to ``toolchain_version``, in declared order."""

    return tuple(rule for rule in rules if rule.matches(toolchain_version))


def plan_pins(
    toolchain_version: str,
    rules: Sequence[PinRule],
    frontend: CargoFrontend,
) -> tuple[CommandSpec, ...]:
    return tuple(
        frontend.pin_dependency(rule.dependency, rule.exact_version)
        for rule in matching_rules(toolchain_version, rules)
    )


async def apply_pins(
    executor: CommandExecutor,
    frontend: CargoFrontend,
    rules: Sequence[PinRule],
    toolchain_version: str,
    *,
    logger: Any | None = None,
) -> PinReport:
    log = logger if logger is not None else structlog.get_logger(__name__)

    applied: list[PinRule] = []
    planned = zip(
        matching_rules(toolchain_version, rules),
        plan_pins(toolchain_version, rules, frontend),
        strict=True,
    )
    for rule, spec in planned:
        result = await run_command(executor, spec, logger=log)
        if not result.succeeded:
            return PinReport(applied=tuple(applied), exit_code=result.exit_code)
        log.info(
            "dependency_pinned",
            dependency=rule.dependency,
            exact_version=rule.exact_version,
            version_pattern=rule.version_pattern,
        )
        applied.append(rule)
    return PinReport(applied=tuple(applied))


__all__ = ["PinReport", "apply_pins", "matching_rules", "plan_pins"]
