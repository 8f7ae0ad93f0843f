"""Toolchain probe: learn the active cargo version before anything else runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from ci_driver.domain.models import JSONValue
from ci_driver.execution.cargo import CargoFrontend
from ci_driver.execution.commands import CommandExecutor, run_command


@dataclass(frozen=True, slots=True)
class ToolchainProbe:
    """Result of ``cargo --version`` / ``rustc --version``."""

    version: str
    exit_code: int = 0
    failed_argv: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "version": self.version,
            "exit_code": self.exit_code,
            "failed_argv": list(self.failed_argv),
        }


def first_output_line(text: str) -> str:
    """Return the first non-empty line of ``text``, stripped."""

    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


async def detect_toolchain(
    executor: CommandExecutor,
    frontend: CargoFrontend,
    *,
    logger: Any | None = None,
) -> ToolchainProbe:
    log = logger if logger is not None else structlog.get_logger(__name__)

    cargo_result = await run_command(executor, frontend.version(), logger=log)
    if not cargo_result.succeeded:
        return ToolchainProbe(
            version="", exit_code=cargo_result.exit_code, failed_argv=cargo_result.argv
        )
    version = first_output_line(cargo_result.stdout)

    rustc_result = await run_command(executor, frontend.rustc_version(), logger=log)
    if not rustc_result.succeeded:
        return ToolchainProbe(
            version=version, exit_code=rustc_result.exit_code, failed_argv=rustc_result.argv
        )

    log.info(
        "toolchain_detected",
        toolchain_version=version,
        rustc=first_output_line(rustc_result.stdout),
    )
    return ToolchainProbe(version=version)


__all__ = ["ToolchainProbe", "detect_toolchain", "first_output_line"]
