"""
ci-driver — external command execution contract.

File: src/ci_driver/execution/commands.py

Purpose
- Define the single collaborator operation every stage relies on: run an
  external command to completion and observe its exit status.

What should be included in this file
- ``CommandSpec`` / ``CommandResult`` value types.
- The pluggable ``CommandExecutor`` protocol.
- ``LocalSubprocessExecutor`` for real runs and ``RecordingExecutor`` for
  dry runs and tests.

Functional requirements
- Commands run strictly one at a time; the caller awaits each to completion.
- Child output is inherited by default so tool output reaches the console.
- No timeouts and no cancellation: a hung child hangs the run.
- Exit statuses follow shell conventions when the child produced none
  (127 not found, 126 not executable, 128+N killed by signal N).
"""

from __future__ import annotations

import asyncio
import os
import shlex
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import structlog

from ci_driver.constants import (
    EXIT_COMMAND_NOT_EXECUTABLE,
    EXIT_COMMAND_NOT_FOUND,
    EXIT_SIGNAL_BASE,
)
from ci_driver.domain.models import JSONValue
from ci_driver.observability import flush_logging


class OutputMode(StrEnum):
    """What happens to a child's stdout."""

    INHERIT = "inherit"
    CAPTURE = "capture"
    DISCARD = "discard"


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Portable command invocation contract used by every stage."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    output: OutputMode = OutputMode.INHERIT

    def __post_init__(self) -> None:
        argv = tuple(self.argv)
        if not argv:
            raise ValueError("CommandSpec.argv must not be empty")
        for index, item in enumerate(argv):
            if not isinstance(item, str) or not item:
                raise ValueError(f"CommandSpec.argv[{index}] must be a non-empty string")
        object.__setattr__(self, "argv", argv)

        if self.cwd is not None and (not isinstance(self.cwd, str) or not self.cwd.strip()):
            raise ValueError("CommandSpec.cwd must be a non-empty string when provided")

        env: dict[str, str] = {}
        for key in sorted(self.env):
            value = self.env[key]
            if not isinstance(key, str) or not key or not isinstance(value, str):
                raise ValueError("CommandSpec.env must map non-empty strings to strings")
            env[key] = value
        object.__setattr__(self, "env", env)
        object.__setattr__(self, "output", OutputMode(self.output))

    def build_env(self) -> dict[str, str] | None:
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        return merged

    def render(self) -> str:
        """Shell-like rendering for trace logs: ``ENV=v argv... [> /dev/null]``."""

        parts = [f"{key}={shlex.quote(value)}" for key, value in self.env.items()]
        parts.extend(shlex.quote(item) for item in self.argv)
        if self.output is OutputMode.DISCARD:
            parts.append("> /dev/null")
        return " ".join(parts)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "cwd": self.cwd,
            "env": dict(self.env),
            "output": self.output.value,
        }


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one external command."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    duration_ms: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Run commands as local subprocesses, one at a time."""

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        stdout_target: int | None
        if spec.output is OutputMode.CAPTURE:
            stdout_target = asyncio.subprocess.PIPE
        elif spec.output is OutputMode.DISCARD:
            stdout_target = asyncio.subprocess.DEVNULL
        else:
            stdout_target = None

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout_target,
            )
        except FileNotFoundError as exc:
            return _spawn_failure(spec, EXIT_COMMAND_NOT_FOUND, exc, started_ns)
        except OSError as exc:
            return _spawn_failure(spec, EXIT_COMMAND_NOT_EXECUTABLE, exc, started_ns)

        stdout_bytes, _ = await process.communicate()
        return CommandResult(
            argv=spec.argv,
            exit_code=normalize_exit_status(process.returncode),
            stdout=_normalize_output_text(stdout_bytes),
            duration_ms=_elapsed_ms(started_ns),
        )


class RecordingExecutor(CommandExecutor):
    """Record every spec and answer from a script instead of spawning.

    ``exit_codes`` and ``stdout`` are keyed by argv. Unlisted commands
    succeed with empty output. Used for ``plan`` dry runs and in tests.
    """

    def __init__(
        self,
        *,
        exit_codes: Mapping[tuple[str, ...], int] | None = None,
        stdout: Mapping[tuple[str, ...], str] | None = None,
    ) -> None:
        self.exit_codes = dict(exit_codes or {})
        self.stdout = dict(stdout or {})
        self.calls: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.calls.append(spec)
        return CommandResult(
            argv=spec.argv,
            exit_code=self.exit_codes.get(spec.argv, 0),
            stdout=self.stdout.get(spec.argv, ""),
        )

    @property
    def argv_log(self) -> list[tuple[str, ...]]:
        return [spec.argv for spec in self.calls]


async def run_command(
    executor: CommandExecutor,
    spec: CommandSpec,
    *,
    logger: Any | None = None,
) -> CommandResult:
    """Trace ``spec`` as ``+ <command>``, run it, and log a failure once at ERROR."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    log.info(f"+ {spec.render()}", cwd=spec.cwd)
    # The trace must reach the console before the child writes to it.
    flush_logging()
    result = await executor.run(spec)
    if not result.succeeded:
        log.error(
            "command_failed",
            argv=list(result.argv),
            exit_code=result.exit_code,
            error=result.error,
        )
    return result


async def run_sequence(
    executor: CommandExecutor,
    specs: Iterable[CommandSpec],
    *,
    logger: Any | None = None,
) -> int:
    """Run ``specs`` in order; the first non-zero status aborts and is returned."""

    for spec in specs:
        result = await run_command(executor, spec, logger=logger)
        if not result.succeeded:
            return result.exit_code
    return 0


def normalize_exit_status(returncode: int | None) -> int:
    """Map an asyncio return code to a shell-style exit status."""

    if returncode is None:
        return EXIT_SIGNAL_BASE
    if returncode < 0:
        return EXIT_SIGNAL_BASE + (-returncode)
    return returncode


def _spawn_failure(
    spec: CommandSpec, exit_code: int, exc: OSError, started_ns: int
) -> CommandResult:
    return CommandResult(
        argv=spec.argv,
        exit_code=exit_code,
        duration_ms=_elapsed_ms(started_ns),
        error=f"{spec.argv[0]}: {exc.strerror or exc}",
    )


def _elapsed_ms(started_ns: int) -> int:
    elapsed_ns = time.monotonic_ns() - started_ns
    if elapsed_ns <= 0:
        return 0
    return elapsed_ns // 1_000_000


def _normalize_output_text(raw: bytes | None) -> str:
    if not raw:
        return ""
    return raw.decode("utf-8", errors="replace").replace("\r\n", "\n")


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "OutputMode",
    "RecordingExecutor",
    "normalize_exit_status",
    "run_command",
    "run_sequence",
]
