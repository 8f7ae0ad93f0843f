"""
ci-driver execution package.

Purpose
- The opaque collaborator boundary: every build, test, format, fuzz, and docs
  step is an external command run through a ``CommandExecutor``.
"""

from ci_driver.execution.cargo import CargoFrontend, features_argument
from ci_driver.execution.commands import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    OutputMode,
    RecordingExecutor,
    normalize_exit_status,
    run_command,
    run_sequence,
)

__all__ = [
    "CargoFrontend",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "OutputMode",
    "RecordingExecutor",
    "features_argument",
    "normalize_exit_status",
    "run_command",
    "run_sequence",
]
