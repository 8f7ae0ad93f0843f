"""
ci-driver control plane.

Purpose
- Probe the toolchain, apply dependency pins, and walk the ordered stages
  with fail-fast and terminal-stage semantics.
"""

from ci_driver.control_plane.controller import DriverReport, run_driver
from ci_driver.control_plane.feature_matrix import plan_feature_matrix, run_feature_matrix
from ci_driver.control_plane.pinning import PinReport, apply_pins, matching_rules, plan_pins
from ci_driver.control_plane.stages import (
    Stage,
    StageAction,
    StageOutcome,
    StagePredicate,
    StageResult,
    StageRunReport,
    build_default_stages,
    execute_stages,
)
from ci_driver.control_plane.toolchain import ToolchainProbe, detect_toolchain, first_output_line

__all__ = [
    "DriverReport",
    "PinReport",
    "Stage",
    "StageAction",
    "StageOutcome",
    "StagePredicate",
    "StageResult",
    "StageRunReport",
    "ToolchainProbe",
    "apply_pins",
    "build_default_stages",
    "detect_toolchain",
    "execute_stages",
    "first_output_line",
    "matching_rules",
    "plan_feature_matrix",
    "plan_pins",
    "run_driver",
    "run_feature_matrix",
]
