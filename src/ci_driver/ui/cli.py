"""Command-line interface router for ci-driver."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ci_driver.config import ConfigLoadError, ConfigValidationError, load_settings
from ci_driver.config.schema import LOG_LEVELS
from ci_driver.control_plane import DriverReport, detect_toolchain, run_driver
from ci_driver.domain.models import BuildManifest
from ci_driver.execution import CargoFrontend, LocalSubprocessExecutor, RecordingExecutor
from ci_driver.manifest import ManifestError, load_manifest
from ci_driver.observability import setup_logging, shutdown_logging
from ci_driver.ui.render import create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="ci-driver",
        description=(
            "ci-driver: stage-selection and fail-fast build/test driver.\n\n"
            "Stages are selected by DO_FMT, DO_FUZZ, DO_BITCOIND_TESTS,\n"
            "DO_FEATURE_MATRIX, DO_BENCH and DO_DOCS (only the value 'true' enables).\n\n"
            "Common workflows:\n"
            "  ci-driver run                 Run the selected stages\n"
            "  ci-driver plan --json         Show what a run would invoke\n"
            "  ci-driver manifest            Show declared features and examples\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to ci_driver.toml (default: ./ci_driver.toml if present).",
    )
    common.add_argument(
        "--manifest",
        dest="manifest_path",
        default=None,
        help="Path to a manifest YAML (default: the packaged manifest).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit deterministic JSON output.",
    )

    runtime = argparse.ArgumentParser(add_help=False)
    runtime.add_argument(
        "--project-root",
        default=None,
        help="Directory holding the cargo package (overrides paths.project_root).",
    )
    runtime.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        type=str.upper,
        help="Console and file log level (overrides observability.log_level).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, runtime],
        help="Probe the toolchain, apply pins, and run the selected stages",
        description=(
            "Run the driver and exit with the first failing command's status.\n\n"
            "Examples:\n"
            "  DO_FMT=true ci-driver run\n"
            "  DO_FEATURE_MATRIX=true ci-driver run --project-root ../rust-miniscript\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.set_defaults(handler=_cmd_run)

    # plan ----------------------------------------------------------------
    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common, runtime],
        help="List the invocations a run would make, without running them",
        description=(
            "Dry run: every command is recorded and assumed to succeed.\n\n"
            "Examples:\n"
            "  ci-driver plan --toolchain-version 'cargo 1.47.0 (f3c7e066a 2020-08-28)'\n"
            "  DO_FUZZ=true ci-driver plan --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    plan_parser.add_argument(
        "--toolchain-version",
        default=None,
        help="Toolchain version text to plan for (default: probe `cargo --version`).",
    )
    plan_parser.set_defaults(handler=_cmd_plan)

    # manifest ------------------------------------------------------------
    manifest_parser = subparsers.add_parser(
        "manifest",
        parents=[common],
        help="Show declared features, examples, and pin rules",
    )
    manifest_parser.set_defaults(handler=_cmd_manifest)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None, *, environ: Mapping[str, str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    namespace.environ = dict(os.environ if environ is None else environ)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    manifest = _load_manifest(args)
    frontend = _frontend_from_settings(settings)
    project_root = Path(frontend.project_root)
    if not project_root.is_dir():
        raise CLIError(f"project root is not a directory: {project_root}", exit_code=2)

    handle = setup_logging(settings["observability"], run_id=_new_run_id())
    try:
        report = asyncio.run(
            run_driver(
                executor=LocalSubprocessExecutor(),
                frontend=frontend,
                manifest=manifest,
                environ=args.environ,
            )
        )
    finally:
        shutdown_logging(handle)

    if args.json:
        _emit_json(report.to_dict())
    else:
        create_renderer().report(report)
    return report.exit_code


def _cmd_plan(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    manifest = _load_manifest(args)
    frontend = _frontend_from_settings(settings)

    handle = setup_logging(settings["observability"], run_id=_new_run_id())
    try:
        toolchain_version = args.toolchain_version
        if toolchain_version is None:
            probe = asyncio.run(detect_toolchain(LocalSubprocessExecutor(), frontend))
            if not probe.succeeded:
                raise CLIError(
                    f"toolchain probe failed: {' '.join(probe.failed_argv)}",
                    exit_code=probe.exit_code,
                )
            toolchain_version = probe.version

        recorder = RecordingExecutor()
        report = asyncio.run(
            run_driver(
                executor=recorder,
                frontend=frontend,
                manifest=manifest,
                environ=args.environ,
                toolchain_version=toolchain_version,
            )
        )
    finally:
        shutdown_logging(handle)

    if args.json:
        _emit_json(_plan_payload(report, recorder))
    else:
        create_renderer().plan(report.toolchain_version, recorder.calls)
    return 0


def _cmd_manifest(args: argparse.Namespace) -> int:
    manifest = _load_manifest(args)
    if args.json:
        _emit_json(manifest.to_dict())
    else:
        create_renderer().manifest(manifest)
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _plan_payload(report: DriverReport, recorder: RecordingExecutor) -> dict[str, object]:
    return {
        "toolchain_version": report.toolchain_version,
        "snapshot": report.snapshot.to_dict() if report.snapshot is not None else None,
        "commands": [spec.to_dict() for spec in recorder.calls],
        "stages": [result.stage_id for result in report.stage_results],
        "skipped_stages": list(report.skipped_stages),
        "terminal_stage_id": report.terminal_stage_id,
    }


def _load_settings(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "paths.project_root": getattr(args, "project_root", None),
        "observability.log_level": getattr(args, "log_level", None),
    }
    try:
        return load_settings(args.config_path, cli_overrides=overrides, environ=args.environ)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_manifest(args: argparse.Namespace) -> BuildManifest:
    try:
        return load_manifest(args.manifest_path)
    except ManifestError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _frontend_from_settings(settings: Mapping[str, Any]) -> CargoFrontend:
    toolchain = settings["toolchain"]
    return CargoFrontend(
        cargo=toolchain["cargo"],
        rustc=toolchain["rustc"],
        rustup=toolchain["rustup"],
        docs_toolchain=toolchain["docs_toolchain"],
        project_root=Path(settings["paths"]["project_root"]),
    )


def _new_run_id() -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


__all__ = ["CLIError", "build_parser", "run_cli"]
