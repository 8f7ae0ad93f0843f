"""Plain-text rendering for ``ci-driver`` command output.

File: src/ci_driver/ui/render.py

Purpose
- Render the manifest, a dry-run plan, and a run report as stable,
  human-readable text on stdout.

Functional requirements
- Output is deterministic for identical inputs.
- No dependencies beyond the standard library.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ci_driver.control_plane import DriverReport
    from ci_driver.domain.models import BuildManifest
    from ci_driver.execution import CommandSpec


class CLIRenderer:
    """Thin line-oriented renderer writing to one stream."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def text(self, line: str) -> None:
        print(line, file=self._stream)

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def section(self, title: str) -> None:
        self.text(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.text(f"  {prefix}{entry}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        if not rows:
            return
        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(cell))

        def _pad(cells: Sequence[str]) -> str:
            return "  ".join(
                (cells[index] if index < len(cells) else "").ljust(width)
                for index, width in enumerate(widths)
            ).rstrip()

        self.text(f"  {_pad(headers)}")
        self.text(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            self.text(f"  {_pad(row)}")

    def manifest(self, manifest: BuildManifest) -> None:
        self.kv("features", " ".join(manifest.features))
        self.kv("bench features", " ".join(manifest.bench_features) or "(none)")
        self.section("Examples:")
        self.table(
            ("name", "features", "stdout"),
            [
                (
                    example.name,
                    " ".join(example.required_features) or "-",
                    "discarded" if example.discard_output else "shown",
                )
                for example in manifest.examples
            ],
        )
        self.section("Pin rules:")
        if not manifest.pin_rules:
            self.items(["(none)"])
        self.items(
            [
                f"toolchain ~ {rule.version_pattern}: {rule.dependency} = {rule.exact_version}"
                for rule in manifest.pin_rules
            ]
        )

    def plan(self, toolchain_version: str, specs: Sequence[CommandSpec]) -> None:
        self.kv("toolchain", toolchain_version or "(unknown)")
        self.section(f"Invocations ({len(specs)}):")
        for index, spec in enumerate(specs, start=1):
            location = f"  (in {spec.cwd})" if spec.cwd not in (None, ".") else ""
            self.text(f"  {index:>3}. {spec.render()}{location}")

    def report(self, report: DriverReport) -> None:
        self.kv("toolchain", report.toolchain_version or "(unknown)")
        if report.applied_pins:
            self.kv(
                "pins",
                ", ".join(
                    f"{rule.dependency}={rule.exact_version}" for rule in report.applied_pins
                ),
            )
        self.table(
            ("stage", "outcome", "status"),
            [
                (result.stage_id, result.outcome.value, str(result.exit_code))
                for result in report.stage_results
            ],
        )
        if report.skipped_stages:
            self.kv("skipped", " ".join(report.skipped_stages))
        if report.failed_phase is not None:
            self.kv("failed", report.failed_phase)
        self.kv("exit status", report.exit_code)


def create_renderer(stream: IO[str] | None = None) -> CLIRenderer:
    return CLIRenderer(stream)


__all__ = ["CLIRenderer", "create_renderer"]
