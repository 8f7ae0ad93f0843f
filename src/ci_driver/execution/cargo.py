"""
ci-driver — cargo/rustup command front-end.

File: src/ci_driver/execution/cargo.py

Purpose
- Build the exact ``CommandSpec`` for every collaborator operation: report
  version, run tests, run benchmarks, build and run examples, install the
  formatter, check formatting, pin a dependency, and generate docs.

Functional requirements
- Feature sets render as one ``--features=<space separated>`` argument; an
  empty feature set renders no flag at all.
- Working directories resolve against the configured project root.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from ci_driver.constants import (
    DOCS_RUSTDOC_ARGS,
    DOCS_RUSTDOCFLAGS,
    FORMAT_COMPONENT,
)
from ci_driver.execution.commands import CommandSpec, OutputMode


def features_argument(features: Sequence[str]) -> tuple[str, ...]:
    """Render a feature set as cargo arguments."""

    names = tuple(name.strip() for name in features if name.strip())
    if not names:
        return ()
    return (f"--features={' '.join(names)}",)


@dataclass(frozen=True, slots=True)
class CargoFrontend:
    """Argument builder for the cargo toolchain front-end."""

    cargo: str = "cargo"
    rustc: str = "rustc"
    rustup: str = "rustup"
    docs_toolchain: str = "nightly"
    project_root: Path = Path(".")

    def cwd(self, subdir: PurePosixPath | str | None = None) -> str:
        root = Path(self.project_root)
        if subdir is None:
            return str(root)
        return str(root / str(subdir))

    def version(self) -> CommandSpec:
        return CommandSpec(
            argv=(self.cargo, "--version"), cwd=self.cwd(), output=OutputMode.CAPTURE
        )

    def rustc_version(self) -> CommandSpec:
        return CommandSpec(
            argv=(self.rustc, "--version"), cwd=self.cwd(), output=OutputMode.CAPTURE
        )

    def test(
        self,
        features: Sequence[str] = (),
        *,
        verbose: bool = False,
        subdir: PurePosixPath | str | None = None,
    ) -> CommandSpec:
        argv: tuple[str, ...] = (self.cargo, "test")
        if verbose:
            argv += ("--verbose",)
        argv += features_argument(features)
        return CommandSpec(argv=argv, cwd=self.cwd(subdir))

    def bench(self, features: Sequence[str] = ()) -> CommandSpec:
        return CommandSpec(
            argv=(self.cargo, "bench", *features_argument(features)),
            cwd=self.cwd(),
        )

    def build_examples(self) -> CommandSpec:
        return CommandSpec(argv=(self.cargo, "build", "--examples"), cwd=self.cwd())

    def run_example(
        self,
        name: str,
        features: Sequence[str] = (),
        *,
        discard_output: bool = False,
    ) -> CommandSpec:
        return CommandSpec(
            argv=(self.cargo, "run", "--example", name, *features_argument(features)),
            cwd=self.cwd(),
            output=OutputMode.DISCARD if discard_output else OutputMode.INHERIT,
        )

    def install_component(self, component: str = FORMAT_COMPONENT) -> CommandSpec:
        return CommandSpec(argv=(self.rustup, "component", "add", component), cwd=self.cwd())

    def format_check(self) -> CommandSpec:
        return CommandSpec(argv=(self.cargo, "fmt", "--", "--check"), cwd=self.cwd())

    def pin_dependency(self, dependency: str, exact_version: str) -> CommandSpec:
        return CommandSpec(
            argv=(self.cargo, "update", "-p", dependency, "--precise", exact_version),
            cwd=self.cwd(),
        )

    def rustdoc(
        self,
        features: Sequence[str] = (),
        *,
        rustdoc_args: Sequence[str] = DOCS_RUSTDOC_ARGS,
        rustdocflags: str = DOCS_RUSTDOCFLAGS,
    ) -> CommandSpec:
        argv: tuple[str, ...] = (
            self.cargo,
            f"+{self.docs_toolchain}",
            "rustdoc",
            *features_argument(features),
        )
        if rustdoc_args:
            argv += ("--", *rustdoc_args)
        return CommandSpec(
            argv=argv,
            cwd=self.cwd(),
            env={"RUSTDOCFLAGS": rustdocflags} if rustdocflags else {},
        )

    def script(self, path: str, *, subdir: PurePosixPath | str | None = None) -> CommandSpec:
        return CommandSpec(argv=(path,), cwd=self.cwd(subdir))


__all__ = ["CargoFrontend", "features_argument"]
