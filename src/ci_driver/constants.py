"""Stable constants shared across the driver planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Environment flags that select stages. Only the literal "true" enables a flag.
FLAG_ENABLED_VALUE: Final[str] = "true"
ENV_DO_FMT: Final[str] = "DO_FMT"
ENV_DO_FUZZ: Final[str] = "DO_FUZZ"
ENV_DO_BITCOIND_TESTS: Final[str] = "DO_BITCOIND_TESTS"
ENV_DO_FEATURE_MATRIX: Final[str] = "DO_FEATURE_MATRIX"
ENV_DO_BENCH: Final[str] = "DO_BENCH"
ENV_DO_DOCS: Final[str] = "DO_DOCS"

STAGE_FLAG_ENV_NAMES: Final[tuple[str, ...]] = (
    ENV_DO_FMT,
    ENV_DO_FUZZ,
    ENV_DO_BITCOIND_TESTS,
    ENV_DO_FEATURE_MATRIX,
    ENV_DO_BENCH,
    ENV_DO_DOCS,
)

# Stage identifiers, in declared execution order.
TOOLCHAIN_STAGE_ID: Final[str] = "toolchain"
PIN_STAGE_ID: Final[str] = "pin_dependencies"
FORMAT_STAGE_ID: Final[str] = "format"
FUZZ_STAGE_ID: Final[str] = "fuzz"
INTEGRATION_STAGE_ID: Final[str] = "integration"
DEFAULT_TEST_STAGE_ID: Final[str] = "default_tests"
FEATURE_MATRIX_STAGE_ID: Final[str] = "feature_matrix"
BENCH_STAGE_ID: Final[str] = "bench"
DOCS_STAGE_ID: Final[str] = "docs"

STAGE_IDS_IN_ORDER: Final[tuple[str, ...]] = (
    FORMAT_STAGE_ID,
    FUZZ_STAGE_ID,
    INTEGRATION_STAGE_ID,
    DEFAULT_TEST_STAGE_ID,
    FEATURE_MATRIX_STAGE_ID,
    BENCH_STAGE_ID,
    DOCS_STAGE_ID,
)

# Sub-projects and helper scripts, relative to the project root.
FUZZ_DIR: Final[PurePosixPath] = PurePosixPath("fuzz")
FUZZ_DRIVER_SCRIPT: Final[str] = "./travis-fuzz.sh"
INTEGRATION_DIR: Final[PurePosixPath] = PurePosixPath("bitcoind-tests")

# Formatting and documentation collaborators.
FORMAT_COMPONENT: Final[str] = "rustfmt"
DOCS_RUSTDOCFLAGS: Final[str] = "--cfg docsrs"
DOCS_RUSTDOC_ARGS: Final[tuple[str, ...]] = ("-D", "rustdoc::broken-intra-doc-links")

# Shell exit-status conventions used when a child never produced a status.
EXIT_COMMAND_NOT_FOUND: Final[int] = 127
EXIT_COMMAND_NOT_EXECUTABLE: Final[int] = 126
EXIT_SIGNAL_BASE: Final[int] = 128

__all__ = [
    "BENCH_STAGE_ID",
    "DEFAULT_TEST_STAGE_ID",
    "DOCS_RUSTDOCFLAGS",
    "DOCS_RUSTDOC_ARGS",
    "DOCS_STAGE_ID",
    "ENV_DO_BENCH",
    "ENV_DO_BITCOIND_TESTS",
    "ENV_DO_DOCS",
    "ENV_DO_FEATURE_MATRIX",
    "ENV_DO_FMT",
    "ENV_DO_FUZZ",
    "EXIT_COMMAND_NOT_EXECUTABLE",
    "EXIT_COMMAND_NOT_FOUND",
    "EXIT_SIGNAL_BASE",
    "FEATURE_MATRIX_STAGE_ID",
    "FLAG_ENABLED_VALUE",
    "FORMAT_COMPONENT",
    "FORMAT_STAGE_ID",
    "FUZZ_DIR",
    "FUZZ_DRIVER_SCRIPT",
    "FUZZ_STAGE_ID",
    "INTEGRATION_DIR",
    "INTEGRATION_STAGE_ID",
    "PIN_STAGE_ID",
    "STAGE_FLAG_ENV_NAMES",
    "STAGE_IDS_IN_ORDER",
    "TOOLCHAIN_STAGE_ID",
]
