"""
ci-driver — unit tests for command specs and the cargo front-end

File: tests/unit/execution/test_command_specs.py

Purpose
- Validate CommandSpec normalization and rendering.
- Validate the exact argv the cargo front-end produces for each operation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ci_driver.execution import (
    CargoFrontend,
    CommandSpec,
    OutputMode,
    features_argument,
    normalize_exit_status,
)


@pytest.mark.unit
def test_command_spec_rejects_empty_argv_and_blank_items() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        CommandSpec(argv=())
    with pytest.raises(ValueError, match=r"argv\[1\]"):
        CommandSpec(argv=("cargo", ""))
    with pytest.raises(ValueError, match="cwd"):
        CommandSpec(argv=("cargo",), cwd="  ")


@pytest.mark.unit
def test_command_spec_render_quotes_and_marks_discarded_output() -> None:
    spec = CommandSpec(
        argv=("cargo", "run", "--example", "verify_tx", "--features=a b"),
        env={"RUSTDOCFLAGS": "--cfg docsrs"},
        output=OutputMode.DISCARD,
    )

    assert spec.render() == (
        "RUSTDOCFLAGS='--cfg docsrs' cargo run --example verify_tx '--features=a b' > /dev/null"
    )


@pytest.mark.unit
def test_command_spec_env_is_sorted_and_only_merged_when_present(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CI_DRIVER_TEST_MARKER", "1")
    bare = CommandSpec(argv=("cargo", "test"))
    with_env = CommandSpec(argv=("cargo", "doc"), env={"B": "2", "A": "1"})

    assert bare.build_env() is None
    assert list(with_env.env) == ["A", "B"]
    merged = with_env.build_env()
    assert merged is not None
    assert merged["A"] == "1"
    assert merged["CI_DRIVER_TEST_MARKER"] == "1"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("returncode", "expected"),
    [(0, 0), (1, 1), (101, 101), (-9, 137), (-15, 143), (None, 128)],
)
def test_normalize_exit_status_follows_shell_conventions(
    returncode: int | None, expected: int
) -> None:
    assert normalize_exit_status(returncode) == expected


@pytest.mark.unit
def test_features_argument_renders_single_space_separated_flag() -> None:
    assert features_argument(()) == ()
    assert features_argument(("compiler",)) == ("--features=compiler",)
    assert features_argument(("compiler", "serde", "rand", "base64")) == (
        "--features=compiler serde rand base64",
    )


@pytest.mark.unit
def test_cargo_frontend_operations_produce_expected_argv() -> None:
    frontend = CargoFrontend()

    assert frontend.version().argv == ("cargo", "--version")
    assert frontend.version().output is OutputMode.CAPTURE
    assert frontend.rustc_version().argv == ("rustc", "--version")
    assert frontend.rustc_version().output is OutputMode.CAPTURE
    assert frontend.test().argv == ("cargo", "test")
    assert frontend.test(("serde",)).argv == ("cargo", "test", "--features=serde")
    assert frontend.bench(("unstable", "compiler")).argv == (
        "cargo",
        "bench",
        "--features=unstable compiler",
    )
    assert frontend.build_examples().argv == ("cargo", "build", "--examples")
    assert frontend.install_component().argv == ("rustup", "component", "add", "rustfmt")
    assert frontend.format_check().argv == ("cargo", "fmt", "--", "--check")
    assert frontend.pin_dependency("once_cell", "1.13.1").argv == (
        "cargo",
        "update",
        "-p",
        "once_cell",
        "--precise",
        "1.13.1",
    )


@pytest.mark.unit
def test_cargo_frontend_rustdoc_uses_nightly_and_docsrs_cfg() -> None:
    spec = CargoFrontend(docs_toolchain="nightly-2023-06-01").rustdoc(("compiler", "serde"))

    assert spec.argv == (
        "cargo",
        "+nightly-2023-06-01",
        "rustdoc",
        "--features=compiler serde",
        "--",
        "-D",
        "rustdoc::broken-intra-doc-links",
    )
    assert spec.env == {"RUSTDOCFLAGS": "--cfg docsrs"}


@pytest.mark.unit
def test_cargo_frontend_subproject_commands_run_in_subdirectory(tmp_path: Path) -> None:
    frontend = CargoFrontend(cargo="/opt/cargo/bin/cargo", project_root=tmp_path)

    fuzz_test = frontend.test(verbose=True, subdir="fuzz")
    fuzz_script = frontend.script("./travis-fuzz.sh", subdir="fuzz")

    assert fuzz_test.argv == ("/opt/cargo/bin/cargo", "test", "--verbose")
    assert fuzz_test.cwd == str(tmp_path / "fuzz")
    assert fuzz_script.argv == ("./travis-fuzz.sh",)
    assert fuzz_script.cwd == str(tmp_path / "fuzz")
    assert frontend.test().cwd == str(tmp_path)


@pytest.mark.unit
def test_run_example_discards_output_only_when_requested() -> None:
    frontend = CargoFrontend()

    shown = frontend.run_example("htlc", ("compiler",))
    hidden = frontend.run_example("verify_tx", discard_output=True)

    assert shown.argv == ("cargo", "run", "--example", "htlc", "--features=compiler")
    assert shown.output is OutputMode.INHERIT
    assert hidden.argv == ("cargo", "run", "--example", "verify_tx")
    assert hidden.output is OutputMode.DISCARD
