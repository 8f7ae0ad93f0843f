"""
ci-driver — environment resolver and runtime settings loader.

File: src/ci_driver/config/loader.py

Purpose
- Resolve the stage-selection ``ConfigSnapshot`` from an explicit environment
  mapping and the detected toolchain version.
- Load runtime settings from defaults, ``ci_driver.toml``, ``CI_DRIVER_``
  environment variables, and CLI overrides.

Functional requirements
- Stage flags are permissive: only the exact literal ``"true"`` enables one;
  anything else, including unset and typos, disables it without error.
- Runtime settings are strict: precedence CLI > env > file > defaults, and
  invalid values raise ``ConfigLoadError`` / ``ConfigValidationError``.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from ci_driver.config.schema import (
    PATH_FIELDS,
    ConfigSnapshot,
    assert_valid_settings,
    default_settings,
    merge_config,
)
from ci_driver.constants import (
    ENV_DO_BENCH,
    ENV_DO_BITCOIND_TESTS,
    ENV_DO_DOCS,
    ENV_DO_FEATURE_MATRIX,
    ENV_DO_FMT,
    ENV_DO_FUZZ,
    FLAG_ENABLED_VALUE,
)

DEFAULT_CONFIG_FILE: Final[str] = "ci_driver.toml"
ENV_PREFIX: Final[str] = "CI_DRIVER_"


class ConfigLoadError(ValueError):
    """Raised when settings cannot be loaded or overrides cannot be applied."""


def flag_enabled(environ: Mapping[str, str], name: str) -> bool:
    """Return whether stage flag ``name`` is set to the literal ``"true"``."""

    return environ.get(name) == FLAG_ENABLED_VALUE


def resolve_snapshot(environ: Mapping[str, str], toolchain_version: str) -> ConfigSnapshot:
    """Build the run's configuration snapshot; never fails on flag values."""

    return ConfigSnapshot(
        format_check=flag_enabled(environ, ENV_DO_FMT),
        fuzz=flag_enabled(environ, ENV_DO_FUZZ),
        integration_tests=flag_enabled(environ, ENV_DO_BITCOIND_TESTS),
        feature_matrix=flag_enabled(environ, ENV_DO_FEATURE_MATRIX),
        bench=flag_enabled(environ, ENV_DO_BENCH),
        docs=flag_enabled(environ, ENV_DO_DOCS),
        toolchain_version=toolchain_version,
    )


def load_settings(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective settings with precedence CLI > env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = merge_config(default_settings(), file_payload)
    merged = assert_valid_settings(merged)

    merged = merge_config(merged, _collect_env_overrides(env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_overrides or {}))
    merged = assert_valid_settings(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize configured path fields relative to ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        value = _get_nested(materialized, field_path)
        if isinstance(value, str) and value:
            _set_nested(materialized, field_path, _normalize_one_path(value, base_dir))
    return materialized


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for path in _iter_scalar_paths(default_settings()):
        raw = environ.get(env_name_for_path(path))
        if raw is None:
            continue
        _set_nested(overrides, path, raw.strip())
    return overrides


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[str, ...]]:
    paths: list[tuple[str, ...]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            paths.extend(_iter_scalar_paths(value, path))
        else:
            paths.append(path)
    return paths


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if len(path) < 2:
            raise ConfigLoadError(f"invalid CLI override key {key!r}; expected section.field")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "env_name_for_path",
    "flag_enabled",
    "load_settings",
    "normalize_paths",
    "resolve_snapshot",
]
