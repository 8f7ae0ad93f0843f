"""
ci-driver — declared build manifest loader.

File: src/ci_driver/manifest.py

Purpose
- Load the packaged ``data/ci_manifest.yaml``: feature list, example list,
  bench features, and toolchain pin rules.

Functional requirements
- The manifest is fixed at build time; it is never derived from the package's
  own metadata or from environment input.
- Reject unknown fields, duplicate names, and examples that require
  undeclared features.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from importlib import resources
from pathlib import Path
from typing import Final, cast

import yaml

from ci_driver.domain.models import BuildManifest, ExampleEntry, PinRule

MANIFEST_RESOURCE: Final[str] = "data/ci_manifest.yaml"

_ALLOWED_ROOT_FIELDS: Final[frozenset[str]] = frozenset(
    {"features", "bench_features", "examples", "pins"}
)
_ALLOWED_EXAMPLE_FIELDS: Final[frozenset[str]] = frozenset({"name", "features", "discard_output"})
_REQUIRED_PIN_FIELDS: Final[frozenset[str]] = frozenset({"toolchain", "package", "version"})


class ManifestError(ValueError):
    """Raised when the declared manifest is missing or malformed."""


def load_manifest(path: str | Path | None = None) -> BuildManifest:
    """Load and validate the build manifest; ``None`` selects the packaged one."""

    if path is None:
        resource = resources.files("ci_driver").joinpath(MANIFEST_RESOURCE)
        location = MANIFEST_RESOURCE
        try:
            text = resource.read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"{location}: unable to read packaged manifest ({exc})") from exc
    else:
        manifest_path = Path(path)
        location = manifest_path.name
        try:
            text = manifest_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"{manifest_path}: unable to read manifest ({exc})") from exc

    return parse_manifest(text, location=location)


def parse_manifest(text: str, *, location: str = "manifest") -> BuildManifest:
    try:
        loaded = cast("object", yaml.safe_load(text))
    except yaml.YAMLError as exc:
        raise ManifestError(f"{location}: invalid YAML ({exc})") from exc

    root = _as_string_key_mapping(loaded, location)
    unknown = sorted(set(root) - _ALLOWED_ROOT_FIELDS)
    if unknown:
        raise ManifestError(
            f"{location}: unexpected fields: {unknown}; allowed fields: "
            f"{sorted(_ALLOWED_ROOT_FIELDS)}"
        )
    if "features" not in root:
        raise ManifestError(f"{location}: missing required field 'features'")

    features = _as_name_list(root["features"], f"{location}.features")
    bench_features = _as_name_list(root.get("bench_features", []), f"{location}.bench_features")
    examples = tuple(
        _parse_example(item, location=f"{location}.examples[{index}]")
        for index, item in enumerate(_as_list(root.get("examples", []), f"{location}.examples"))
    )
    pin_rules = tuple(
        _parse_pin_rule(item, location=f"{location}.pins[{index}]")
        for index, item in enumerate(_as_list(root.get("pins", []), f"{location}.pins"))
    )

    try:
        return BuildManifest(
            features=features,
            examples=examples,
            pin_rules=pin_rules,
            bench_features=bench_features,
        )
    except ValueError as exc:
        raise ManifestError(f"{location}: {exc}") from exc


def _parse_example(value: object, *, location: str) -> ExampleEntry:
    parsed = _as_string_key_mapping(value, location)
    unknown = sorted(set(parsed) - _ALLOWED_EXAMPLE_FIELDS)
    if unknown:
        raise ManifestError(f"{location}: unexpected fields: {unknown}")
    if "name" not in parsed:
        raise ManifestError(f"{location}: missing required field 'name'")

    discard_output = parsed.get("discard_output", False)
    if not isinstance(discard_output, bool):
        raise ManifestError(f"{location}.discard_output: expected boolean")

    try:
        return ExampleEntry(
            name=cast("str", parsed["name"]),
            required_features=_as_name_list(parsed.get("features", []), f"{location}.features"),
            discard_output=discard_output,
        )
    except ValueError as exc:
        raise ManifestError(f"{location}: {exc}") from exc


def _parse_pin_rule(value: object, *, location: str) -> PinRule:
    parsed = _as_string_key_mapping(value, location)
    keys = set(parsed)
    missing = sorted(_REQUIRED_PIN_FIELDS - keys)
    if missing:
        raise ManifestError(f"{location}: missing required fields: {missing}")
    unknown = sorted(keys - _REQUIRED_PIN_FIELDS)
    if unknown:
        raise ManifestError(f"{location}: unexpected fields: {unknown}")

    values = {key: parsed[key] for key in _REQUIRED_PIN_FIELDS}
    for key, item in sorted(values.items()):
        if not isinstance(item, str):
            raise ManifestError(
                f"{location}.{key}: expected string, got {type(item).__name__} "
                "(quote version numbers in YAML)"
            )

    try:
        return PinRule(
            version_pattern=cast("str", values["toolchain"]),
            dependency=cast("str", values["package"]),
            exact_version=cast("str", values["version"]),
        )
    except ValueError as exc:
        raise ManifestError(f"{location}: {exc}") from exc


def _as_string_key_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise ManifestError(f"{path}: expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ManifestError(f"{path}: object keys must be strings, got {type(key).__name__}")
        parsed[key] = item
    return parsed


def _as_list(value: object, path: str) -> list[object]:
    if value is None:
        return []
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise ManifestError(f"{path}: expected array, got {type(value).__name__}")
    return list(value)


def _as_name_list(value: object, path: str) -> tuple[str, ...]:
    names: list[str] = []
    for index, item in enumerate(_as_list(value, path)):
        if not isinstance(item, str):
            raise ManifestError(f"{path}[{index}]: expected string, got {type(item).__name__}")
        names.append(item)
    return tuple(names)


__all__ = ["MANIFEST_RESOURCE", "ManifestError", "load_manifest", "parse_manifest"]
