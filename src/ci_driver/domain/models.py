"""Frozen domain models for the declared build manifest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NoReturn

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


@dataclass(frozen=True, slots=True)
class ExampleEntry:
    """One example program invoked by the feature matrix.

    ``required_features`` keeps declared order so the rendered ``--features``
    argument is stable across runs.
    """

    name: str
    required_features: tuple[str, ...] = ()
    discard_output: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_identifier(self.name, "ExampleEntry.name"))
        object.__setattr__(
            self,
            "required_features",
            _as_unique_names(self.required_features, "ExampleEntry.required_features"),
        )
        if not isinstance(self.discard_output, bool):
            _fail("ExampleEntry.discard_output", "expected bool")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "required_features": list(self.required_features),
            "discard_output": self.discard_output,
        }


@dataclass(frozen=True, slots=True)
class PinRule:
    """Force ``dependency`` to ``exact_version`` when the toolchain matches."""

    version_pattern: str
    dependency: str
    exact_version: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "version_pattern", _as_identifier(self.version_pattern, "PinRule.version_pattern")
        )
        object.__setattr__(
            self, "dependency", _as_identifier(self.dependency, "PinRule.dependency")
        )
        object.__setattr__(
            self, "exact_version", _as_identifier(self.exact_version, "PinRule.exact_version")
        )

    def matches(self, toolchain_version: str) -> bool:
        return self.version_pattern in toolchain_version

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "version_pattern": self.version_pattern,
            "dependency": self.dependency,
            "exact_version": self.exact_version,
        }


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Declared feature list, example list, pin rules, and bench features."""

    features: tuple[str, ...]
    examples: tuple[ExampleEntry, ...] = ()
    pin_rules: tuple[PinRule, ...] = ()
    bench_features: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        features = _as_unique_names(self.features, "BuildManifest.features")
        if not features:
            _fail("BuildManifest.features", "must declare at least one feature")
        object.__setattr__(self, "features", features)
        object.__setattr__(
            self,
            "bench_features",
            _as_unique_names(self.bench_features, "BuildManifest.bench_features"),
        )
        object.__setattr__(self, "examples", tuple(self.examples))
        object.__setattr__(self, "pin_rules", tuple(self.pin_rules))

        declared = set(features)
        seen_examples: set[str] = set()
        for index, example in enumerate(self.examples):
            location = f"BuildManifest.examples[{index}]"
            if not isinstance(example, ExampleEntry):
                _fail(location, f"expected ExampleEntry, got {type(example).__name__}")
            if example.name in seen_examples:
                _fail(location, f"duplicate example {example.name!r}")
            seen_examples.add(example.name)
            unknown = [name for name in example.required_features if name not in declared]
            if unknown:
                _fail(location, f"requires undeclared features: {unknown}")
        for index, rule in enumerate(self.pin_rules):
            if not isinstance(rule, PinRule):
                _fail(
                    f"BuildManifest.pin_rules[{index}]",
                    f"expected PinRule, got {type(rule).__name__}",
                )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "features": list(self.features),
            "bench_features": list(self.bench_features),
            "examples": [example.to_dict() for example in self.examples],
            "pin_rules": [rule.to_dict() for rule in self.pin_rules],
        }


def _as_identifier(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if any(char.isspace() for char in normalized):
        _fail(path, "must not contain whitespace")
    return normalized


def _as_unique_names(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, (str, bytes, bytearray)):
        _fail(path, "expected a sequence of names, got a bare string")
    try:
        items = tuple(value)  # type: ignore[arg-type]
    except TypeError:
        _fail(path, f"expected a sequence of names, got {type(value).__name__}")
    normalized: list[str] = []
    for index, item in enumerate(items):
        name = _as_identifier(item, f"{path}[{index}]")
        if name in normalized:
            _fail(path, f"duplicate name {name!r}")
        normalized.append(name)
    return tuple(normalized)


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "BuildManifest",
    "ExampleEntry",
    "JSONScalar",
    "JSONValue",
    "PinRule",
]
