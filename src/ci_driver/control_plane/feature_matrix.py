"""Feature matrix: all features together, each feature alone, then the examples."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from ci_driver.domain.models import BuildManifest, ExampleEntry
from ci_driver.execution.cargo import CargoFrontend
from ci_driver.execution.commands import CommandExecutor, CommandSpec, run_sequence


def plan_feature_matrix(
    features: Sequence[str],
    examples: Sequence[ExampleEntry],
    frontend: CargoFrontend,
) -> tuple[CommandSpec, ...]:
    """Return the ordered matrix invocations.

    The order is fixed: one all-features test, one test per feature in
    declared order, one examples build, then each example in declared order.
    """

    specs: list[CommandSpec] = [frontend.test(tuple(features))]
    specs.extend(frontend.test((feature,)) for feature in features)
    specs.append(frontend.build_examples())
    specs.extend(
        frontend.run_example(
            example.name,
            example.required_features,
            discard_output=example.discard_output,
        )
        for example in examples
    )
    return tuple(specs)


async def run_feature_matrix(
    executor: CommandExecutor,
    frontend: CargoFrontend,
    manifest: BuildManifest,
    *,
    logger: Any | None = None,
) -> int:
    log = logger if logger is not None else structlog.get_logger(__name__)
    specs = plan_feature_matrix(manifest.features, manifest.examples, frontend)
    log.info(
        "feature_matrix_planned",
        features=list(manifest.features),
        examples=[example.name for example in manifest.examples],
        invocations=len(specs),
    )
    return await run_sequence(executor, specs, logger=log)


__all__ = ["plan_feature_matrix", "run_feature_matrix"]
