"""
ci-driver domain package.

Purpose
- Immutable types for the declared build manifest: features, example
  programs, and toolchain pin rules.
- Keep this layer free of IO side effects.
"""

from ci_driver.domain.models import BuildManifest, ExampleEntry, JSONScalar, JSONValue, PinRule

__all__ = ["BuildManifest", "ExampleEntry", "JSONScalar", "JSONValue", "PinRule"]
