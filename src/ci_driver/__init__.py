"""
ci-driver — package root.

File: src/ci_driver/__init__.py

Purpose
- Build/test orchestration driver for a multi-feature cargo package.
- Decides which stages run, in which order, and fails fast on the first
  non-zero external command.

Import boundary rules
- No side effects at import time (no config loading, no logging init, no
  subprocesses).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
