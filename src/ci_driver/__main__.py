"""Module entrypoint for ``python -m ci_driver``."""

from __future__ import annotations

from ci_driver.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
