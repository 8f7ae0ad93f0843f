"""ci-driver user interface: argparse CLI and plain-text rendering."""

from ci_driver.ui.cli import CLIError, build_parser, run_cli
from ci_driver.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
