"""UI package exports for the CLI and rendering."""

from railtube.ui.cli import CLIError, CLIServices, build_parser, run_cli
from railtube.ui.render import CLIRenderer, ConsoleConfirmer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "CLIServices",
    "ConsoleConfirmer",
    "build_parser",
    "create_renderer",
    "run_cli",
]
