"""CLI module - Command-line interface components."""

from cronlock.cli.main import main
from cronlock.cli.parser import build_parser, parse_arguments

__all__ = ["build_parser", "main", "parse_arguments"]
