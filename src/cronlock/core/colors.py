"""Console colors for cronlock CLI output.

Provides ANSI color codes for terminal output with auto-detection
of TTY support and the ``NO_COLOR`` convention.
"""

import os
import sys


class ConsoleColors:
    """ANSI color codes for terminal output.

    Colors are disabled when stdout is not a TTY, when ``NO_COLOR`` is set,
    or when the CLI passes ``--no-color``.
    """

    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BOLD = '\033[1m'
    DIM = '\033[90m'
    RESET = '\033[0m'

    _enabled = sys.stdout.isatty() and not os.environ.get('NO_COLOR')

    @classmethod
    def configure(cls, no_color: bool = False) -> None:
        """Apply the CLI color policy."""
        cls._enabled = not no_color and sys.stdout.isatty() and not os.environ.get('NO_COLOR')

    @classmethod
    def is_enabled(cls) -> bool:
        return cls._enabled

    @classmethod
    def _wrap(cls, code: str, text: str) -> str:
        if cls._enabled:
            return f"{code}{text}{cls.RESET}"
        return text

    @classmethod
    def success(cls, text: str) -> str:
        """Format text as success (green)"""
        return cls._wrap(cls.GREEN, text)

    @classmethod
    def error(cls, text: str) -> str:
        """Format text as error (red)"""
        return cls._wrap(cls.RED, text)

    @classmethod
    def warning(cls, text: str) -> str:
        """Format text as warning (yellow)"""
        return cls._wrap(cls.YELLOW, text)

    @classmethod
    def bold(cls, text: str) -> str:
        return cls._wrap(cls.BOLD, text)

    @classmethod
    def dim(cls, text: str) -> str:
        return cls._wrap(cls.DIM, text)

