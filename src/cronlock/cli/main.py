"""CLI entrypoint."""

from __future__ import annotations

import signal
import sys
from types import FrameType

from dotenv import load_dotenv

from cronlock.cli.commands import COMMANDS
from cronlock.cli.parser import parse_arguments
from cronlock.core.colors import ConsoleColors
from cronlock.core.config import CronLockConfig
from cronlock.core.exceptions import ConfigurationError, CronLockError
from cronlock.core.logging import flush_logging_handlers, setup_logging


def _exit_on_sigterm(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


def install_signal_handlers() -> None:
    """Turn SIGTERM into SystemExit so finally blocks and atexit hooks release locks."""
    signal.signal(signal.SIGTERM, _exit_on_sigterm)


def _print_error(msg: str) -> None:
    print(ConsoleColors.error(f"ERROR: {msg}"), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the script"""
    load_dotenv()
    args = parse_arguments(argv)
    ConsoleColors.configure(no_color=args.no_color)

    try:
        config = CronLockConfig.load(args.config)
        config.apply_args(args)
    except ConfigurationError as e:
        _print_error(str(e))
        return 1

    logger = setup_logging(
        config.site.label,
        config.log_path,
        config.log.level,
        config.log.format,
        max_bytes=config.log.file_max_bytes,
        backup_count=config.log.file_backup_count,
    )
    install_signal_handlers()

    try:
        return COMMANDS[args.command](args, config, logger)
    except CronLockError as e:
        logger.error("%s failed: %s", args.command, e)
        _print_error(str(e))
        return 1
    finally:
        flush_logging_handlers()


if __name__ == "__main__":
    sys.exit(main())
