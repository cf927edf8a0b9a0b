"""CLI argument parsing."""

from __future__ import annotations

import argparse

from cronlock.core.constants import GLOBAL_QUEUE_SCOPE, VALID_LOG_FORMATS, VALID_LOG_LEVELS
from cronlock.core.version import __version__

# Attempt to load argcomplete for shell tab-completion (optional dependency)
_ARGCOMPLETE_AVAILABLE = False
try:
    import argcomplete

    _ARGCOMPLETE_AVAILABLE = True
except ImportError:
    pass  # argcomplete not installed

STATUS_FORMATS = ("table", "json", "csv")

EPILOG = """
Examples:
  # Run an event under the lock (from crontab)
  cronlock run nightly-backup

  # Run retries that have come due (every minute from crontab)
  cronlock run-due

  # One lock shared by every event
  cronlock --global-mode run nightly-backup

  # Inspect locks, queues and pending retries
  cronlock status --format json

  # Queue maintenance
  cronlock queue move-top nightly-backup https://b.example.com
  cronlock queue clear __global__
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronlock",
        description="Coordinate scheduled jobs of many sites through locks on a shared filesystem",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", metavar="PATH", help="JSON config file (default: ./cronlock.json, optional)")
    parser.add_argument("--lock-dir", metavar="DIR", help="Shared lock directory (overrides config)")
    parser.add_argument("--log-level", type=str.upper, choices=VALID_LOG_LEVELS, help="Logging level")
    parser.add_argument("--log-format", type=str.lower, choices=VALID_LOG_FORMATS, help="Log output format")
    parser.add_argument("--no-color", action="store_true", help="Disable colored console output")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--global-mode",
        dest="per_event_locking",
        action="store_false",
        default=None,
        help="Use one lock and one queue for every event",
    )
    mode.add_argument(
        "--per-event-mode",
        dest="per_event_locking",
        action="store_true",
        default=None,
        help="Use one lock and one queue per event",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    run = commands.add_parser("run", help="Run EVENT if the lock is free, otherwise queue for it")
    run.add_argument("event", metavar="EVENT")

    commands.add_parser("run-due", help="Run this site's retries that have come due")

    status = commands.add_parser("status", help="Show locks, queues and pending retries")
    status.add_argument("--format", choices=STATUS_FORMATS, default="table", dest="output_format")

    queue = commands.add_parser("queue", help="Queue maintenance")
    queue_commands = queue.add_subparsers(dest="queue_command", metavar="ACTION", required=True)
    for name, help_text in (
        ("move-top", "Move a waiter to the front of the queue"),
        ("move-up", "Move a waiter one position up"),
        ("remove", "Remove a waiter from the queue"),
    ):
        action = queue_commands.add_parser(name, help=help_text)
        action.add_argument("event", metavar="EVENT")
        action.add_argument("site_url", metavar="SITE_URL")
    clear = queue_commands.add_parser("clear", help="Clear one queue")
    clear.add_argument("scope", metavar="EVENT", help=f"Event name, or {GLOBAL_QUEUE_SCOPE} in global mode")
    queue_commands.add_parser("clear-all", help="Clear every queue")

    locks = commands.add_parser("locks", help="Lock maintenance")
    lock_commands = locks.add_subparsers(dest="locks_command", metavar="ACTION", required=True)
    clear_locks = lock_commands.add_parser("clear", help="Delete every lock file, held or not")
    clear_locks.add_argument("--yes", action="store_true", help="Confirm deleting locks of running jobs")

    reset = commands.add_parser("reset", help="Reset the status ledger to empty")
    reset.add_argument("--yes", action="store_true", help="Confirm discarding every status and queue")

    # Enable shell tab-completion if argcomplete is installed
    if _ARGCOMPLETE_AVAILABLE:
        argcomplete.autocomplete(parser)

    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    return build_parser().parse_args(argv)
