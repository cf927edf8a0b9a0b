"""CLI command handlers.

Each handler takes the parsed arguments, the loaded configuration and the
package logger, and returns the process exit code.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable

import pandas as pd

from cronlock.admin import AdminOperations
from cronlock.coordinator import Coordinator, Outcome
from cronlock.core.colors import ConsoleColors
from cronlock.core.config import CronLockConfig

CommandHandler = Callable[[argparse.Namespace, CronLockConfig, logging.Logger], int]


def _format_as_json(payload: dict) -> str:
    return json.dumps(payload, indent=2)


def _format_frame(title: str, frame: pd.DataFrame) -> str:
    lines = [ConsoleColors.bold(title)]
    if frame.empty:
        lines.append(ConsoleColors.dim("  (none)"))
    else:
        lines.append(frame.to_string(index=False))
    lines.append("")
    return "\n".join(lines)


def run_event(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    coordinator = Coordinator.from_config(config, logger=logger)
    outcome = coordinator.handle(args.event)
    logger.debug("Event %s finished with outcome %s", args.event, outcome.value)
    return 1 if outcome is Outcome.FAILED else 0


def run_due(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    coordinator = Coordinator.from_config(config, logger=logger)
    outcomes = coordinator.run_due()
    if outcomes:
        summary = ", ".join(f"{event}={outcome.value}" for event, outcome in outcomes.items())
        logger.info("Handled %d due retr%s: %s", len(outcomes), "y" if len(outcomes) == 1 else "ies", summary)
    return 1 if Outcome.FAILED in outcomes.values() else 0


def show_status(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    admin = AdminOperations.from_config(config, logger=logger)
    if args.output_format == "json":
        print(_format_as_json(admin.status()))
    elif args.output_format == "csv":
        sys.stdout.write(admin.queue_frame().to_csv(index=False))
    else:
        mode = "per-event" if config.lock.per_event_locking else "global"
        print(f"Lock directory: {config.lock.lock_dir} ({mode} locking)\n")
        print(_format_frame("Resources", admin.resource_frame()))
        print(_format_frame("Queue", admin.queue_frame()))
        print(_format_frame("Locks", admin.lock_frame()))
        print(_format_frame("Pending retries", admin.retry_frame()))
    return 0


def manage_queue(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    admin = AdminOperations.from_config(config, logger=logger)
    action = args.queue_command
    if action == "move-top":
        admin.move_to_top(args.event, args.site_url)
        message = f"Moved {args.site_url} to the top of the {args.event} queue"
    elif action == "move-up":
        admin.move_up(args.event, args.site_url)
        message = f"Moved {args.site_url} up in the {args.event} queue"
    elif action == "remove":
        removed = admin.remove_from_queue(args.event, args.site_url)
        message = f"Removed {removed} entr{'y' if removed == 1 else 'ies'} for {args.site_url} from {args.event}"
    elif action == "clear":
        cleared = admin.clear_queue(args.scope)
        message = f"Cleared {cleared} job(s) from the {args.scope} queue"
    else:
        cleared = admin.clear_all_queues()
        message = f"Cleared {cleared} job(s) from all queues"
    print(ConsoleColors.success(message))
    return 0


def _confirmed(args: argparse.Namespace, what: str) -> bool:
    if args.yes:
        return True
    print(ConsoleColors.warning(f"Refusing to {what} without --yes"), file=sys.stderr)
    return False


def clear_locks(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    if not _confirmed(args, "delete lock files"):
        return 1
    count = AdminOperations.from_config(config, logger=logger).clear_all_locks()
    print(ConsoleColors.success(f"Cleared {count} lock(s)"))
    return 0


def reset_ledger(args: argparse.Namespace, config: CronLockConfig, logger: logging.Logger) -> int:
    if not _confirmed(args, "reset the status ledger"):
        return 1
    AdminOperations.from_config(config, logger=logger).reset()
    print(ConsoleColors.success("Status ledger reset"))
    return 0


COMMANDS: dict[str, CommandHandler] = {
    "run": run_event,
    "run-due": run_due,
    "status": show_status,
    "queue": manage_queue,
    "locks": clear_locks,
    "reset": reset_ledger,
}
