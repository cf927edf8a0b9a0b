"""Local retry scheduling.

The hosting scheduler (cron, a systemd timer) only knows how to invoke
``cronlock run EVENT`` or ``cronlock run-due`` periodically. Delayed
re-invocations requested by the coordinator are recorded here and handed
back by ``pop_due`` once they are due.

The schedule file lives in the shared lock directory, so retries are keyed
by site URL: each site only pops its own retries, and a releasing site can
leave a retry for the waiter it failed to wake.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Protocol

from cronlock.core.storage import locked_json_file, read_json_file


class RetryScheduler(Protocol):
    """Contract between the coordinator and the hosting scheduler."""

    def schedule(self, event: str, at: float, *, site_url: str | None = None) -> None:
        """Request an invocation of event at or after unix time ``at``."""

    def schedule_in(self, event: str, delay: int, *, site_url: str | None = None, now: float | None = None) -> int:
        """Request an invocation of event delay seconds after now; return the due time."""

    def clear(self, event: str) -> bool:
        """Drop any pending invocation of event for this site."""

    def pop_due(self, now: float | None = None) -> list[str]:
        """Remove and return the events of this site that are due."""


def _retries(data: dict[str, Any]) -> dict[str, dict[str, int]]:
    raw = data.get("retries")
    if not isinstance(raw, dict):
        return {}
    retries: dict[str, dict[str, int]] = {}
    for site_url, events in raw.items():
        if not isinstance(events, dict):
            continue
        parsed = {}
        for event, due in events.items():
            try:
                parsed[str(event)] = int(due)
            except (TypeError, ValueError):
                continue
        if parsed:
            retries[str(site_url)] = parsed
    return retries


class FileRetryScheduler:
    """Retry schedule persisted as ``{"retries": {site_url: {event: due_unix_time}}}``.

    Scheduling the same event twice keeps the earlier due time, so a waiter
    moving up the queue is never pushed back by a stale, later request.
    """

    def __init__(
        self,
        path: Path,
        site_url: str,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.path = Path(path)
        self.site_url = site_url
        self.logger = logger or logging.getLogger(__name__)

    def schedule(self, event: str, at: float, *, site_url: str | None = None) -> None:
        target = site_url or self.site_url
        due = int(at)
        with locked_json_file(self.path, dict, logger=self.logger) as document:
            retries = _retries(document.data)
            events = retries.setdefault(target, {})
            existing = events.get(event)
            if existing is None or due < existing:
                events[event] = due
            document.data = {"retries": retries}

    def schedule_in(self, event: str, delay: int, *, site_url: str | None = None, now: float | None = None) -> int:
        due = int(time.time() if now is None else now) + delay
        self.schedule(event, due, site_url=site_url)
        return due

    def clear(self, event: str) -> bool:
        with locked_json_file(self.path, dict, logger=self.logger) as document:
            retries = _retries(document.data)
            events = retries.get(self.site_url, {})
            removed = events.pop(event, None) is not None
            if not events:
                retries.pop(self.site_url, None)
            document.data = {"retries": retries}
        return removed

    def pop_due(self, now: float | None = None) -> list[str]:
        """Remove and return every due event of this site, earliest first."""
        current = int(time.time() if now is None else now)
        with locked_json_file(self.path, dict, logger=self.logger) as document:
            retries = _retries(document.data)
            events = retries.get(self.site_url, {})
            due = sorted((at, event) for event, at in events.items() if at <= current)
            for _, event in due:
                del events[event]
            if not events:
                retries.pop(self.site_url, None)
            document.data = {"retries": retries}
        return [event for _, event in due]

    def pending(self, site_url: str | None = None) -> dict[str, int]:
        """Pending retries of a site (default: this one), read without locking."""
        data = read_json_file(self.path)
        if data is None:
            return {}
        return _retries(data).get(site_url or self.site_url, {})

    def pending_all(self) -> dict[str, dict[str, int]]:
        data = read_json_file(self.path)
        return _retries(data) if data is not None else {}
