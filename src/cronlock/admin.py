"""Administrative view and queue maintenance for operators."""

from __future__ import annotations

import logging
import time
from typing import Any

import pandas as pd

from cronlock.core.config import CronLockConfig
from cronlock.core.constants import GLOBAL_QUEUE_SCOPE
from cronlock.core.locks import LockStore
from cronlock.ledger import Ledger, LedgerSnapshot, create_ledger
from cronlock.ledger.models import ResourceStatus
from cronlock.scheduling import FileRetryScheduler

RESOURCE_COLUMNS = ["scope", "status", "owner", "owner_url", "event", "since", "waiting"]
QUEUE_COLUMNS = ["scope", "position", "site", "site_url", "event", "queued_at"]
LOCK_COLUMNS = ["file", "site", "site_url", "event", "age_seconds", "pid"]
RETRY_COLUMNS = ["site_url", "event", "due_in_seconds"]


class AdminOperations:
    """Read-only status views plus the queue and lock maintenance operations.

    Status views read the ledger without locking; every mutation goes through
    the ledger's locked transactions.
    """

    def __init__(
        self,
        *,
        lock_store: LockStore,
        ledger: Ledger,
        scheduler: FileRetryScheduler,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.lock_store = lock_store
        self.ledger = ledger
        self.scheduler = scheduler
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls, config: CronLockConfig, *, logger: logging.Logger | logging.LoggerAdapter | None = None
    ) -> AdminOperations:
        log = logger or logging.getLogger(__name__)
        return cls(
            lock_store=LockStore(config.lock.lock_dir, backend_name=config.lock.lock_backend, logger=log),
            ledger=create_ledger(config.lock.ledger_path, per_event_locking=config.lock.per_event_locking, logger=log),
            scheduler=FileRetryScheduler(config.lock.schedule_path, config.site.url, logger=log),
            logger=log,
        )

    @property
    def per_event_locking(self) -> bool:
        return self.ledger.mode == "per-event"

    # ==================== VIEWS ====================

    def _resources(self, snapshot: LedgerSnapshot) -> list[tuple[str, ResourceStatus]]:
        if self.per_event_locking:
            return sorted(snapshot.events.items())
        if snapshot.global_status is None:
            return []
        return [(GLOBAL_QUEUE_SCOPE, snapshot.global_status)]

    def status(self, now: float | None = None) -> dict[str, Any]:
        """Whole-system view: ledger contents, held locks, pending retries."""
        current = time.time() if now is None else now
        snapshot = self.ledger.peek()
        return {
            "mode": self.ledger.mode,
            "status": self.ledger.dump(snapshot),
            "locks": [
                {"file": name, **record.to_dict(), "age_seconds": record.age(current)}
                for name, record in self.lock_store.list_locks()
            ],
            "retries": self.scheduler.pending_all(),
        }

    def resource_frame(self) -> pd.DataFrame:
        rows = []
        for scope, status in self._resources(self.ledger.peek()):
            owner = status.owner
            rows.append(
                {
                    "scope": scope,
                    "status": status.status,
                    "owner": owner.label if owner else "",
                    "owner_url": owner.url if owner else "",
                    "event": getattr(status, "current_event", None) or (scope if self.per_event_locking else ""),
                    "since": status.timestamp,
                    "waiting": len(status.queue),
                }
            )
        return pd.DataFrame(rows, columns=RESOURCE_COLUMNS)

    def queue_frame(self) -> pd.DataFrame:
        rows = [
            {"scope": scope, "position": position, **entry.to_dict()}
            for scope, status in self._resources(self.ledger.peek())
            for position, entry in enumerate(status.queue, start=1)
        ]
        return pd.DataFrame(rows, columns=QUEUE_COLUMNS)

    def lock_frame(self, now: float | None = None) -> pd.DataFrame:
        current = time.time() if now is None else now
        rows = [
            {
                "file": name,
                "site": record.site,
                "site_url": record.site_url,
                "event": record.event,
                "age_seconds": record.age(current),
                "pid": record.pid,
            }
            for name, record in self.lock_store.list_locks()
        ]
        return pd.DataFrame(rows, columns=LOCK_COLUMNS)

    def retry_frame(self, now: float | None = None) -> pd.DataFrame:
        current = int(time.time() if now is None else now)
        rows = [
            {"site_url": site_url, "event": event, "due_in_seconds": due - current}
            for site_url, events in sorted(self.scheduler.pending_all().items())
            for event, due in sorted(events.items(), key=lambda item: item[1])
        ]
        return pd.DataFrame(rows, columns=RETRY_COLUMNS)

    # ==================== MAINTENANCE ====================

    def move_to_top(self, event: str, site_url: str) -> None:
        self.ledger.move_to_top(event, site_url)

    def move_up(self, event: str, site_url: str) -> None:
        self.ledger.move_up(event, site_url)

    def remove_from_queue(self, event: str, site_url: str) -> int:
        return self.ledger.remove_entry(event, site_url)

    def clear_queue(self, scope: str) -> int:
        return self.ledger.clear_queue(scope)

    def clear_all_queues(self) -> int:
        return self.ledger.clear_all_queues()

    def clear_all_locks(self) -> int:
        """Delete every lock file, including ones held by live processes."""
        count = self.lock_store.clear_all()
        self.logger.warning("Admin cleared %d lock(s)", count)
        return count

    def reset(self) -> None:
        """Reset the ledger to its empty state. Lock files are left alone."""
        self.ledger.reset()
