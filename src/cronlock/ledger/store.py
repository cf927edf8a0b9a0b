"""Status ledger: the durable record of who runs what and who is waiting.

Every mutating operation is a single read-modify-write transaction under the
ledger file's exclusive lock, so queue mutations are linearized across all
processes sharing the file. Two variants implement the same contract:
``PerEventLedger`` keeps one status and queue per event, ``GlobalLedger``
keeps one status and a single queue shared by every event.
"""

from __future__ import annotations

import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cronlock.core.constants import GLOBAL_QUEUE_SCOPE
from cronlock.core.exceptions import AdminOperationError, QueueEntryNotFoundError, QueueNotFoundError
from cronlock.core.storage import locked_json_file, read_json_file
from cronlock.ledger.models import (
    STATUS_IDLE,
    STATUS_WAITING,
    EventStatus,
    GlobalStatus,
    LedgerSnapshot,
    Owner,
    ResourceStatus,
    WaiterEntry,
    utcnow_iso,
)

SkipPredicate = Callable[[WaiterEntry], bool]


@dataclass
class EnqueueResult:
    """Outcome of adding a waiter.

    Attributes:
        position: 0-based queue position of the caller's entry
        already_present: True if the caller was queued before this call
        was_idle: Resource status was idle before this call
        was_empty_queue: Queue was empty before this call
    """

    position: int
    already_present: bool
    was_idle: bool
    was_empty_queue: bool


@dataclass
class DequeueResult:
    next_entry: WaiterEntry | None
    skipped: int = 0


class Ledger(ABC):
    """Mode-independent ledger operations over a shared JSON file."""

    mode: str = ""

    def __init__(self, path: Path, *, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)

    # ==================== VARIANT HOOKS ====================

    @abstractmethod
    def default_snapshot(self) -> LedgerSnapshot:
        """Empty ledger for this mode."""

    @abstractmethod
    def parse(self, data: dict[str, Any]) -> LedgerSnapshot:
        """Build a snapshot from the raw JSON document."""

    @abstractmethod
    def dump(self, snapshot: LedgerSnapshot) -> dict[str, Any]:
        """Serialize a snapshot to the on-disk JSON shape."""

    @abstractmethod
    def status_for(self, snapshot: LedgerSnapshot, event: str, *, create: bool = True) -> ResourceStatus | None:
        """Return the status record that guards event, creating it if requested."""

    @abstractmethod
    def is_same_waiter(self, entry: WaiterEntry, site_url: str, event: str) -> bool:
        """Uniqueness rule for queue entries."""

    def mark_waiting(self, status: ResourceStatus) -> None:
        """Hook run after a new waiter was added."""

    # ==================== STORAGE ====================

    @contextlib.contextmanager
    def transaction(self) -> Iterator[LedgerSnapshot]:
        """Hold the ledger lock, yield a snapshot, and persist it on a clean exit."""
        with locked_json_file(self.path, self._default_document, logger=self.logger) as document:
            snapshot = self.parse(document.data)
            yield snapshot
            document.data = self.dump(snapshot)

    def read_or_init(self) -> LedgerSnapshot:
        """Read the ledger, creating it (or replacing corrupt content) with the default."""
        with self.transaction() as snapshot:
            return snapshot

    def write(self, snapshot: LedgerSnapshot) -> None:
        with locked_json_file(self.path, self._default_document, logger=self.logger) as document:
            document.data = self.dump(snapshot)

    def peek(self) -> LedgerSnapshot:
        """Read without locking. Advisory only; never a basis for mutation."""
        data = read_json_file(self.path)
        if data is None:
            return self.default_snapshot()
        return self.parse(data)

    def _default_document(self) -> dict[str, Any]:
        return self.dump(self.default_snapshot())

    # ==================== COORDINATION ====================

    def enqueue(self, event: str, entry: WaiterEntry) -> EnqueueResult:
        """Append entry unless an equivalent waiter is already queued."""
        with self.transaction() as snapshot:
            status = self.status_for(snapshot, event)
            was_idle = status.status == STATUS_IDLE
            was_empty_queue = not status.queue

            for index, queued in enumerate(status.queue):
                if self.is_same_waiter(queued, entry.site_url, entry.event):
                    return EnqueueResult(
                        position=index, already_present=True, was_idle=was_idle, was_empty_queue=was_empty_queue
                    )

            status.queue.append(entry)
            self.mark_waiting(status)
            return EnqueueResult(
                position=len(status.queue) - 1,
                already_present=False,
                was_idle=was_idle,
                was_empty_queue=was_empty_queue,
            )

    def dequeue(self, event: str, skip: SkipPredicate) -> DequeueResult:
        """Pop the first waiter that does not match skip; matching ones are dropped."""
        with self.transaction() as snapshot:
            status = self.status_for(snapshot, event, create=False)
            if status is None:
                return DequeueResult(next_entry=None)
            return self._pop_next(status, event, skip)

    def release_next(self, event: str, skip: SkipPredicate) -> DequeueResult:
        """Dequeue the next waiter and mark the resource idle in one transaction."""
        with self.transaction() as snapshot:
            status = self.status_for(snapshot, event, create=False)
            if status is None:
                self.logger.info("No ledger status for %s while releasing", event)
                return DequeueResult(next_entry=None)
            result = self._pop_next(status, event, skip)
            status.mark_idle()
            return result

    def set_running(self, event: str, owner: Owner) -> None:
        """Record owner as running event and drop its own queue entries."""
        with self.transaction() as snapshot:
            status = self.status_for(snapshot, event)
            status.mark_running(owner, event)
            status.queue = [entry for entry in status.queue if not self.is_same_waiter(entry, owner.url, event)]

    def set_idle(self, event: str) -> None:
        with self.transaction() as snapshot:
            status = self.status_for(snapshot, event, create=False)
            if status is not None:
                status.mark_idle()

    def _pop_next(self, status: ResourceStatus, event: str, skip: SkipPredicate) -> DequeueResult:
        skipped = 0
        while status.queue:
            candidate = status.queue.pop(0)
            if not skip(candidate):
                return DequeueResult(next_entry=candidate, skipped=skipped)
            self.logger.info("Skipping self in %s queue for %s", event, candidate.site_url)
            skipped += 1
        return DequeueResult(next_entry=None, skipped=skipped)

    # ==================== ADMINISTRATION ====================

    def move_to_top(self, event: str, site_url: str) -> None:
        with self.transaction() as snapshot:
            queue = self._admin_queue(snapshot, event)
            index = self._find_movable(queue, event, site_url)
            queue.insert(0, queue.pop(index))
        self.logger.info("Admin moved %s to top for %s", event, site_url)

    def move_up(self, event: str, site_url: str) -> None:
        with self.transaction() as snapshot:
            queue = self._admin_queue(snapshot, event)
            index = self._find_movable(queue, event, site_url)
            queue[index - 1], queue[index] = queue[index], queue[index - 1]
        self.logger.info("Admin moved %s up for %s", event, site_url)

    def remove_entry(self, event: str, site_url: str) -> int:
        """Remove every queued entry for site_url; returns how many were removed."""
        with self.transaction() as snapshot:
            status = self._admin_status(snapshot, event)
            kept = [entry for entry in status.queue if not self.is_same_waiter(entry, site_url, event)]
            removed = len(status.queue) - len(kept)
            status.queue = kept
        self.logger.info("Admin removed %s from queue for %s", event, site_url)
        return removed

    def clear_queue(self, scope: str) -> int:
        with self.transaction() as snapshot:
            status = self._admin_status(snapshot, scope)
            cleared = len(status.queue)
            status.queue = []
        self.logger.info("Admin cleared %d job(s) from %s queue", cleared, scope)
        return cleared

    def clear_all_queues(self) -> int:
        with self.transaction() as snapshot:
            statuses = list(snapshot.events.values())
            if snapshot.global_status is not None:
                statuses.append(snapshot.global_status)
            cleared = 0
            for status in statuses:
                cleared += len(status.queue)
                status.queue = []
        self.logger.info("Admin cleared all queues")
        return cleared

    def reset(self) -> None:
        self.write(self.default_snapshot())
        self.logger.info("Admin reset status file")

    def _admin_status(self, snapshot: LedgerSnapshot, event: str) -> ResourceStatus:
        status = self.status_for(snapshot, event, create=False)
        if status is None:
            raise QueueNotFoundError("Queue not found", event=event)
        return status

    def _admin_queue(self, snapshot: LedgerSnapshot, event: str) -> list[WaiterEntry]:
        return self._admin_status(snapshot, event).queue

    def _find_movable(self, queue: list[WaiterEntry], event: str, site_url: str) -> int:
        for index, entry in enumerate(queue):
            if self.is_same_waiter(entry, site_url, event):
                if index == 0:
                    break
                return index
        raise QueueEntryNotFoundError("Job not found or already at top", event=event, site_url=site_url)


class PerEventLedger(Ledger):
    """One status and queue per event; waiters are unique per site URL."""

    mode = "per-event"

    def default_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(events={})

    def parse(self, data: dict[str, Any]) -> LedgerSnapshot:
        raw_events = data.get("events")
        if not isinstance(raw_events, dict):
            return self.default_snapshot()
        return LedgerSnapshot(events={str(name): EventStatus.from_dict(raw) for name, raw in raw_events.items()})

    def dump(self, snapshot: LedgerSnapshot) -> dict[str, Any]:
        return {"events": {name: status.to_dict() for name, status in snapshot.events.items()}}

    def status_for(self, snapshot: LedgerSnapshot, event: str, *, create: bool = True) -> EventStatus | None:
        status = snapshot.events.get(event)
        if status is None and create:
            status = EventStatus(timestamp=utcnow_iso())
            snapshot.events[event] = status
        return status

    def is_same_waiter(self, entry: WaiterEntry, site_url: str, event: str) -> bool:
        return entry.site_url == site_url

    def mark_waiting(self, status: ResourceStatus) -> None:
        # A running event keeps its owner; only an idle one is shown as waiting.
        if status.status == STATUS_IDLE:
            status.status = STATUS_WAITING


class GlobalLedger(Ledger):
    """One status and one queue for every event; waiters are unique per (site URL, event)."""

    mode = "global"

    def default_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(global_status=GlobalStatus(timestamp=utcnow_iso()))

    def parse(self, data: dict[str, Any]) -> LedgerSnapshot:
        if "global" not in data:
            return self.default_snapshot()
        return LedgerSnapshot(global_status=GlobalStatus.from_dict(data.get("global")))

    def dump(self, snapshot: LedgerSnapshot) -> dict[str, Any]:
        status = snapshot.global_status or GlobalStatus(timestamp=utcnow_iso())
        return {"global": status.to_dict()}

    def status_for(self, snapshot: LedgerSnapshot, event: str, *, create: bool = True) -> GlobalStatus | None:
        if snapshot.global_status is None:
            snapshot.global_status = GlobalStatus(timestamp=utcnow_iso())
        return snapshot.global_status

    def is_same_waiter(self, entry: WaiterEntry, site_url: str, event: str) -> bool:
        return entry.site_url == site_url and entry.event == event

    def clear_queue(self, scope: str) -> int:
        if scope != GLOBAL_QUEUE_SCOPE:
            raise AdminOperationError("Invalid event name for global mode", event=scope)
        return super().clear_queue(scope)


def create_ledger(
    path: Path,
    *,
    per_event_locking: bool,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> Ledger:
    """Select the ledger variant once, at startup."""
    if per_event_locking:
        return PerEventLedger(path, logger=logger)
    return GlobalLedger(path, logger=logger)
