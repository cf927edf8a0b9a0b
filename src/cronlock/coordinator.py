"""Coordinator: the run-or-wait decision for one scheduled event.

Per invocation the coordinator either wins the lock for the event, runs the
job and hands the resource to the next waiter, or records the caller as a
waiter and schedules a local retry. The lock key is the event name in
per-event mode and ``"global"`` in global mode.
"""

from __future__ import annotations

import atexit
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from cronlock.core.config import CronLockConfig
from cronlock.core.constants import (
    FALLBACK_RETRY_DELAY,
    GLOBAL_LOCK_KEY,
    IMMEDIATE_WAKE_DELAY,
    NEXT_WAKE_DELAY,
)
from cronlock.core.locks import LockStore, build_lock_record
from cronlock.core.logging import with_log_context
from cronlock.dispatch import WakeDispatcher
from cronlock.jobs import JobRegistry
from cronlock.ledger import Ledger, Owner, WaiterEntry, create_ledger
from cronlock.policy import BackoffPolicy
from cronlock.scheduling import FileRetryScheduler, RetryScheduler


class Outcome(Enum):
    """Result of handling one event invocation."""

    RAN = "ran"
    FAILED = "failed"
    QUEUED = "queued"
    SKIPPED = "skipped"


FinalizerKey = tuple[str, str]


@dataclass
class _Finalizer:
    event: str
    resource_id: str
    done: bool = False


class Coordinator:
    """Run-or-wait coordination for the events of one site."""

    def __init__(
        self,
        *,
        owner: Owner,
        lock_store: LockStore,
        ledger: Ledger,
        policy: BackoffPolicy,
        dispatcher: WakeDispatcher,
        scheduler: RetryScheduler,
        jobs: JobRegistry,
        per_event_locking: bool = True,
        max_lock_age: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.owner = owner
        self.lock_store = lock_store
        self.ledger = ledger
        self.policy = policy
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.jobs = jobs
        self.per_event_locking = per_event_locking
        self.max_lock_age = max_lock_age
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

        self._active: set[str] = set()
        self._finalizers: dict[FinalizerKey, _Finalizer] = {}
        self._atexit_registered = False

    @classmethod
    def from_config(
        cls,
        config: CronLockConfig,
        *,
        jobs: JobRegistry | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> Coordinator:
        """Wire every collaborator from configuration."""
        log = logger or logging.getLogger(__name__)
        lock_store = LockStore(config.lock.lock_dir, backend_name=config.lock.lock_backend, logger=log)
        lock_store.ensure_lock_dir()
        return cls(
            owner=Owner(label=config.site.label, url=config.site.url),
            lock_store=lock_store,
            ledger=create_ledger(config.lock.ledger_path, per_event_locking=config.lock.per_event_locking, logger=log),
            policy=BackoffPolicy.from_config(config.backoff),
            dispatcher=WakeDispatcher.from_config(config.wake, logger=log),
            scheduler=FileRetryScheduler(config.lock.schedule_path, config.site.url, logger=log),
            jobs=jobs or JobRegistry.from_commands(config.locked_events, logger=log),
            per_event_locking=config.lock.per_event_locking,
            max_lock_age=config.lock.max_lock_age,
            logger=log,
        )

    def resource_id(self, event: str) -> str:
        return event if self.per_event_locking else GLOBAL_LOCK_KEY

    def finalizer_key(self, event: str) -> FinalizerKey:
        resource_id = self.resource_id(event)
        return str(self.lock_store.lock_path(resource_id)), resource_id

    # ==================== RUN OR WAIT ====================

    def handle(self, event: str) -> Outcome:
        """Run event if this site wins the lock, otherwise queue for it."""
        resource_id = self.resource_id(event)
        log = with_log_context(self.logger, event=event)

        if resource_id in self._active:
            log.info("Skipping %s - already handling in current invocation", event)
            return Outcome.SKIPPED

        self.lock_store.sweep_stale(self.max_lock_age, now=self._clock())

        if not self._acquire(event, resource_id, log):
            self._wait(event, resource_id, log)
            return Outcome.QUEUED

        self._active.add(resource_id)
        log.info("Lock acquired by %s for %s", self.owner.label, event)
        self.scheduler.clear(event)
        self.ledger.set_running(event, self.owner)
        key = self._register_finalizer(event, resource_id)

        try:
            self.jobs.run(event)
        except Exception:
            log.exception("Job %s failed", event)
            return Outcome.FAILED
        finally:
            self.finalize(key)
        return Outcome.RAN

    def run_due(self) -> dict[str, Outcome]:
        """Handle every retry of this site that has come due."""
        outcomes: dict[str, Outcome] = {}
        due = self.scheduler.pop_due(self._clock())
        if not due:
            self.logger.debug("No scheduled retries due")
        for event in due:
            outcomes[event] = self.handle(event)
        return outcomes

    def _acquire(self, event: str, resource_id: str, log: logging.Logger | logging.LoggerAdapter) -> bool:
        record = build_lock_record(self.owner.label, self.owner.url, event, now=self._clock())
        if self.lock_store.acquire(resource_id, record):
            return True

        stale, age = self.lock_store.is_stale(resource_id, self.max_lock_age, now=self._clock())
        if not stale:
            return False

        log.warning("Stale lock for %s (%ds old) detected - removing", event, age)
        self.lock_store.reclaim(resource_id)
        record = build_lock_record(self.owner.label, self.owner.url, event, now=self._clock())
        if self.lock_store.acquire(resource_id, record):
            return True
        log.info("%s could not acquire lock for %s after stale removal", self.owner.label, event)
        return False

    def _wait(self, event: str, resource_id: str, log: logging.Logger | logging.LoggerAdapter) -> None:
        entry = WaiterEntry.for_owner(self.owner, event)
        result = self.ledger.enqueue(event, entry)
        delay = self.policy.compute_delay(result.position)
        self.scheduler.schedule_in(event, delay, now=self._clock())

        holder = self.lock_store.read_record(resource_id)
        holder_label = holder.site if holder and holder.site else "unknown"
        holder_age = holder.age(self._clock()) if holder else 0
        if result.already_present:
            log.info(
                "%s already queued for %s at position %d; retry in %ds",
                self.owner.label,
                event,
                result.position + 1,
                delay,
            )
        else:
            log.info(
                "%s waiting for %s - lock held by %s (%ds old); retry in %ds (queue position %d)",
                self.owner.label,
                event,
                holder_label,
                holder_age,
                delay,
                result.position + 1,
            )

        if self.policy.should_trigger_immediately(result.was_idle, result.was_empty_queue, result.position):
            log.info("%s was idle with an empty queue - triggering %s immediately", event, entry.site)
            self.dispatcher.notify(entry, IMMEDIATE_WAKE_DELAY)

    # ==================== RELEASE ====================

    def _register_finalizer(self, event: str, resource_id: str) -> FinalizerKey:
        key = self.finalizer_key(event)
        self._finalizers[key] = _Finalizer(event=event, resource_id=resource_id)
        if not self._atexit_registered:
            atexit.register(self.finalize_pending)
            self._atexit_registered = True
        return key

    def finalize(self, key: FinalizerKey) -> bool:
        """Release the lock behind key and wake the next waiter, at most once.

        Returns False when key was unknown or already finalized.
        """
        finalizer = self._finalizers.get(key)
        if finalizer is None or finalizer.done:
            return False
        finalizer.done = True

        event = finalizer.event
        log = with_log_context(self.logger, event=event)
        try:
            result = self.ledger.release_next(event, skip=lambda entry: self._is_self(entry, event))
        finally:
            self.lock_store.release(finalizer.resource_id)
            self._active.discard(finalizer.resource_id)
        log.info("Lock released for %s", event)

        if result.next_entry is not None:
            next_entry = result.next_entry
            if not self.dispatcher.notify(next_entry, NEXT_WAKE_DELAY):
                log.warning("Wake failed for %s (%s) - scheduling a retry", next_entry.site, next_entry.event)
                self.scheduler.schedule_in(
                    next_entry.event, FALLBACK_RETRY_DELAY, site_url=next_entry.site_url, now=self._clock()
                )
        elif result.skipped:
            log.info("Only own entries were queued for %s - scheduling a retry", event)
            self.scheduler.schedule_in(event, FALLBACK_RETRY_DELAY, now=self._clock())
        return True

    def finalize_pending(self) -> int:
        """Finalize every registered lock not yet released, then drop any handle still open (exit path)."""
        count = 0
        for key, finalizer in list(self._finalizers.items()):
            if finalizer.done:
                continue
            with_log_context(self.logger, event=finalizer.event).warning("Releasing %s on exit", finalizer.event)
            if self.finalize(key):
                count += 1
        self.lock_store.release_all()
        return count

    def _is_self(self, entry: WaiterEntry, event: str) -> bool:
        return self.ledger.is_same_waiter(entry, self.owner.url, event)
