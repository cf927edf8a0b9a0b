"""Lock store: one non-blocking exclusive file lock per contended resource."""

from __future__ import annotations

import contextlib
import logging
import os
import re
import threading
import time
from pathlib import Path

from cronlock.core.constants import (
    ENV_LOCK_BACKEND,
    LOCK_DIR_MODE,
    LOCK_FILE_MODE,
    LOCK_FILE_PREFIX,
    LOCK_FILE_SUFFIX,
)
from cronlock.core.locks.backends import (
    AcquireStatus,
    FcntlFileLockBackend,
    LeaseFileLockBackend,
    LockBackend,
    LockHandle,
    LockRecord,
    read_lock_record,
)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def sanitize_resource_id(resource_id: str) -> str:
    """Make a resource id safe for use inside a file name."""
    return _UNSAFE_FILENAME_CHARS.sub("_", resource_id) or "_"


def create_lock_backend(
    backend_name: str | None = None,
    *,
    logger: logging.Logger | None = None,
) -> LockBackend:
    """Create lock backend from explicit value or environment override."""
    log = logger or logging.getLogger(__name__)
    requested = (backend_name or os.environ.get(ENV_LOCK_BACKEND, "auto")).strip().lower()

    if requested == "auto":
        if FcntlFileLockBackend.is_supported():
            return FcntlFileLockBackend()
        log.warning("fcntl locks unavailable; using lease lock backend")
        return LeaseFileLockBackend()

    if requested == "fcntl":
        if FcntlFileLockBackend.is_supported():
            return FcntlFileLockBackend()
        log.warning("Requested fcntl backend is unavailable; falling back to lease backend")
        return LeaseFileLockBackend()

    if requested == "lease":
        return LeaseFileLockBackend()

    log.warning("Unknown lock backend '%s'; falling back to auto selection", requested)
    return create_lock_backend("auto", logger=log)


class LockStore:
    """Non-blocking lock store over a shared lock directory.

    Open handles are kept per resource for the lifetime of this instance and
    are the only proof of ownership. No operation here raises on I/O failure:
    acquisition reports ``False`` and staleness reports "unknown" instead.
    """

    def __init__(
        self,
        lock_dir: Path,
        *,
        backend_name: str | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.lock_dir = Path(lock_dir)
        self.logger = logger or logging.getLogger(__name__)
        self.backend = create_lock_backend(backend_name, logger=self.logger)
        self._handles: dict[str, LockHandle] = {}
        self._state_lock = threading.RLock()

    def lock_path(self, resource_id: str) -> Path:
        return self.lock_dir / f"{LOCK_FILE_PREFIX}{sanitize_resource_id(resource_id)}{LOCK_FILE_SUFFIX}"

    def ensure_lock_dir(self) -> bool:
        """Create the lock directory if missing; False when it cannot be created."""
        if self.lock_dir.is_dir():
            return True
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error("Cannot create lock directory %s: %s", self.lock_dir, e)
            return False
        with contextlib.suppress(OSError):
            os.chmod(self.lock_dir, LOCK_DIR_MODE)
        return True

    def holds(self, resource_id: str) -> bool:
        with self._state_lock:
            return resource_id in self._handles

    def acquire(self, resource_id: str, record: LockRecord) -> bool:
        """Attempt lock acquisition without blocking."""
        with self._state_lock:
            if resource_id in self._handles:
                return True

        if not self.ensure_lock_dir():
            return False

        lock_path = self.lock_path(resource_id)
        result = self.backend.acquire_result(lock_path)
        if result.status == AcquireStatus.BACKEND_UNAVAILABLE and isinstance(self.backend, FcntlFileLockBackend):
            self.logger.warning("fcntl backend unavailable for '%s'; falling back to lease backend", lock_path)
            self.backend = LeaseFileLockBackend()
            result = self.backend.acquire_result(lock_path)

        if result.status in (AcquireStatus.ERROR, AcquireStatus.BACKEND_UNAVAILABLE):
            self.logger.error("Cannot lock %s: %s", lock_path, result.error)
            return False

        handle = result.handle
        if result.status != AcquireStatus.ACQUIRED or handle is None:
            return False

        try:
            self.backend.write_record(handle, record)
        except OSError as e:
            self.logger.error("Cannot write lock record to %s: %s", lock_path, e)
            self.backend.release(handle)
            return False

        with contextlib.suppress(OSError):
            os.chmod(lock_path, LOCK_FILE_MODE)

        with self._state_lock:
            self._handles[resource_id] = handle
        return True

    def release(self, resource_id: str) -> None:
        """Release lock if held by this process; otherwise a no-op."""
        with self._state_lock:
            handle = self._handles.pop(resource_id, None)
        if handle is None:
            return
        self.backend.release(handle)

    def release_all(self) -> None:
        with self._state_lock:
            resource_ids = list(self._handles)
        for resource_id in resource_ids:
            self.release(resource_id)

    def read_record(self, resource_id: str) -> LockRecord | None:
        """Read the current holder's record without locking (advisory only)."""
        return read_lock_record(self.lock_path(resource_id))

    def is_stale(self, resource_id: str, max_age: int, now: float | None = None) -> tuple[bool, int]:
        """Return (stale, age_seconds).

        An unreadable record is aged by the file modification time instead. A
        missing file is never stale.
        """
        age = self._lock_age(self.lock_path(resource_id), now)
        if age is None:
            return False, 0
        return age >= max_age, age

    def reclaim(self, resource_id: str) -> bool:
        """Delete a lock file presumed abandoned. An already-absent file is fine."""
        return self._unlink(self.lock_path(resource_id))

    def sweep_stale(self, max_age: int, now: float | None = None) -> int:
        """Reclaim every lock in the directory that is at least max_age old."""
        count = 0
        for lock_path in self._lock_files():
            age = self._lock_age(lock_path, now)
            if age is None or age < max_age:
                continue
            if self._unlink(lock_path):
                count += 1

        if count > 0:
            self.logger.info("Cleared %d stale lock(s) proactively", count)
        return count

    def clear_all(self) -> int:
        """Delete every lock file, held or not."""
        return sum(1 for lock_path in self._lock_files() if self._unlink(lock_path))

    def list_locks(self) -> list[tuple[str, LockRecord]]:
        """Return (file name, record) for every readable lock file."""
        locks = []
        for lock_path in self._lock_files():
            record = read_lock_record(lock_path)
            if record is not None:
                locks.append((lock_path.name, record))
        return locks

    def _lock_files(self) -> list[Path]:
        try:
            return sorted(self.lock_dir.glob(f"*{LOCK_FILE_SUFFIX}"))
        except OSError:
            return []

    def _lock_age(self, lock_path: Path, now: float | None) -> int | None:
        record = read_lock_record(lock_path)
        if record is not None:
            return record.age(now)
        try:
            modified = lock_path.stat().st_mtime
        except OSError:
            return None
        current = time.time() if now is None else now
        return max(0, int(current - modified))

    def _unlink(self, lock_path: Path) -> bool:
        try:
            lock_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            self.logger.warning("Cannot remove lock file %s: %s", lock_path, e)
            return False


def build_lock_record(site: str, site_url: str, event: str, *, now: float | None = None) -> LockRecord:
    return LockRecord(
        site=site,
        site_url=site_url,
        event=event,
        timestamp=int(time.time() if now is None else now),
        pid=os.getpid(),
    )
