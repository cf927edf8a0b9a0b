"""Lock backend implementations.

Design principles:
- Ownership is defined by backend lock state (OS lock or exclusive-create marker).
- The lock file doubles as the ownership record, rewritten on every acquisition.
- A handle only owns the file it opened; once the path has been reclaimed and
  recreated by another process, release must not touch the new file.
"""

from __future__ import annotations

import contextlib
import errno
import json
import os
import time
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from cronlock.core.constants import LOCK_FILE_MODE

try:
    import fcntl
except ImportError:  # pragma: no cover - exercised on non-POSIX only
    fcntl = None

_FLOCK_UNSUPPORTED_ERRNOS = {
    err_no
    for err_no in (
        getattr(errno, "ENOTSUP", None),
        getattr(errno, "EOPNOTSUPP", None),
        getattr(errno, "ENOSYS", None),
    )
    if err_no is not None
}


def _write_all(fd: int, payload: bytes) -> None:
    """Write complete payload to fd, handling short writes."""
    total_written = 0
    while total_written < len(payload):
        written = os.write(fd, payload[total_written:])
        if written <= 0:
            raise OSError("short write while persisting lock record")
        total_written += written


def _write_record_fd(fd: int, record: LockRecord) -> None:
    payload = json.dumps(record.to_dict()).encode("utf-8")
    os.lseek(fd, 0, os.SEEK_SET)
    os.ftruncate(fd, 0)
    _write_all(fd, payload)
    os.fsync(fd)


def _same_file(fd: int, lock_path: Path) -> bool:
    """Return True if fd still refers to the file currently at lock_path."""
    try:
        opened = os.fstat(fd)
        current = os.stat(lock_path)
    except OSError:
        return False
    return (opened.st_dev, opened.st_ino) == (current.st_dev, current.st_ino)


def _open_lock_file(lock_path: Path) -> tuple[int, bool]:
    """Open lock_path for locking, returning (fd, created_by_this_call)."""
    try:
        return os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_RDWR, LOCK_FILE_MODE), True
    except FileExistsError:
        return os.open(str(lock_path), os.O_CREAT | os.O_RDWR, LOCK_FILE_MODE), False


def read_lock_record(lock_path: Path) -> LockRecord | None:
    """Read a lock record without taking the lock. None if absent or unparseable."""
    try:
        with open(lock_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None

    if not isinstance(data, dict):
        return None
    return LockRecord.from_dict(data)


def _bootstrap_record() -> LockRecord:
    """Placeholder record for a freshly created lease marker, replaced once the owner writes its own."""
    return LockRecord(site="", site_url="", event="", timestamp=int(time.time()), pid=os.getpid())


class LockBackendUnavailableError(OSError):
    """Raised when a backend exists but is unusable for the target lock path."""


@dataclass
class LockRecord:
    """Ownership payload stored in a lock file while the lock is held."""

    site: str
    site_url: str
    event: str
    timestamp: int
    pid: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockRecord | None:
        try:
            return cls(
                site=str(data.get("site", "")),
                site_url=str(data.get("site_url", "")),
                event=str(data.get("event", "")),
                timestamp=int(data["timestamp"]),
                pid=int(data.get("pid", 0)),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def age(self, now: float | None = None) -> int:
        """Seconds since acquisition, by the coarse unix clock."""
        current = int(time.time() if now is None else now)
        return current - self.timestamp


class AcquireStatus(Enum):
    """Outcome of a single non-blocking acquisition attempt."""

    ACQUIRED = "acquired"
    CONTENDED = "contended"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    ERROR = "error"


@dataclass
class AcquireResult:
    status: AcquireStatus
    handle: LockHandle | None = None
    error: OSError | None = None


class LockHandle(Protocol):
    """Opaque backend-specific lock handle."""

    lock_path: Path
    fd: int
    closed: bool


class LockBackend(Protocol):
    """Backend abstraction for lock acquisition and record operations."""

    name: str

    def acquire_result(self, lock_path: Path) -> AcquireResult:
        """Try acquiring lock non-blocking."""

    def release(self, handle: LockHandle) -> None:
        """Release lock held by handle and remove its file."""

    def write_record(self, handle: LockHandle, record: LockRecord) -> None:
        """Persist the ownership record for the currently held lock."""


@dataclass
class _FcntlLockHandle:
    lock_path: Path
    fd: int
    closed: bool = False


class FcntlFileLockBackend:
    """POSIX advisory locking backend backed by `fcntl.flock`."""

    name = "fcntl"

    @staticmethod
    def is_supported() -> bool:
        return fcntl is not None

    def acquire_result(self, lock_path: Path) -> AcquireResult:
        try:
            fd, created = _open_lock_file(lock_path)
        except OSError as e:
            return AcquireResult(status=AcquireStatus.ERROR, error=e)

        try:
            assert fcntl is not None  # For type checkers.
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return AcquireResult(status=AcquireStatus.CONTENDED)
        except OSError as e:
            os.close(fd)
            if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                return AcquireResult(status=AcquireStatus.CONTENDED)
            if e.errno in _FLOCK_UNSUPPORTED_ERRNOS:
                # Leave no empty file behind to block the lease fallback.
                if created:
                    with contextlib.suppress(OSError):
                        lock_path.unlink()
                return AcquireResult(
                    status=AcquireStatus.BACKEND_UNAVAILABLE,
                    error=LockBackendUnavailableError(f"flock is unsupported for lock path '{lock_path}'"),
                )
            return AcquireResult(status=AcquireStatus.ERROR, error=e)

        # The previous owner may have unlinked the file between our open and flock.
        if not _same_file(fd, lock_path):
            with contextlib.suppress(OSError):
                fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
            return AcquireResult(status=AcquireStatus.CONTENDED)

        return AcquireResult(status=AcquireStatus.ACQUIRED, handle=_FcntlLockHandle(lock_path=lock_path, fd=fd))

    def release(self, handle: _FcntlLockHandle) -> None:
        if handle.closed:
            return
        try:
            # Unlink while still holding the lock so no waiter can lock an orphaned inode.
            if _same_file(handle.fd, handle.lock_path):
                with contextlib.suppress(FileNotFoundError):
                    handle.lock_path.unlink()
            assert fcntl is not None  # For type checkers.
            fcntl.flock(handle.fd, fcntl.LOCK_UN)
        except OSError:
            pass
        finally:
            with contextlib.suppress(OSError):
                os.close(handle.fd)
            handle.closed = True

    def write_record(self, handle: _FcntlLockHandle, record: LockRecord) -> None:
        _write_record_fd(handle.fd, record)


@dataclass
class _LeaseLockHandle:
    lock_path: Path
    fd: int
    closed: bool = False


class LeaseFileLockBackend:
    """Exclusive-create fallback backend for environments without `fcntl`.

    The lock file itself acts as lease marker. Unlike the fcntl backend the
    marker survives a crashed owner, so abandoned leases are only recovered
    through stale-lock reclamation.
    """

    name = "lease"

    def acquire_result(self, lock_path: Path) -> AcquireResult:
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_RDWR, LOCK_FILE_MODE)
        except FileExistsError:
            return AcquireResult(status=AcquireStatus.CONTENDED)
        except OSError as e:
            return AcquireResult(status=AcquireStatus.ERROR, error=e)

        # A lease marker is never left without a timestamp
        try:
            _write_record_fd(fd, _bootstrap_record())
        except OSError as e:
            with contextlib.suppress(OSError):
                os.close(fd)
            with contextlib.suppress(OSError):
                lock_path.unlink()
            return AcquireResult(status=AcquireStatus.ERROR, error=e)
        return AcquireResult(status=AcquireStatus.ACQUIRED, handle=_LeaseLockHandle(lock_path=lock_path, fd=fd))

    def release(self, handle: _LeaseLockHandle) -> None:
        if handle.closed:
            return
        try:
            if _same_file(handle.fd, handle.lock_path):
                with contextlib.suppress(OSError):
                    handle.lock_path.unlink()
        finally:
            with contextlib.suppress(OSError):
                os.close(handle.fd)
            handle.closed = True

    def write_record(self, handle: _LeaseLockHandle, record: LockRecord) -> None:
        if handle.closed:
            raise OSError("lock handle is closed")
        _write_record_fd(handle.fd, record)
