"""Locking subsystem for cross-process coordination.

This package centralizes lock acquisition/release behavior behind
backend abstractions so the coordinator can use a stable API.
"""

from cronlock.core.locks.backends import (
    FcntlFileLockBackend,
    LeaseFileLockBackend,
    LockRecord,
    read_lock_record,
)
from cronlock.core.locks.store import LockStore, build_lock_record, create_lock_backend, sanitize_resource_id

__all__ = [
    "FcntlFileLockBackend",
    "LeaseFileLockBackend",
    "LockRecord",
    "LockStore",
    "build_lock_record",
    "create_lock_backend",
    "read_lock_record",
    "sanitize_resource_id",
]
