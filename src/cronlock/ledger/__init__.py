"""Status ledger: durable per-resource status and waiter queues."""

from cronlock.ledger.models import (
    STATUS_IDLE,
    STATUS_RUNNING,
    STATUS_WAITING,
    EventStatus,
    GlobalStatus,
    LedgerSnapshot,
    Owner,
    WaiterEntry,
)
from cronlock.ledger.store import (
    DequeueResult,
    EnqueueResult,
    GlobalLedger,
    Ledger,
    PerEventLedger,
    create_ledger,
)

__all__ = [
    "STATUS_IDLE",
    "STATUS_RUNNING",
    "STATUS_WAITING",
    "DequeueResult",
    "EnqueueResult",
    "EventStatus",
    "GlobalLedger",
    "GlobalStatus",
    "Ledger",
    "LedgerSnapshot",
    "Owner",
    "PerEventLedger",
    "WaiterEntry",
    "create_ledger",
]
