"""
cronlock - Global cron lock for sites sharing a filesystem

Coordinates scheduled jobs across many sites so that only one site runs a
given event (or, in global mode, any event) at a time, queueing the others
and waking them in order once the lock is released.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cronlock.core.lazy import make_getattr
from cronlock.core.version import __version__

__all__ = [
    "AdminOperations",
    "Coordinator",
    "CronLockConfig",
    "JobRegistry",
    "Outcome",
    "__version__",
    "main",
]

if TYPE_CHECKING:
    from cronlock.admin import AdminOperations
    from cronlock.cli.main import main
    from cronlock.coordinator import Coordinator, Outcome
    from cronlock.core.config import CronLockConfig
    from cronlock.jobs import JobRegistry

__getattr__ = make_getattr(
    __name__,
    {
        "AdminOperations": "cronlock.admin",
        "Coordinator": "cronlock.coordinator",
        "CronLockConfig": "cronlock.core.config",
        "JobRegistry": "cronlock.jobs",
        "Outcome": "cronlock.coordinator",
        "main": "cronlock.cli.main",
    },
)
