"""Core module - Foundation components with no dependencies on the rest of the package.

This module provides the basic building blocks used throughout the application:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
- Shared JSON storage and file locks
"""

from cronlock.core.version import __version__

from cronlock.core.exceptions import (
    AdminOperationError,
    ConfigurationError,
    CronLockError,
    QueueEntryNotFoundError,
    QueueNotFoundError,
    WakeChannelError,
)

from cronlock.core.config import (
    BackoffConfig,
    CronLockConfig,
    LockConfig,
    LogConfig,
    SiteConfig,
    WakeConfig,
)

__all__ = [
    "__version__",
    "AdminOperationError",
    "ConfigurationError",
    "CronLockError",
    "QueueEntryNotFoundError",
    "QueueNotFoundError",
    "WakeChannelError",
    "BackoffConfig",
    "CronLockConfig",
    "LockConfig",
    "LogConfig",
    "SiteConfig",
    "WakeConfig",
]
