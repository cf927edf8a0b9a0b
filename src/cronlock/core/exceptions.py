"""Custom exceptions for cronlock.

Coordination paths (lock store, ledger, dispatcher) degrade to safe defaults
instead of raising. These exceptions surface only from configuration loading
and administrative queue operations, where the caller needs a clear message.
"""


class CronLockError(Exception):
    """Base exception for all cronlock errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(CronLockError):
    """Exception raised for configuration-related errors.

    Examples:
        - Invalid JSON in config file
        - Unknown lock backend or wake channel
        - Backoff delays that are not positive
    """

    def __init__(
        self, message: str, config_file: str | None = None, field: str | None = None, details: str | None = None
    ):
        self.config_file = config_file
        self.field = field
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.field:
            parts.append(f"field '{self.field}'")
        if self.config_file:
            parts.append(f"in {self.config_file}")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)


class AdminOperationError(CronLockError):
    """Base exception for administrative queue operations that cannot be applied."""

    def __init__(self, message: str, event: str | None = None, site_url: str | None = None, details: str | None = None):
        self.event = event
        self.site_url = site_url
        super().__init__(message, details)


class QueueNotFoundError(AdminOperationError):
    """Raised when the ledger has no queue for the requested event or scope."""

    pass


class QueueEntryNotFoundError(AdminOperationError):
    """Raised when a waiter is not queued, or cannot move further up."""

    pass


class WakeChannelError(CronLockError):
    """Raised by a wake channel that could not reach the waiting site.

    Attributes:
        channel: Name of the channel that failed ("command", "http")
        site_url: URL of the site that was being woken
    """

    def __init__(self, message: str, channel: str, site_url: str | None = None, details: str | None = None):
        self.channel = channel
        self.site_url = site_url
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [f"[{self.channel}] {self.message}"]
        if self.site_url:
            parts.append(self.site_url)
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)
