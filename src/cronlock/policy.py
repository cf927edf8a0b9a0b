"""Fairness and backoff policy for waiting sites."""

from __future__ import annotations

from dataclasses import dataclass

from cronlock.core.config import BackoffConfig
from cronlock.core.constants import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY, MIN_RETRY_DELAY


@dataclass(frozen=True)
class BackoffPolicy:
    """Linear backoff by queue position, clamped to [1, max_delay].

    Every waiter gets a distinct retry time proportional to its place in
    line, so position 0 retries almost immediately and long queues never
    wait longer than ``max_delay``.
    """

    base_delay: int = DEFAULT_BASE_DELAY
    max_delay: int = DEFAULT_MAX_DELAY

    @classmethod
    def from_config(cls, config: BackoffConfig) -> BackoffPolicy:
        return cls(base_delay=config.base_delay, max_delay=config.max_delay)

    def compute_delay(self, position: int) -> int:
        return min(self.max_delay, max(MIN_RETRY_DELAY, self.base_delay * (position + 1)))

    @staticmethod
    def should_trigger_immediately(was_idle: bool, was_empty_queue: bool, position: int) -> bool:
        """True when the holder released between our failed acquire and our enqueue."""
        return was_idle and was_empty_queue and position == 0
