"""Tests for the backoff policy."""

import pytest

from cronlock.core.config import BackoffConfig
from cronlock.policy import BackoffPolicy


@pytest.mark.parametrize(
    ("position", "expected"),
    [(0, 5), (1, 10), (2, 15), (5, 30), (6, 35), (7, 35), (50, 35)],
)
def test_default_delays_grow_linearly_and_cap(position: int, expected: int) -> None:
    assert BackoffPolicy().compute_delay(position) == expected


def test_delay_never_drops_below_one_second() -> None:
    assert BackoffPolicy(base_delay=0, max_delay=10).compute_delay(0) == 1


def test_delays_are_monotonic_in_position() -> None:
    policy = BackoffPolicy(base_delay=3, max_delay=20)
    delays = [policy.compute_delay(p) for p in range(20)]
    assert delays == sorted(delays)
    assert max(delays) == 20


def test_from_config() -> None:
    policy = BackoffPolicy.from_config(BackoffConfig(base_delay=2, max_delay=7))
    assert (policy.base_delay, policy.max_delay) == (2, 7)
    assert policy.compute_delay(10) == 7


@pytest.mark.parametrize(
    ("was_idle", "was_empty_queue", "position", "expected"),
    [
        (True, True, 0, True),
        (False, True, 0, False),
        (True, False, 0, False),
        (True, True, 1, False),
    ],
)
def test_should_trigger_immediately(was_idle: bool, was_empty_queue: bool, position: int, expected: bool) -> None:
    assert BackoffPolicy.should_trigger_immediately(was_idle, was_empty_queue, position) is expected
