"""Tests for the file-backed retry scheduler."""

from __future__ import annotations

from pathlib import Path

from cronlock.scheduling import FileRetryScheduler

ALPHA = "https://alpha.example.com"
BETA = "https://beta.example.com"


def test_schedule_keeps_earliest_due_time(schedule_path: Path) -> None:
    scheduler = FileRetryScheduler(schedule_path, ALPHA)

    scheduler.schedule("nightly", 1_000)
    scheduler.schedule("nightly", 1_030)
    assert scheduler.pending() == {"nightly": 1_000}

    scheduler.schedule("nightly", 990)
    assert scheduler.pending() == {"nightly": 990}


def test_schedule_in_returns_due_time(schedule_path: Path) -> None:
    scheduler = FileRetryScheduler(schedule_path, ALPHA)

    assert scheduler.schedule_in("nightly", 5, now=1_000) == 1_005
    assert scheduler.pending() == {"nightly": 1_005}


def test_pop_due_returns_only_due_events_earliest_first(schedule_path: Path) -> None:
    scheduler = FileRetryScheduler(schedule_path, ALPHA)
    scheduler.schedule("later", 1_100)
    scheduler.schedule("second", 1_050)
    scheduler.schedule("first", 1_000)

    assert scheduler.pop_due(now=1_050) == ["first", "second"]
    assert scheduler.pending() == {"later": 1_100}
    assert scheduler.pop_due(now=1_050) == []


def test_sites_only_pop_their_own_retries(schedule_path: Path) -> None:
    alpha = FileRetryScheduler(schedule_path, ALPHA)
    beta = FileRetryScheduler(schedule_path, BETA)
    alpha.schedule("nightly", 1_000)
    alpha.schedule("nightly", 1_000, site_url=BETA)

    assert beta.pop_due(now=2_000) == ["nightly"]
    assert alpha.pending_all() == {ALPHA: {"nightly": 1_000}}
    assert alpha.pop_due(now=2_000) == ["nightly"]
    assert alpha.pending_all() == {}


def test_clear(schedule_path: Path) -> None:
    scheduler = FileRetryScheduler(schedule_path, ALPHA)
    scheduler.schedule("nightly", 1_000)

    assert scheduler.clear("nightly") is True
    assert scheduler.clear("nightly") is False
    assert scheduler.pending() == {}


def test_corrupt_schedule_file_is_replaced(schedule_path: Path) -> None:
    schedule_path.write_text("[1, 2", encoding="utf-8")
    scheduler = FileRetryScheduler(schedule_path, ALPHA)

    scheduler.schedule("nightly", 1_000)

    assert scheduler.pending() == {"nightly": 1_000}
