"""Pytest configuration and fixtures for cronlock tests"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

import pytest

from cronlock.coordinator import Coordinator
from cronlock.core.constants import SCHEDULE_FILE_NAME, STATUS_FILE_NAME
from cronlock.core.locks import LockStore
from cronlock.jobs import JobRegistry
from cronlock.ledger import Owner, create_ledger
from cronlock.ledger.models import WaiterEntry
from cronlock.policy import BackoffPolicy
from cronlock.scheduling import FileRetryScheduler

FIXED_NOW = 1_700_000_000


class RecordingDispatcher:
    """Stand-in wake dispatcher that records every notify call."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: list[tuple[WaiterEntry, int]] = []

    def notify(self, entry: WaiterEntry, delay: int) -> bool:
        self.calls.append((entry, delay))
        return self.result


@pytest.fixture
def lock_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "locks"
    directory.mkdir()
    return directory


@pytest.fixture
def ledger_path(lock_dir: Path) -> Path:
    return lock_dir / STATUS_FILE_NAME


@pytest.fixture
def schedule_path(lock_dir: Path) -> Path:
    return lock_dir / SCHEDULE_FILE_NAME


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("cronlock.tests")


@pytest.fixture
def make_coordinator(lock_dir: Path, ledger_path: Path, schedule_path: Path, test_logger: logging.Logger):
    """Build a coordinator for one site, sharing the lock directory with every other site in the test."""

    def factory(
        site_url: str,
        *,
        jobs: dict[str, Callable[[str], None]] | None = None,
        wake_succeeds: bool = True,
        per_event_locking: bool = True,
        max_lock_age: int = 300,
        now: int = FIXED_NOW,
        backend: str = "fcntl",
    ) -> Coordinator:
        name = site_url.split("//", 1)[-1].split(".", 1)[0]
        return Coordinator(
            owner=Owner(label=f"{name} ({site_url})", url=site_url),
            lock_store=LockStore(lock_dir, backend_name=backend, logger=test_logger),
            ledger=create_ledger(ledger_path, per_event_locking=per_event_locking, logger=test_logger),
            policy=BackoffPolicy(),
            dispatcher=RecordingDispatcher(result=wake_succeeds),
            scheduler=FileRetryScheduler(schedule_path, site_url, logger=test_logger),
            jobs=JobRegistry(jobs or {}, logger=test_logger),
            per_event_locking=per_event_locking,
            max_lock_age=max_lock_age,
            logger=test_logger,
            clock=lambda: now,
        )

    return factory


@pytest.fixture
def read_json():
    def reader(path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    return reader


@pytest.fixture
def config_file(tmp_path: Path, lock_dir: Path) -> Path:
    """Minimal config file pointing every shared file into the test lock directory"""
    path = tmp_path / "cronlock.json"
    path.write_text(
        json.dumps(
            {
                "site": {"name": "alpha", "url": "https://alpha.example.com"},
                "lock": {"lock_dir": str(lock_dir), "max_lock_age": 300},
                "log": {"file": str(lock_dir / "cron.log")},
                "locked_events": {"nightly": ["true"], "broken": ["false"]},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def restore_root_logging():
    """Undo handler changes made by setup_logging."""
    handlers = logging.root.handlers[:]
    level = logging.root.level
    yield
    for handler in logging.root.handlers[:]:
        if handler not in handlers:
            handler.close()
            logging.root.removeHandler(handler)
    for handler in handlers:
        if handler not in logging.root.handlers:
            logging.root.addHandler(handler)
    logging.root.setLevel(level)
