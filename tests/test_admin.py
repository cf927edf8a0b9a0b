"""Tests for the administrative views and maintenance operations."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cronlock.admin import LOCK_COLUMNS, QUEUE_COLUMNS, AdminOperations
from cronlock.core.exceptions import QueueEntryNotFoundError
from cronlock.core.locks import LockRecord, LockStore
from cronlock.ledger import Owner, WaiterEntry, create_ledger
from cronlock.scheduling import FileRetryScheduler

NOW = 1_700_000_000
ALPHA = Owner(label="alpha (https://alpha.example.com)", url="https://alpha.example.com")


def _entry(name: str, event: str = "nightly") -> WaiterEntry:
    return WaiterEntry(site=name, site_url=f"https://{name}.example.com", event=event, queued_at="2024-01-01T00:00:00+00:00")


@pytest.fixture
def build_admin(lock_dir: Path, ledger_path: Path, schedule_path: Path):
    def factory(per_event_locking: bool = True) -> AdminOperations:
        return AdminOperations(
            lock_store=LockStore(lock_dir, backend_name="fcntl"),
            ledger=create_ledger(ledger_path, per_event_locking=per_event_locking),
            scheduler=FileRetryScheduler(schedule_path, ALPHA.url),
        )

    return factory


@pytest.fixture
def populated(build_admin, lock_dir: Path, schedule_path: Path) -> AdminOperations:
    admin = build_admin()
    admin.ledger.set_running("nightly", ALPHA)
    admin.ledger.enqueue("nightly", _entry("beta"))
    admin.ledger.enqueue("nightly", _entry("gamma"))
    admin.ledger.enqueue("hourly", _entry("beta", "hourly"))
    record = LockRecord(site=ALPHA.label, site_url=ALPHA.url, event="nightly", timestamp=NOW - 42, pid=99)
    (lock_dir / "cron-lock-nightly.lock").write_text(json.dumps(record.to_dict()))
    FileRetryScheduler(schedule_path, "https://beta.example.com").schedule("nightly", NOW + 10)
    return admin


def test_status_reports_ledger_locks_and_retries(populated: AdminOperations) -> None:
    status = populated.status(now=NOW)

    assert status["mode"] == "per-event"
    assert status["status"]["events"]["nightly"]["status"] == "running"
    assert status["locks"] == [
        {
            "file": "cron-lock-nightly.lock",
            "site": ALPHA.label,
            "site_url": ALPHA.url,
            "event": "nightly",
            "timestamp": NOW - 42,
            "pid": 99,
            "age_seconds": 42,
        }
    ]
    assert status["retries"] == {"https://beta.example.com": {"nightly": NOW + 10}}


def test_status_of_empty_system(build_admin) -> None:
    status = build_admin().status(now=NOW)

    assert status["status"] == {"events": {}}
    assert status["locks"] == []
    assert status["retries"] == {}


def test_resource_frame(populated: AdminOperations) -> None:
    frame = populated.resource_frame()

    assert list(frame["scope"]) == ["hourly", "nightly"]
    nightly = frame[frame["scope"] == "nightly"].iloc[0]
    assert nightly["status"] == "running"
    assert nightly["owner_url"] == ALPHA.url
    assert nightly["waiting"] == 2


def test_queue_frame_lists_positions(populated: AdminOperations) -> None:
    frame = populated.queue_frame()

    assert list(frame.columns) == QUEUE_COLUMNS
    nightly = frame[frame["scope"] == "nightly"]
    assert list(nightly["site"]) == ["beta", "gamma"]
    assert list(nightly["position"]) == [1, 2]


def test_empty_frames_keep_their_columns(build_admin) -> None:
    admin = build_admin()

    assert list(admin.queue_frame().columns) == QUEUE_COLUMNS
    assert list(admin.lock_frame(now=NOW).columns) == LOCK_COLUMNS
    assert admin.retry_frame(now=NOW).empty


def test_lock_and_retry_frames(populated: AdminOperations) -> None:
    locks = populated.lock_frame(now=NOW)
    retries = populated.retry_frame(now=NOW)

    assert locks.iloc[0]["age_seconds"] == 42
    assert retries.iloc[0]["due_in_seconds"] == 10


def test_global_mode_frames_use_global_scope(build_admin) -> None:
    admin = build_admin(per_event_locking=False)
    admin.ledger.set_running("nightly", ALPHA)
    admin.ledger.enqueue("hourly", _entry("beta", "hourly"))

    resources = admin.resource_frame()
    assert list(resources["scope"]) == ["__global__"]
    assert resources.iloc[0]["event"] == "nightly"
    assert list(admin.queue_frame()["event"]) == ["hourly"]


def test_queue_maintenance_delegates_to_ledger(populated: AdminOperations) -> None:
    populated.move_to_top("nightly", "https://gamma.example.com")
    assert list(populated.queue_frame().query("scope == 'nightly'")["site"]) == ["gamma", "beta"]

    populated.move_up("nightly", "https://beta.example.com")
    assert list(populated.queue_frame().query("scope == 'nightly'")["site"]) == ["beta", "gamma"]

    with pytest.raises(QueueEntryNotFoundError):
        populated.move_up("nightly", "https://beta.example.com")

    assert populated.remove_from_queue("nightly", "https://gamma.example.com") == 1
    assert populated.clear_queue("nightly") == 1
    assert populated.clear_all_queues() == 1
    assert populated.queue_frame().empty


def test_clear_all_locks_and_reset(populated: AdminOperations, lock_dir: Path, ledger_path: Path) -> None:
    assert populated.clear_all_locks() == 1
    assert list(lock_dir.glob("*.lock")) == []

    populated.reset()
    assert json.loads(ledger_path.read_text()) == {"events": {}}
