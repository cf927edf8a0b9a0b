"""Typed records stored in the status ledger.

The on-disk JSON uses the field names below. Parsing is tolerant: unknown
fields are ignored, missing ones fall back to their defaults, and malformed
queue entries are dropped rather than propagated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

STATUS_IDLE = "idle"
STATUS_RUNNING = "running"
STATUS_WAITING = "waiting"
EVENT_STATUSES = frozenset({STATUS_IDLE, STATUS_RUNNING, STATUS_WAITING})
GLOBAL_STATUSES = frozenset({STATUS_IDLE, STATUS_RUNNING})


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True)
class Owner:
    """Identity of a site: display label plus the URL used for matching."""

    label: str
    url: str


@dataclass
class WaiterEntry:
    """A site waiting for its turn to run an event."""

    site: str
    site_url: str
    event: str
    queued_at: str = field(default_factory=utcnow_iso)

    @classmethod
    def for_owner(cls, owner: Owner, event: str) -> WaiterEntry:
        return cls(site=owner.label, site_url=owner.url, event=event)

    def to_dict(self) -> dict[str, str]:
        return {
            "site": self.site,
            "site_url": self.site_url,
            "event": self.event,
            "queued_at": self.queued_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> WaiterEntry | None:
        if not isinstance(data, dict):
            return None
        return cls(
            site=str(data.get("site", "")),
            site_url=str(data.get("site_url", "")),
            event=str(data.get("event", "")),
            queued_at=str(data.get("queued_at", "")),
        )


def _parse_queue(raw: Any) -> list[WaiterEntry]:
    if not isinstance(raw, list):
        return []
    return [entry for entry in (WaiterEntry.from_dict(item) for item in raw) if entry is not None]


@dataclass
class EventStatus:
    """Status and waiter queue of one event (per-event mode)."""

    status: str = STATUS_IDLE
    site: str | None = None
    site_url: str | None = None
    timestamp: str = ""
    queue: list[WaiterEntry] = field(default_factory=list)

    @property
    def owner(self) -> Owner | None:
        if self.site_url is None:
            return None
        return Owner(label=self.site or "", url=self.site_url)

    def mark_running(self, owner: Owner, event: str) -> None:
        del event  # The event is the ledger key in per-event mode.
        self.status = STATUS_RUNNING
        self.site = owner.label
        self.site_url = owner.url
        self.timestamp = utcnow_iso()

    def mark_idle(self) -> None:
        self.status = STATUS_IDLE
        self.site = None
        self.site_url = None
        self.timestamp = utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.site is not None:
            data["site"] = self.site
        if self.site_url is not None:
            data["site_url"] = self.site_url
        data["timestamp"] = self.timestamp
        data["queue"] = [entry.to_dict() for entry in self.queue]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> EventStatus:
        if not isinstance(data, dict):
            return cls()
        status = str(data.get("status", STATUS_IDLE))
        return cls(
            status=status if status in EVENT_STATUSES else STATUS_IDLE,
            site=_optional_str(data.get("site")),
            site_url=_optional_str(data.get("site_url")),
            timestamp=str(data.get("timestamp", "")),
            queue=_parse_queue(data.get("queue")),
        )


@dataclass
class GlobalStatus:
    """Status and unified waiter queue (global mode)."""

    status: str = STATUS_IDLE
    current_site: str | None = None
    current_site_url: str | None = None
    current_event: str | None = None
    timestamp: str = ""
    queue: list[WaiterEntry] = field(default_factory=list)

    @property
    def owner(self) -> Owner | None:
        if self.current_site_url is None:
            return None
        return Owner(label=self.current_site or "", url=self.current_site_url)

    def mark_running(self, owner: Owner, event: str) -> None:
        self.status = STATUS_RUNNING
        self.current_site = owner.label
        self.current_site_url = owner.url
        self.current_event = event
        self.timestamp = utcnow_iso()

    def mark_idle(self) -> None:
        self.status = STATUS_IDLE
        self.current_site = None
        self.current_site_url = None
        self.current_event = None
        self.timestamp = utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.current_site is not None:
            data["current_site"] = self.current_site
        if self.current_site_url is not None:
            data["current_site_url"] = self.current_site_url
        if self.current_event is not None:
            data["current_event"] = self.current_event
        data["timestamp"] = self.timestamp
        data["queue"] = [entry.to_dict() for entry in self.queue]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> GlobalStatus:
        if not isinstance(data, dict):
            return cls(timestamp=utcnow_iso())
        status = str(data.get("status", STATUS_IDLE))
        return cls(
            status=status if status in GLOBAL_STATUSES else STATUS_IDLE,
            current_site=_optional_str(data.get("current_site")),
            current_site_url=_optional_str(data.get("current_site_url")),
            current_event=_optional_str(data.get("current_event")),
            timestamp=str(data.get("timestamp", "")),
            queue=_parse_queue(data.get("queue")),
        )


ResourceStatus = EventStatus | GlobalStatus


@dataclass
class LedgerSnapshot:
    """Whole-ledger view. Exactly one of the two members is in use per mode."""

    events: dict[str, EventStatus] = field(default_factory=dict)
    global_status: GlobalStatus | None = None
