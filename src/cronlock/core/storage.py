"""Exclusive read-modify-write access to small shared JSON files.

Used for the status ledger and the retry schedule. Each transaction opens
(or creates) the file, takes a blocking exclusive lock for the duration of
the ``with`` block, and persists the document on a clean exit. I/O failures
are logged and degrade to an in-memory default that is never written back.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cronlock.core.constants import LEDGER_FILE_MODE

try:
    import fcntl
except ImportError:  # pragma: no cover - exercised on non-POSIX only
    fcntl = None


@dataclass
class JsonDocument:
    """Parsed contents of a locked JSON file.

    Attributes:
        data: The document; mutate or replace it inside the transaction
        writable: False when the file could not be opened or locked
    """

    data: Any
    writable: bool = True


def _load(raw: str, path: Path, default_factory: Callable[[], Any], logger: logging.Logger) -> Any:
    if not raw.strip():
        return default_factory()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Corrupt JSON in %s (%s); replacing with defaults", path, e)
        return default_factory()
    if not isinstance(data, dict):
        logger.warning("Unexpected JSON document in %s; replacing with defaults", path)
        return default_factory()
    return data


@contextlib.contextmanager
def locked_json_file(
    path: Path,
    default_factory: Callable[[], Any],
    *,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> Iterator[JsonDocument]:
    """Yield the document at path under an exclusive lock and write it back on success."""
    log = logger or logging.getLogger(__name__)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_CREAT | os.O_RDWR, LEDGER_FILE_MODE)
    except OSError as e:
        log.error("Cannot open %s: %s", path, e)
        yield JsonDocument(default_factory(), writable=False)
        return

    with os.fdopen(fd, "r+", encoding="utf-8") as f:
        if fcntl is not None:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            except OSError as e:
                log.error("Cannot lock %s: %s", path, e)
                yield JsonDocument(default_factory(), writable=False)
                return

        try:
            f.seek(0)
            try:
                raw = f.read()
            except (OSError, UnicodeDecodeError) as e:
                log.warning("Unreadable contents in %s (%s); replacing with defaults", path, e)
                raw = ""
            document = JsonDocument(_load(raw, path, default_factory, log))
            yield document
            if document.writable:
                try:
                    f.seek(0)
                    f.truncate()
                    f.write(json.dumps(document.data, indent=4))
                    f.flush()
                    os.fsync(f.fileno())
                except OSError as e:
                    log.error("Cannot write %s: %s", path, e)
        finally:
            if fcntl is not None:
                with contextlib.suppress(OSError):
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    with contextlib.suppress(OSError):
        os.chmod(path, LEDGER_FILE_MODE)


def read_json_file(path: Path) -> dict[str, Any] | None:
    """Read a JSON object without locking (display purposes only)."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None
