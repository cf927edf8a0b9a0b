"""Configuration dataclasses for cronlock.

These dataclasses centralize all configuration options for type safety
and easy testing. They are built from a JSON config file, then overridden
by ``CRONLOCK_*`` environment variables and finally by command-line flags.
"""

from __future__ import annotations

import argparse
import json
import os
import shlex
import socket
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cronlock.core.constants import (
    DEFAULT_BASE_DELAY,
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOCK_DIR,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_LOCK_AGE,
    DEFAULT_SITE_PATH_CANDIDATES,
    DEFAULT_WAKE_CHANNELS,
    DEFAULT_WAKE_COMMAND,
    DEFAULT_WAKE_HTTP_PATH,
    DEFAULT_WAKE_HTTP_TIMEOUT,
    ENV_CONFIG_FILE,
    ENV_VAR_MAPPING,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_NAME,
    SCHEDULE_FILE_NAME,
    STATUS_FILE_NAME,
    VALID_LOCK_BACKENDS,
    VALID_LOG_FORMATS,
    VALID_LOG_LEVELS,
    VALID_WAKE_CHANNELS,
)
from cronlock.core.exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _parse_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value]
    raise ValueError(f"expected a list, got {value!r}")


def _parse_command(value: Any) -> list[str]:
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value]
    raise ValueError(f"expected a command string or argv list, got {value!r}")


def _parse_optional_path(value: Any) -> Path | None:
    if value is None or value == "":
        return None
    return Path(str(value)).expanduser()


@dataclass
class SiteConfig:
    """Identity of the site this process runs for.

    Attributes:
        name: Human-readable site name (default: host name)
        url: Site URL, the identity used for queue dedup and self-skip
    """

    name: str = field(default_factory=socket.gethostname)
    url: str = "http://localhost"

    @property
    def label(self) -> str:
        return f"{self.name} ({self.url})"


@dataclass
class LockConfig:
    """Configuration for the lock store and status ledger.

    Attributes:
        lock_dir: Directory holding the lock files (shared between sites)
        status_file: Ledger path (default: <lock_dir>/cron-status.json)
        schedule_file: Retry schedule path (default: <lock_dir>/cron-schedule.json)
        per_event_locking: One lock per event (True) or one global lock (False)
        max_lock_age: Seconds after which a held lock is considered abandoned
        lock_backend: "auto", "fcntl" or "lease"
    """

    lock_dir: Path = DEFAULT_LOCK_DIR
    status_file: Path | None = None
    schedule_file: Path | None = None
    per_event_locking: bool = True
    max_lock_age: int = DEFAULT_MAX_LOCK_AGE
    lock_backend: str = "auto"

    @property
    def ledger_path(self) -> Path:
        return self.status_file or self.lock_dir / STATUS_FILE_NAME

    @property
    def schedule_path(self) -> Path:
        return self.schedule_file or self.lock_dir / SCHEDULE_FILE_NAME


@dataclass
class BackoffConfig:
    """Linear backoff by queue position.

    Attributes:
        base_delay: Seconds added per queue position (default: 5)
        max_delay: Maximum delay cap in seconds (default: 35)
    """

    base_delay: int = DEFAULT_BASE_DELAY
    max_delay: int = DEFAULT_MAX_DELAY


@dataclass
class WakeConfig:
    """How the next waiter is woken once a lock is released.

    Attributes:
        channels: Ordered wake channels, tried until one succeeds
        command: Command template run in the waiter's site directory
        http_path: Path appended to the waiter's site URL for HTTP wakes
        http_timeout: Seconds to wait for the HTTP wake request
        site_paths: Explicit map of site URL -> site directory
        site_path_candidates: Directory templates tried with {site_name}
        site_marker: File that must exist in a candidate site directory
    """

    channels: list[str] = field(default_factory=lambda: list(DEFAULT_WAKE_CHANNELS))
    command: list[str] = field(default_factory=lambda: list(DEFAULT_WAKE_COMMAND))
    http_path: str = DEFAULT_WAKE_HTTP_PATH
    http_timeout: float = DEFAULT_WAKE_HTTP_TIMEOUT
    site_paths: dict[str, str] = field(default_factory=dict)
    site_path_candidates: list[str] = field(default_factory=lambda: list(DEFAULT_SITE_PATH_CANDIDATES))
    site_marker: str | None = None


@dataclass
class LogConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level string (default: "INFO")
        format: "text" or "json"
        file: Log file path (default: <lock_dir>/cron.log); None disables file logging
        file_max_bytes: Maximum size per log file (default: 10MB)
        file_backup_count: Number of backup log files (default: 5)
    """

    level: str = "INFO"
    format: str = "text"
    file: Path | None = None
    file_max_bytes: int = LOG_FILE_MAX_BYTES
    file_backup_count: int = LOG_FILE_BACKUP_COUNT


# Section name -> field name -> parser
_SECTION_PARSERS: dict[str, dict[str, Callable[[Any], Any]]] = {
    "site": {"name": str, "url": str},
    "lock": {
        "lock_dir": lambda v: Path(str(v)).expanduser(),
        "status_file": _parse_optional_path,
        "schedule_file": _parse_optional_path,
        "per_event_locking": _parse_bool,
        "max_lock_age": int,
        "lock_backend": lambda v: str(v).strip().lower(),
    },
    "backoff": {"base_delay": int, "max_delay": int},
    "wake": {
        "channels": _parse_list,
        "command": _parse_command,
        "http_path": str,
        "http_timeout": float,
        "site_paths": lambda v: {str(k): str(p) for k, p in dict(v).items()},
        "site_path_candidates": _parse_list,
        "site_marker": lambda v: None if v in (None, "") else str(v),
    },
    "log": {
        "level": lambda v: str(v).upper(),
        "format": lambda v: str(v).lower(),
        "file": _parse_optional_path,
        "file_max_bytes": int,
        "file_backup_count": int,
    },
}


@dataclass
class CronLockConfig:
    """Master configuration for cronlock.

    Attributes:
        site: Identity of this site
        lock: Lock store and ledger configuration
        backoff: Backoff policy configuration
        wake: Wake dispatcher configuration
        log: Logging configuration
        locked_events: Map of event name -> command argv run as the job body
        config_file: Path the configuration was loaded from, if any
    """

    site: SiteConfig = field(default_factory=SiteConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    wake: WakeConfig = field(default_factory=WakeConfig)
    log: LogConfig = field(default_factory=LogConfig)
    locked_events: dict[str, list[str]] = field(default_factory=dict)
    config_file: str | None = None

    @property
    def log_path(self) -> Path:
        return self.log.file or self.lock.lock_dir / LOG_FILE_NAME

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], config_file: str | None = None) -> CronLockConfig:
        """Create configuration from a parsed JSON document."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("Configuration must be a JSON object", config_file=config_file)

        config = cls(config_file=config_file)
        for section in _SECTION_PARSERS:
            values = data.get(section)
            if values is None:
                continue
            if not isinstance(values, Mapping):
                raise ConfigurationError("Section must be an object", config_file=config_file, field=section)
            for key, value in values.items():
                config._set(f"{section}.{key}", value, source=config_file)

        events = data.get("locked_events", {})
        if not isinstance(events, Mapping):
            raise ConfigurationError("Section must be an object", config_file=config_file, field="locked_events")
        for event, command in events.items():
            try:
                config.locked_events[str(event)] = _parse_command(command) if command else []
            except ValueError as e:
                raise ConfigurationError(
                    "Invalid job command", config_file=config_file, field=f"locked_events.{event}", details=str(e)
                ) from e
        return config

    @classmethod
    def load(
        cls,
        config_file: str | os.PathLike[str] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> CronLockConfig:
        """Load configuration from file and environment.

        An explicitly requested config file must exist; the default
        ``cronlock.json`` is optional.
        """
        env = os.environ if environ is None else environ
        explicit = config_file or env.get(ENV_CONFIG_FILE)
        path = Path(explicit or DEFAULT_CONFIG_FILE).expanduser()

        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError("Invalid JSON in config file", config_file=str(path), details=str(e)) from e
            except OSError as e:
                raise ConfigurationError("Cannot read config file", config_file=str(path), details=str(e)) from e
            config = cls.from_dict(data, config_file=str(path))
        elif explicit:
            raise ConfigurationError("Config file not found", config_file=str(path))
        else:
            config = cls()

        config.apply_environment(env)
        config.validate()
        return config

    def apply_environment(self, environ: Mapping[str, str]) -> None:
        """Apply ``CRONLOCK_*`` environment overrides."""
        for env_name, dotted in ENV_VAR_MAPPING.items():
            value = environ.get(env_name)
            if value is None or value == "":
                continue
            self._set(dotted, value, source=f"${env_name}")

    def apply_args(self, args: argparse.Namespace) -> None:
        """Apply command-line overrides, then re-validate."""
        if getattr(args, "log_level", None):
            self.log.level = args.log_level.upper()
        if getattr(args, "log_format", None):
            self.log.format = args.log_format.lower()
        if getattr(args, "per_event_locking", None) is not None:
            self.lock.per_event_locking = args.per_event_locking
        if getattr(args, "lock_dir", None):
            self.lock.lock_dir = Path(args.lock_dir).expanduser()
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any option is out of range."""
        source = self.config_file
        if not self.site.url.strip():
            raise ConfigurationError("Site URL cannot be empty", config_file=source, field="site.url")
        if self.lock.max_lock_age < 1:
            raise ConfigurationError("Must be at least 1 second", config_file=source, field="lock.max_lock_age")
        if self.lock.lock_backend not in VALID_LOCK_BACKENDS:
            raise ConfigurationError(
                f"Unknown lock backend '{self.lock.lock_backend}'",
                config_file=source,
                field="lock.lock_backend",
                details=f"valid backends: {', '.join(VALID_LOCK_BACKENDS)}",
            )
        if self.backoff.base_delay < 1:
            raise ConfigurationError("Must be at least 1 second", config_file=source, field="backoff.base_delay")
        if self.backoff.max_delay < self.backoff.base_delay:
            raise ConfigurationError(
                "Must not be smaller than backoff.base_delay", config_file=source, field="backoff.max_delay"
            )
        unknown = [name for name in self.wake.channels if name not in VALID_WAKE_CHANNELS]
        if unknown:
            raise ConfigurationError(
                f"Unknown wake channel(s): {', '.join(unknown)}",
                config_file=source,
                field="wake.channels",
                details=f"valid channels: {', '.join(VALID_WAKE_CHANNELS)}",
            )
        if not self.wake.command:
            raise ConfigurationError("Wake command cannot be empty", config_file=source, field="wake.command")
        for template in self.wake.site_path_candidates:
            try:
                template.format(site_name="site")
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid site path template '{template}'",
                    config_file=source,
                    field="wake.site_path_candidates",
                    details="only {site_name} may be used",
                ) from e
        if self.wake.http_timeout <= 0:
            raise ConfigurationError("Must be positive", config_file=source, field="wake.http_timeout")
        if self.log.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level '{self.log.level}'",
                config_file=source,
                field="log.level",
                details=f"valid levels: {', '.join(VALID_LOG_LEVELS)}",
            )
        if self.log.format not in VALID_LOG_FORMATS:
            raise ConfigurationError(f"Invalid log format '{self.log.format}'", config_file=source, field="log.format")

    def _set(self, dotted: str, value: Any, *, source: str | None) -> None:
        section_name, _, key = dotted.partition(".")
        parser = _SECTION_PARSERS[section_name].get(key)
        if parser is None:
            raise ConfigurationError("Unknown configuration option", config_file=source, field=dotted)
        try:
            parsed = parser(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("Invalid value", config_file=source, field=dotted, details=str(e)) from e
        setattr(getattr(self, section_name), key, parsed)
