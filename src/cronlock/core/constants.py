"""Constants and default values for cronlock.

This module centralizes file names, timing defaults, and the names of
environment variables used throughout the application.
"""

from pathlib import Path

# ==================== FILE LAYOUT ====================

DEFAULT_CONFIG_FILE: str = "cronlock.json"
DEFAULT_HOME_DIR: Path = Path.home() / ".cronlock"
DEFAULT_LOCK_DIR: Path = DEFAULT_HOME_DIR / "locks"
STATUS_FILE_NAME: str = "cron-status.json"
SCHEDULE_FILE_NAME: str = "cron-schedule.json"
LOG_FILE_NAME: str = "cron.log"

LOCK_FILE_PREFIX: str = "cron-lock-"
LOCK_FILE_SUFFIX: str = ".lock"
GLOBAL_LOCK_KEY: str = "global"
# Scope name accepted by the clear-queue admin operation in global mode
GLOBAL_QUEUE_SCOPE: str = "__global__"

LOCK_FILE_MODE: int = 0o664
LEDGER_FILE_MODE: int = 0o664
LOCK_DIR_MODE: int = 0o775

# ==================== TIMING DEFAULTS ====================

DEFAULT_MAX_LOCK_AGE: int = 300  # 5 minutes
DEFAULT_BASE_DELAY: int = 5  # Seconds per queue position
DEFAULT_MAX_DELAY: int = 35  # Ceiling for the backoff delay
MIN_RETRY_DELAY: int = 1

IMMEDIATE_WAKE_DELAY: int = 1  # Wake delay for the first waiter on an idle resource
NEXT_WAKE_DELAY: int = 3  # Wake delay for the next waiter after a release
FALLBACK_RETRY_DELAY: int = 5  # Local retry when waking fails or only self entries were queued

# ==================== WAKE CHANNELS ====================

WAKE_CHANNEL_COMMAND: str = "command"
WAKE_CHANNEL_HTTP: str = "http"
VALID_WAKE_CHANNELS: tuple[str, ...] = (WAKE_CHANNEL_COMMAND, WAKE_CHANNEL_HTTP)
DEFAULT_WAKE_CHANNELS: tuple[str, ...] = (WAKE_CHANNEL_COMMAND, WAKE_CHANNEL_HTTP)
DEFAULT_WAKE_COMMAND: tuple[str, ...] = ("cronlock", "run", "{event}")
DEFAULT_WAKE_HTTP_PATH: str = "cron"
DEFAULT_WAKE_HTTP_TIMEOUT: float = 0.5
DEFAULT_SITE_PATH_CANDIDATES: tuple[str, ...] = (
    "/var/www/html/{site_name}",
    "/var/www/{site_name}/public_html",
    "/var/www/{site_name}",
)

# ==================== LOCK BACKENDS ====================

VALID_LOCK_BACKENDS: tuple[str, ...] = ("auto", "fcntl", "lease")

# ==================== LOGGING DEFAULTS ====================

LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB max per log file
LOG_FILE_BACKUP_COUNT: int = 5  # Number of backup log files to keep
VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS: tuple[str, ...] = ("text", "json")

# ==================== ENVIRONMENT VARIABLES ====================

ENV_CONFIG_FILE: str = "CRONLOCK_CONFIG"
ENV_LOCK_BACKEND: str = "CRONLOCK_LOCK_BACKEND"

# Environment variable -> dotted config field it overrides
ENV_VAR_MAPPING: dict[str, str] = {
    "CRONLOCK_SITE_NAME": "site.name",
    "CRONLOCK_SITE_URL": "site.url",
    "CRONLOCK_LOCK_DIR": "lock.lock_dir",
    "CRONLOCK_STATUS_FILE": "lock.status_file",
    "CRONLOCK_SCHEDULE_FILE": "lock.schedule_file",
    "CRONLOCK_PER_EVENT_LOCKING": "lock.per_event_locking",
    "CRONLOCK_MAX_LOCK_AGE": "lock.max_lock_age",
    ENV_LOCK_BACKEND: "lock.lock_backend",
    "CRONLOCK_BASE_DELAY": "backoff.base_delay",
    "CRONLOCK_MAX_DELAY": "backoff.max_delay",
    "CRONLOCK_WAKE_CHANNELS": "wake.channels",
    "CRONLOCK_LOG_FILE": "log.file",
    "LOG_LEVEL": "log.level",
}
