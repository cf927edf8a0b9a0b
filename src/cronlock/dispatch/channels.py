"""Wake channels: ways of telling a waiting site to start its event now."""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from cronlock.core.constants import (
    DEFAULT_WAKE_HTTP_PATH,
    DEFAULT_WAKE_HTTP_TIMEOUT,
    WAKE_CHANNEL_COMMAND,
    WAKE_CHANNEL_HTTP,
)
from cronlock.core.exceptions import WakeChannelError
from cronlock.ledger.models import WaiterEntry


class CommandWakeChannel:
    """Run the waiter's own cronlock entry point, detached, inside its site directory.

    The command is launched through ``sh -c "sleep N && exec ..."`` in a new
    session so it outlives this process and starts after the requested delay.
    """

    name = WAKE_CHANNEL_COMMAND

    def __init__(
        self,
        command: Sequence[str],
        *,
        site_paths: Mapping[str, str] | None = None,
        site_path_candidates: Sequence[str] = (),
        site_marker: str | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.command = list(command)
        self.site_paths = dict(site_paths or {})
        self.site_path_candidates = list(site_path_candidates)
        self.site_marker = site_marker
        self._popen = popen
        self.logger = logger or logging.getLogger(__name__)

    def _is_site_dir(self, path: Path) -> bool:
        if not path.is_dir():
            return False
        return self.site_marker is None or (path / self.site_marker).exists()

    def resolve_site_path(self, site_url: str) -> Path | None:
        """Find the directory of the site at site_url: explicit map first, then templates."""
        configured = self.site_paths.get(site_url)
        if configured and self._is_site_dir(Path(configured)):
            return Path(configured)

        try:
            host = urlsplit(site_url).hostname or ""
        except ValueError as e:
            raise WakeChannelError("Invalid site URL", self.name, site_url, details=str(e)) from e
        site_name = host.split(".")[0]
        if not site_name:
            return None
        for template in self.site_path_candidates:
            try:
                candidate = Path(template.format(site_name=site_name))
            except (KeyError, IndexError, ValueError) as e:
                raise WakeChannelError(
                    "Invalid site path template", self.name, site_url, details=f"{template!r}: {e!r}"
                ) from e
            if self._is_site_dir(candidate):
                return candidate
        return None

    def build_argv(self, entry: WaiterEntry) -> list[str]:
        values = {"event": entry.event, "site_url": entry.site_url, "site": entry.site}
        try:
            return [part.format_map(values) for part in self.command]
        except (KeyError, IndexError, ValueError) as e:
            raise WakeChannelError("Invalid wake command template", self.name, entry.site_url, details=str(e)) from e

    def wake(self, entry: WaiterEntry, delay: int) -> None:
        site_path = self.resolve_site_path(entry.site_url)
        if site_path is None:
            raise WakeChannelError("Could not determine path for site", self.name, entry.site_url)

        argv = self.build_argv(entry)
        script = f"sleep {max(0, int(delay))} && exec {shlex.join(argv)}"
        self.logger.info(
            "Triggering next via command: %s (%s) at path %s after %ds", entry.site, entry.event, site_path, delay
        )
        try:
            self._popen(
                ["sh", "-c", script],
                cwd=str(site_path),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise WakeChannelError("Cannot launch wake command", self.name, entry.site_url, details=str(e)) from e


class HttpWakeChannel:
    """Fire-and-forget POST to the waiter's cron endpoint.

    The delay is not applied: the remote endpoint runs as soon as it is hit.
    A read timeout means the request was sent and the remote site is busy
    running the event, which counts as delivered.
    """

    name = WAKE_CHANNEL_HTTP

    def __init__(
        self,
        path: str = DEFAULT_WAKE_HTTP_PATH,
        timeout: float = DEFAULT_WAKE_HTTP_TIMEOUT,
        *,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.path = path
        self.timeout = timeout
        self._transport = transport
        self.logger = logger or logging.getLogger(__name__)

    def wake_url(self, entry: WaiterEntry) -> str:
        return f"{entry.site_url.rstrip('/')}/{self.path.lstrip('/')}"

    def wake(self, entry: WaiterEntry, delay: int) -> None:
        del delay
        url = self.wake_url(entry)
        params = {"doing_cron": f"{time.time():.4f}", "event": entry.event}
        self.logger.info("Triggering next via HTTP: %s (%s)", entry.site, entry.event)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, params=params, headers={"Connection": "close"})
        except httpx.ReadTimeout:
            return
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise WakeChannelError("HTTP wake failed", self.name, entry.site_url, details=str(e)) from e

        if response.is_error:
            raise WakeChannelError(
                "HTTP wake rejected", self.name, entry.site_url, details=f"HTTP {response.status_code}"
            )
