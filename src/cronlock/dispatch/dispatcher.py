"""Wake dispatcher: notify the next waiter through an ordered list of channels."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from cronlock.core.config import WakeConfig
from cronlock.core.constants import WAKE_CHANNEL_COMMAND, WAKE_CHANNEL_HTTP
from cronlock.core.exceptions import WakeChannelError
from cronlock.dispatch.channels import CommandWakeChannel, HttpWakeChannel
from cronlock.ledger.models import WaiterEntry


class WakeChannel(Protocol):
    name: str

    def wake(self, entry: WaiterEntry, delay: int) -> None:
        """Deliver the wake-up or raise WakeChannelError."""


class WakeDispatcher:
    """Try each channel in order until one delivers.

    ``notify`` never raises; ``False`` tells the coordinator to fall back to a
    scheduled local retry.
    """

    def __init__(
        self,
        channels: Sequence[WakeChannel],
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.channels = list(channels)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: WakeConfig,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> WakeDispatcher:
        channels: list[WakeChannel] = []
        for name in config.channels:
            if name == WAKE_CHANNEL_COMMAND:
                channels.append(
                    CommandWakeChannel(
                        config.command,
                        site_paths=config.site_paths,
                        site_path_candidates=config.site_path_candidates,
                        site_marker=config.site_marker,
                        logger=logger,
                    )
                )
            elif name == WAKE_CHANNEL_HTTP:
                channels.append(HttpWakeChannel(config.http_path, config.http_timeout, logger=logger))
        return cls(channels, logger=logger)

    def notify(self, entry: WaiterEntry, delay: int) -> bool:
        for index, channel in enumerate(self.channels):
            if index > 0:
                self.logger.info("Falling back to %s wake for %s", channel.name, entry.site)
            try:
                channel.wake(entry, delay)
            except WakeChannelError as e:
                self.logger.warning("Wake via %s failed: %s", channel.name, e)
                continue
            except Exception:
                self.logger.exception("Unexpected error in %s wake for %s", channel.name, entry.site)
                continue
            return True

        if not self.channels:
            self.logger.warning("No wake channels configured; cannot wake %s", entry.site)
        return False
