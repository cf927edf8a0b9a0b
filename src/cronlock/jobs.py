"""Job bodies: what actually runs once the lock for an event is held."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence

JobHandler = Callable[[str], None]


class CommandJob:
    """Run a configured command as the job body; a non-zero exit is a failure.

    The event name is exported as ``CRONLOCK_EVENT`` to the child process.
    """

    def __init__(self, argv: Sequence[str], *, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.argv = list(argv)
        self._runner = runner

    def __call__(self, event: str) -> None:
        env = dict(os.environ, CRONLOCK_EVENT=event)
        self._runner(self.argv, check=True, env=env)

    def __repr__(self) -> str:
        return f"CommandJob({self.argv!r})"


class JobRegistry:
    """Map of event name -> job handler."""

    def __init__(
        self,
        handlers: Mapping[str, JobHandler] | None = None,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._handlers: dict[str, JobHandler] = dict(handlers or {})
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_commands(
        cls,
        locked_events: Mapping[str, Sequence[str]],
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> JobRegistry:
        handlers: dict[str, JobHandler] = {event: CommandJob(argv) for event, argv in locked_events.items() if argv}
        return cls(handlers, logger=logger)

    def register(self, event: str, handler: JobHandler) -> None:
        self._handlers[event] = handler

    def __contains__(self, event: object) -> bool:
        return event in self._handlers

    def run(self, event: str) -> None:
        if event not in self:
            self.logger.info("No internal handler for %s; nothing executed", event)
            return
        self._handlers[event](event)
