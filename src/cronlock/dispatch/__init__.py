"""Wake dispatch: reaching the next waiting site once a lock is released."""

from cronlock.dispatch.channels import CommandWakeChannel, HttpWakeChannel
from cronlock.dispatch.dispatcher import WakeChannel, WakeDispatcher

__all__ = ["CommandWakeChannel", "HttpWakeChannel", "WakeChannel", "WakeDispatcher"]
