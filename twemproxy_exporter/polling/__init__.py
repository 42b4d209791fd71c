"""Polling of the twemproxy stats port."""

from .nutcracker import NutcrackerClient
from .scheduler import PollDriver, PollingScheduler, PollState
from .translator import translate

__all__ = [
    "NutcrackerClient",
    "PollDriver",
    "PollingScheduler",
    "PollState",
    "translate",
]
