"""Notifier base class and transport error."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from ..probes.results import ProbeResult


class NotificationError(Exception):
    """Raised when a transport fails to deliver a notification."""

    def __init__(self, channel: str, detail: str) -> None:
        self.channel = channel
        self.detail = detail
        super().__init__(f"{channel} notification failed: {detail}")


def render_failure(failure: ProbeResult) -> str:
    """Message body shared by every channel: the failure record as JSON."""
    return json.dumps(failure.to_record(), default=str)


class Notifier(ABC):
    """Delivers one failure to one channel."""

    channel: str = ""

    @abstractmethod
    async def notify(self, failure: ProbeResult) -> None:
        ...
