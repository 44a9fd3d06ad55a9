"""Failure notifications — notifier registry and concurrent dispatcher.

Channels:
- email: Mandrill transactional API
- sms: Twilio

Every configured channel receives every failure of a batch. Sends run
concurrently; the first transport error fails the whole dispatch and the
remaining sends are left to finish on their own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from ..config import ConfigError
from ..probes.results import ProbeResult
from .base import NotificationError, Notifier, render_failure
from .email import EmailNotifier, EmailOptions, MandrillTransport
from .sms import SmsNotifier, SmsOptions, TwilioTransport

logger = logging.getLogger(__name__)


class UnknownNotifierError(ConfigError):
    """Raised for a channel name outside ``NotifierType``."""


class NotifierType(str, Enum):
    EMAIL = "email"
    SMS = "sms"


NOTIFIERS: dict[NotifierType, tuple[type[BaseModel], type[Notifier], type]] = {
    NotifierType.EMAIL: (EmailOptions, EmailNotifier, MandrillTransport),
    NotifierType.SMS: (SmsOptions, SmsNotifier, TwilioTransport),
}


def resolve_notifier(
    channel: str | NotifierType,
    options: Mapping[str, Any],
    transport: Any = None,
) -> Notifier:
    """Bind a channel name, its options and a transport into a Notifier.

    ``transport`` defaults to the channel's real transport configured from
    settings; tests pass a fake.
    """
    try:
        kind = NotifierType(channel)
    except ValueError:
        raise UnknownNotifierError(f"missing notifier type for: {channel}") from None

    options_model, notifier_cls, transport_cls = NOTIFIERS[kind]
    try:
        bound = options_model.model_validate(dict(options or {}))
    except ValidationError as e:
        raise ConfigError(f"invalid {kind.value} notifier options: {e}") from e

    return notifier_cls(bound, transport if transport is not None else transport_cls())


class NotificationDispatcher:
    """Fans a failure batch out to every configured notifier."""

    def __init__(self, notifiers: Sequence[Notifier]) -> None:
        self.notifiers = tuple(notifiers)

    @classmethod
    def from_config(
        cls,
        notify: Mapping[str, Mapping[str, Any]],
        transports: Mapping[str, Any] | None = None,
    ) -> NotificationDispatcher:
        transports = transports or {}
        return cls([
            resolve_notifier(channel, options, transports.get(channel))
            for channel, options in notify.items()
        ])

    @property
    def channels(self) -> list[str]:
        return [n.channel for n in self.notifiers]

    async def dispatch(self, failures: Sequence[ProbeResult]) -> int:
        """Send every failure to every channel. Returns the number of sends."""
        failures = tuple(failures)
        sends = [n.notify(f) for n in self.notifiers for f in failures]
        if not sends:
            return 0

        logger.info(
            "Dispatching %d failures to %d channels (%s)",
            len(failures), len(self.notifiers), ", ".join(self.channels),
        )
        await asyncio.gather(*sends)
        return len(sends)


__all__ = [
    "EmailNotifier",
    "MandrillTransport",
    "NotificationDispatcher",
    "NotificationError",
    "Notifier",
    "NotifierType",
    "SmsNotifier",
    "TwilioTransport",
    "UnknownNotifierError",
    "render_failure",
    "resolve_notifier",
]
