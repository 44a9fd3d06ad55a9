"""SMS notifications through Twilio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from ..config import settings
from ..probes.results import ProbeResult
from .base import NotificationError, Notifier, render_failure

logger = logging.getLogger(__name__)


class SmsOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    from_number: str = Field(alias="from")
    to: list[str]

    @field_validator("to", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v


class TwilioTransport:
    """Sends messages with the synchronous Twilio client, off the event loop."""

    def __init__(self, account_sid: str = "", auth_token: str = "") -> None:
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self._client: Client | None = None

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def _create(self, message: dict[str, str]) -> str:
        msg = self._get_client().messages.create(
            body=message["body"], from_=message["from"], to=message["to"],
        )
        return msg.sid

    async def send_message(self, message: dict[str, str]) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._create, message)
        except TwilioException as e:
            raise NotificationError("sms", f"{type(e).__name__}: {e}") from e


class SmsNotifier(Notifier):
    channel = "sms"

    def __init__(self, options: SmsOptions, transport: TwilioTransport) -> None:
        self.options = options
        self.transport = transport

    def render(self, failure: ProbeResult) -> list[dict[str, str]]:
        body = render_failure(failure)
        return [{"body": body, "from": self.options.from_number, "to": to} for to in self.options.to]

    async def notify(self, failure: ProbeResult) -> None:
        messages = self.render(failure)
        logger.info("sending sms notification for %s to %d recipients", failure.target, len(messages))
        await asyncio.gather(*(self.transport.send_message(m) for m in messages))
