"""Email notifications through the Mandrill transactional API (httpx)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import settings
from ..probes.results import ProbeResult
from .base import NotificationError, Notifier, render_failure

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "[Heartbeat] Service {target} failed."


class EmailOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    from_email: str = Field(alias="from")
    to: list[str]
    subject: str = DEFAULT_SUBJECT

    @field_validator("to", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v

    @field_validator("subject")
    @classmethod
    def _check_template(cls, v: str) -> str:
        """The only placeholder a subject may use is ``{target}``."""
        try:
            v.format(target="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"subject template {v!r} is invalid: {type(e).__name__}: {e}") from e
        return v


class MandrillTransport:
    """POSTs to the Mandrill REST API."""

    def __init__(self, api_key: str = "", base_url: str = "", timeout: float = 10.0) -> None:
        self.api_key = api_key or settings.mandrill_api_key
        self.base_url = (base_url or settings.mandrill_base_url).rstrip("/")
        self._timeout = timeout

    async def send(self, path: str, payload: dict[str, Any]) -> Any:
        """Call ``{base_url}{path}.json``; raise NotificationError on any failure."""
        url = f"{self.base_url}{path}.json"
        body = {"key": self.api_key, **payload}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise NotificationError("email", f"{type(e).__name__}: {e}") from e

        if resp.status_code != 200:
            raise NotificationError("email", f"Mandrill returned {resp.status_code}: {resp.text[:200]}")

        data = resp.json()
        if isinstance(data, list):
            rejected = [r for r in data if r.get("status") in ("rejected", "invalid")]
            if rejected:
                detail = ", ".join(f"{r.get('email')} ({r.get('reject_reason') or r.get('status')})" for r in rejected)
                raise NotificationError("email", f"Mandrill rejected: {detail}")
        return data


class EmailNotifier(Notifier):
    channel = "email"

    def __init__(self, options: EmailOptions, transport: MandrillTransport) -> None:
        self.options = options
        self.transport = transport

    def render(self, failure: ProbeResult) -> dict[str, Any]:
        return {
            "text": render_failure(failure),
            "subject": self.options.subject.format(target=failure.target),
            "from_email": self.options.from_email,
            "to": [{"email": addr} for addr in self.options.to],
        }

    async def notify(self, failure: ProbeResult) -> None:
        logger.info("sending mandrill notification for %s", failure.target)
        await self.transport.send("/messages/send", {"message": self.render(failure)})
