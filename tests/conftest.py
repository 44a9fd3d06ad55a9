"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from heartbeat.probes.results import ProbeResult


class RecordingSink:
    """In-memory result sink; remembers each insert batch."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.batches: list[list[ProbeResult]] = []
        self.fail = fail
        self.closed = False

    def insert(self, records: Sequence[ProbeResult]) -> None:
        if self.fail is not None:
            raise self.fail
        self.batches.append(list(records))

    def close(self) -> None:
        self.closed = True


class RecordingMandrill:
    """Stands in for MandrillTransport."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail

    async def send(self, path: str, payload: dict[str, Any]) -> Any:
        if self.fail is not None:
            raise self.fail
        self.sent.append((path, payload))
        return [{"status": "sent"}]


class RecordingTwilio:
    """Stands in for TwilioTransport."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = fail

    async def send_message(self, message: dict[str, str]) -> str:
        if self.fail is not None:
            raise self.fail
        self.sent.append(message)
        return f"SM{len(self.sent)}"


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def mandrill() -> RecordingMandrill:
    return RecordingMandrill()


@pytest.fixture
def twilio() -> RecordingTwilio:
    return RecordingTwilio()


@pytest.fixture
def http_routes():
    """Route the probes' httpx.Client through a MockTransport.

    Map a full URL to an ``httpx.Response`` or to an exception to raise.
    Unmapped URLs answer 404.
    """
    routes: dict[str, httpx.Response | Exception] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = routes.get(str(request.url))
        if outcome is None:
            return httpx.Response(404)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    transport = httpx.MockTransport(handler)
    real_client = httpx.Client

    def client_factory(*args: Any, **kwargs: Any) -> httpx.Client:
        return real_client(*args, transport=transport, **kwargs)

    with patch("heartbeat.probes.engine.httpx.Client", side_effect=client_factory):
        yield routes
