"""Shared fixtures: a fake channel and registries with short timers."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from wabridge.relay import RequestCorrelator, StreamRegistry

# Scaled-down completion timers (seconds)
CREATION_TIMEOUT = 0.2
EDIT_TIMEOUT = 0.1


class FakeChannel:
    """In-memory Channel. on_send lets a test script the reply notifications."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.sent: list[str] = []
        self.seen: list[str] = []
        self.send_error: Exception | None = None
        self.seen_error: Exception | None = None
        self.on_send: Callable[[str], None] | None = None

    async def send_outgoing(self, text: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(text)
        if self.on_send is not None:
            self.on_send(text)

    async def mark_seen(self, external_id: str) -> None:
        self.seen.append(external_id)
        if self.seen_error is not None:
            raise self.seen_error


def schedule_reply(
    registry: StreamRegistry,
    script: list[tuple[float, str, str]],
    stream_id: str = "msg-1",
) -> None:
    """Replay (delay, event, body) notifications for one reply on the loop."""
    loop = asyncio.get_running_loop()
    for delay, event, body in script:
        if event == "create":
            loop.call_later(delay, registry.observe_created, stream_id, body, False, "text")
        else:
            loop.call_later(delay, registry.observe_edited, stream_id, body, False)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def registry(channel) -> StreamRegistry:
    return StreamRegistry(
        creation_timeout=CREATION_TIMEOUT,
        edit_timeout=EDIT_TIMEOUT,
        mark_seen=channel.mark_seen,
    )


@pytest.fixture
def correlator(channel, registry) -> RequestCorrelator:
    return RequestCorrelator(channel, registry, poll_interval=0.01, poll_attempts=20)
