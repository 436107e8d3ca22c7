"""Tests for BridgeChannel against a mocked bridge HTTP API."""

from __future__ import annotations

import json

import httpx
import pytest

from wabridge.channel import BridgeChannel, Channel, ChannelNotification, ChannelState
from wabridge.config import Settings


class FakeBridge:
    """httpx.MockTransport handler recording requests."""

    def __init__(self, status: dict | None = None) -> None:
        self.status = status or {"state": "ready", "chat_available": True}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "bridge failure"})
        path = request.url.path
        if path == "/status":
            return httpx.Response(200, json=self.status)
        if path == "/qr":
            return httpx.Response(200, json={"qr_code_url": "data:image/png;base64,QR"})
        if path in ("/send", "/seen", "/logout"):
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)


def _channel(bridge: FakeBridge) -> BridgeChannel:
    http = httpx.AsyncClient(transport=httpx.MockTransport(bridge), base_url="http://bridge")
    return BridgeChannel(Settings(bridge_url="http://bridge"), http=http)


class TestStatus:
    @pytest.mark.asyncio
    async def test_ready_when_bridge_reports_chat(self):
        channel = _channel(FakeBridge())
        assert not channel.ready
        await channel.refresh_status()
        assert channel.state == ChannelState.READY
        assert channel.ready
        assert channel.last_ready_at is not None

    @pytest.mark.asyncio
    async def test_logged_in_without_chat_is_not_ready(self):
        channel = _channel(FakeBridge({"state": "ready", "chat_available": False}))
        await channel.refresh_status()
        assert channel.state == ChannelState.READY
        assert not channel.ready

    @pytest.mark.asyncio
    async def test_unknown_state_treated_as_disconnected(self):
        channel = _channel(FakeBridge({"state": "weird"}))
        await channel.refresh_status()
        assert channel.state == ChannelState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unreachable_bridge_is_disconnected(self):
        bridge = FakeBridge()
        bridge.fail_with = 500
        channel = _channel(bridge)
        await channel.refresh_status()
        assert channel.state == ChannelState.DISCONNECTED
        assert not channel.ready

    @pytest.mark.asyncio
    async def test_status_snapshot(self):
        channel = _channel(FakeBridge())
        await channel.refresh_status()
        status = channel.status()
        assert status["state"] == "ready"
        assert status["ready"] is True
        assert status["chat_available"] is True

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        channel = _channel(FakeBridge())
        await channel.start()
        assert channel.ready
        await channel.stop()
        assert channel.state == ChannelState.CLOSED
        assert not channel.ready


class TestNotifications:
    def test_qr_then_ready(self):
        channel = _channel(FakeBridge())
        channel.apply_notification(ChannelNotification(event="qr", qr_code_url="data:x"))
        assert channel.state == ChannelState.AWAITING_LOGIN
        assert channel.qr_code_url == "data:x"

        channel.apply_notification(ChannelNotification(event="ready"))
        assert channel.ready
        assert channel.qr_code_url is None

    def test_chat_unavailable_keeps_login_but_not_ready(self):
        channel = _channel(FakeBridge())
        channel.apply_notification(ChannelNotification(event="ready"))
        channel.apply_notification(ChannelNotification(event="chat_unavailable", reason="not found"))
        assert channel.state == ChannelState.READY
        assert not channel.ready

    def test_disconnected(self):
        channel = _channel(FakeBridge())
        channel.apply_notification(ChannelNotification(event="ready"))
        channel.apply_notification(ChannelNotification(event="disconnected", reason="LOGOUT"))
        assert channel.state == ChannelState.DISCONNECTED
        assert not channel.ready


class TestOperations:
    def test_satisfies_channel_protocol(self):
        assert isinstance(_channel(FakeBridge()), Channel)

    @pytest.mark.asyncio
    async def test_send_outgoing_posts_text(self):
        bridge = FakeBridge()
        channel = _channel(bridge)
        await channel.send_outgoing("What is the capital of France?")
        request = bridge.requests[-1]
        assert request.method == "POST"
        assert request.url.path == "/send"
        assert json.loads(request.content) == {"text": "What is the capital of France?"}

    @pytest.mark.asyncio
    async def test_send_outgoing_raises_on_bridge_error(self):
        bridge = FakeBridge()
        bridge.fail_with = 500
        channel = _channel(bridge)
        with pytest.raises(httpx.HTTPStatusError):
            await channel.send_outgoing("hi")

    @pytest.mark.asyncio
    async def test_mark_seen_posts_id(self):
        bridge = FakeBridge()
        channel = _channel(bridge)
        await channel.mark_seen("msg-1")
        assert bridge.requests[-1].url.path == "/seen"
        assert json.loads(bridge.requests[-1].content) == {"external_id": "msg-1"}

    @pytest.mark.asyncio
    async def test_login_when_ready_returns_none(self):
        bridge = FakeBridge()
        channel = _channel(bridge)
        await channel.refresh_status()
        assert await channel.login() is None
        assert [r.url.path for r in bridge.requests] == ["/status"]

    @pytest.mark.asyncio
    async def test_login_returns_qr_code(self):
        channel = _channel(FakeBridge({"state": "awaiting_login"}))
        await channel.refresh_status()
        assert await channel.login() == "data:image/png;base64,QR"
        assert channel.state == ChannelState.AWAITING_LOGIN

    @pytest.mark.asyncio
    async def test_logout(self):
        bridge = FakeBridge()
        channel = _channel(bridge)
        await channel.refresh_status()
        await channel.logout()
        assert bridge.requests[-1].url.path == "/logout"
        assert channel.state == ChannelState.AWAITING_LOGIN
        assert not channel.ready
