"""HTTP client for the WhatsApp Web bridge process.

Bridge endpoints:
  GET  /status  - {"state": ..., "chat_available": bool}
  GET  /qr      - {"qr_code_url": "data:image/png;base64,..."} (starts pairing)
  POST /send    - {"text": ...}  type a message into the Meta AI chat
  POST /seen    - {"external_id": ...}  mark the chat as read
  POST /logout  - end the WhatsApp session

Lifecycle state is refreshed by polling /status and by lifecycle
notifications (qr / ready / disconnected / chat_unavailable) the bridge
posts to our webhook.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from wabridge.channel.protocol import ChannelNotification, ChannelState
from wabridge.config import Settings

logger = logging.getLogger(__name__)


class BridgeChannel:
    """Channel implementation backed by the bridge's HTTP API."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=settings.bridge_url.rstrip("/"),
            timeout=httpx.Timeout(settings.bridge_timeout),
        )
        self.state = ChannelState.INITIALIZING
        self.chat_available = False
        self.qr_code_url: str | None = None
        self.last_ready_at: float | None = None
        self._task: asyncio.Task | None = None

    @property
    def ready(self) -> bool:
        return self.state == ChannelState.READY and self.chat_available

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Read the bridge status once, then keep polling in the background."""
        await self.refresh_status()
        self._task = asyncio.create_task(self._poll_loop(), name="bridge-status")
        logger.info("Bridge channel started (%s, state=%s)", self._settings.bridge_url, self.state)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._set_state(ChannelState.CLOSED)
        if self._owns_http:
            await self._http.aclose()

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._settings.status_poll_interval)
                await self.refresh_status()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Bridge status poll failed")

    async def refresh_status(self) -> None:
        try:
            response = await self._http.get("/status")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Bridge status unavailable: %s", e)
            self._set_state(ChannelState.DISCONNECTED)
            return

        try:
            state = ChannelState(data.get("state", ChannelState.DISCONNECTED))
        except ValueError:
            logger.warning("Unknown bridge state: %s", data.get("state"))
            state = ChannelState.DISCONNECTED
        self.chat_available = bool(data.get("chat_available", False))
        self._set_state(state)

    def apply_notification(self, notification: ChannelNotification) -> None:
        """Update lifecycle state from a bridge notification."""
        if notification.event == "qr":
            self.qr_code_url = notification.qr_code_url
            self._set_state(ChannelState.AWAITING_LOGIN)
        elif notification.event == "ready":
            self.chat_available = True
            self.qr_code_url = None
            self._set_state(ChannelState.READY)
        elif notification.event == "chat_unavailable":
            logger.error("Meta AI chat not found: %s", notification.reason or "unknown reason")
            self.chat_available = False
        elif notification.event == "disconnected":
            logger.warning("WhatsApp disconnected: %s", notification.reason or "unknown reason")
            self.chat_available = False
            self._set_state(ChannelState.DISCONNECTED)

    def _set_state(self, state: ChannelState) -> None:
        if state == self.state:
            return
        logger.info("Channel state %s -> %s", self.state, state)
        self.state = state
        if state == ChannelState.READY:
            self.last_ready_at = time.time()

    def status(self) -> dict[str, Any]:
        return {
            "state": str(self.state),
            "ready": self.ready,
            "chat_available": self.chat_available,
            "last_ready_at": self.last_ready_at,
        }

    # ------------------------------------------------------------------
    # Channel operations
    # ------------------------------------------------------------------

    async def send_outgoing(self, text: str) -> None:
        response = await self._http.post("/send", json={"text": text})
        response.raise_for_status()
        logger.debug("Sent %d chars to Meta AI", len(text))

    async def mark_seen(self, external_id: str) -> None:
        response = await self._http.post("/seen", json={"external_id": external_id})
        response.raise_for_status()

    async def login(self) -> str | None:
        """Start pairing. Returns a QR code data URL, or None when already logged in."""
        if self.ready:
            return None
        response = await self._http.get("/qr")
        response.raise_for_status()
        self.qr_code_url = response.json().get("qr_code_url")
        if self.qr_code_url:
            self._set_state(ChannelState.AWAITING_LOGIN)
        return self.qr_code_url

    async def logout(self) -> None:
        response = await self._http.post("/logout")
        response.raise_for_status()
        self.chat_available = False
        self.qr_code_url = None
        self._set_state(ChannelState.AWAITING_LOGIN)
        logger.info("WhatsApp client logged out successfully.")
