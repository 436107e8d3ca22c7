"""Boundary with the process that drives WhatsApp Web.

The bridge logs in (QR pairing), finds the Meta AI chat, types outgoing
messages and reports message_create / message_edit notifications. The
relay only needs the small Channel surface below.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, model_validator

MessageKind = Literal["text", "media"]
NotificationType = Literal[
    "message_create",
    "message_edit",
    "qr",
    "ready",
    "disconnected",
    "chat_unavailable",
]
MESSAGE_EVENTS = ("message_create", "message_edit")


class ChannelState(StrEnum):
    INITIALIZING = "initializing"
    AWAITING_LOGIN = "awaiting_login"
    READY = "ready"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


@runtime_checkable
class Channel(Protocol):
    @property
    def ready(self) -> bool: ...

    async def send_outgoing(self, text: str) -> None: ...

    async def mark_seen(self, external_id: str) -> None: ...


class ChannelNotification(BaseModel):
    """One notification posted by the bridge to the webhook."""

    event: NotificationType
    external_id: str | None = None
    from_self: bool = False
    body: str = ""
    kind: MessageKind = "text"
    placeholder: bool = False  # "Meta AI is typing" bubble
    qr_code_url: str | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def _require_id_for_messages(self) -> "ChannelNotification":
        if self.event in MESSAGE_EVENTS and not self.external_id:
            raise ValueError(f"{self.event} requires external_id")
        return self
