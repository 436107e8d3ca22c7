"""Notification Router: feeds bridge notifications into the relay.

Listens to: message_create, message_edit, qr, ready, disconnected,
chat_unavailable

Message events go to the stream registry; lifecycle events update the
bridge channel's state.
"""

from __future__ import annotations

import logging

from wabridge.channel.protocol import ChannelNotification
from wabridge.events import Event, EventBus
from wabridge.relay.registry import StreamRegistry

logger = logging.getLogger(__name__)

LIFECYCLE_EVENTS = ("qr", "ready", "disconnected", "chat_unavailable")


class NotificationRouter:
    """Applies bus events carrying a ChannelNotification payload."""

    def __init__(self, bus: EventBus, registry: StreamRegistry, channel: object | None = None):
        self._registry = registry
        self._channel = channel  # BridgeChannel, for lifecycle events

        bus.on("message_create", self.on_created)
        bus.on("message_edit", self.on_edited)
        for event_type in LIFECYCLE_EVENTS:
            bus.on(event_type, self.on_lifecycle)

    async def on_created(self, event: Event) -> None:
        n = ChannelNotification.model_validate(event.data)
        self._registry.observe_created(
            n.external_id,
            n.body,
            n.from_self,
            n.kind,
            placeholder=n.placeholder,
        )

    async def on_edited(self, event: Event) -> None:
        n = ChannelNotification.model_validate(event.data)
        self._registry.observe_edited(n.external_id, n.body, n.from_self)

    async def on_lifecycle(self, event: Event) -> None:
        n = ChannelNotification.model_validate(event.data)
        apply = getattr(self._channel, "apply_notification", None)
        if apply is None:
            logger.debug("No channel to apply %s to", n.event)
            return
        apply(n)
