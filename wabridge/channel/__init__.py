"""Channel module: the WhatsApp side of the bridge.

Public API: Channel protocol, notification model, BridgeChannel.
"""

from wabridge.channel.bridge import BridgeChannel
from wabridge.channel.protocol import (
    Channel,
    ChannelNotification,
    ChannelState,
    MessageKind,
)

__all__ = [
    "BridgeChannel",
    "Channel",
    "ChannelNotification",
    "ChannelState",
    "MessageKind",
]
