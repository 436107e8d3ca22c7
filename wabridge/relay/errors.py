"""Failures surfaced to callers of the relay.

Each error carries a stable code and the HTTP status the REST layer
answers with. Nothing here is retried internally.
"""

from __future__ import annotations


class RelayError(Exception):
    code = "relay_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChannelNotReady(RelayError):
    """The channel is not logged in, or the Meta AI chat is not available."""

    code = "channel_not_ready"
    status_code = 503


class Busy(RelayError):
    """Another send is still waiting for its reply."""

    code = "busy"
    status_code = 409


class NoResponseObserved(RelayError):
    """The message went out but no reply was created in time."""

    code = "no_response_observed"
    status_code = 504


class ChannelSendFailed(RelayError):
    code = "channel_send_failed"
    status_code = 502


class ChannelClosed(RelayError):
    code = "channel_closed"
    status_code = 503
