"""Relay: turns Meta AI's edit-in-place replies into results and delta streams.

Public API: StreamRegistry, RequestCorrelator, the sinks, chunk helpers
and the error types.
"""

from wabridge.relay.chunks import DONE_SENTINEL, compute_delta, encode_chunk
from wabridge.relay.correlator import RequestCorrelator
from wabridge.relay.detector import CompletionDetector
from wabridge.relay.errors import (
    Busy,
    ChannelClosed,
    ChannelNotReady,
    ChannelSendFailed,
    NoResponseObserved,
    RelayError,
)
from wabridge.relay.registry import MEDIA_PLACEHOLDER, MessageStream, StreamRegistry
from wabridge.relay.sinks import (
    ChatResult,
    OutputSink,
    SingleShotSink,
    SinkClosed,
    StreamingSink,
)

__all__ = [
    "DONE_SENTINEL",
    "MEDIA_PLACEHOLDER",
    "compute_delta",
    "encode_chunk",
    # Components
    "CompletionDetector",
    "MessageStream",
    "RequestCorrelator",
    "StreamRegistry",
    # Sinks
    "ChatResult",
    "OutputSink",
    "SingleShotSink",
    "SinkClosed",
    "StreamingSink",
    # Errors
    "Busy",
    "ChannelClosed",
    "ChannelNotReady",
    "ChannelSendFailed",
    "NoResponseObserved",
    "RelayError",
]
