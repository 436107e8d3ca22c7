"""Request correlator: ties an outgoing message to the reply it causes.

The channel does not tell us which reply belongs to which send. After
dispatching, the correlator polls the registry's current identifier until
the reply shows up, then waits for it to be finalized.

Only one send may be outstanding: the designated sink and the current
identifier are single slots. A second send while one is in flight is
rejected with Busy instead of stealing the first send's reply.
"""

from __future__ import annotations

import asyncio
import logging

from wabridge.channel.protocol import Channel
from wabridge.relay.errors import (
    Busy,
    ChannelClosed,
    ChannelNotReady,
    ChannelSendFailed,
    NoResponseObserved,
    RelayError,
)
from wabridge.relay.registry import StreamRegistry
from wabridge.relay.sinks import ChatResult, OutputSink, StreamingSink

logger = logging.getLogger(__name__)


class RequestCorrelator:
    """Single-flight bridge between callers and the stream registry."""

    def __init__(
        self,
        channel: Channel,
        registry: StreamRegistry,
        *,
        poll_interval: float = 0.1,
        poll_attempts: int = 50,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._poll_interval = poll_interval
        self._poll_attempts = poll_attempts
        self._in_flight = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self._in_flight

    def _acquire(self) -> None:
        if not self._channel.ready:
            raise ChannelNotReady(
                "WhatsApp client is not fully initialized or Meta AI chat is not available."
            )
        if self._in_flight:
            raise Busy("Another message is still waiting for its reply.")
        self._in_flight = True

    def _release(self) -> None:
        self._in_flight = False
        self._registry.release()

    async def send(self, message: str, sink: OutputSink | None = None) -> ChatResult:
        """Send a message and wait for the complete reply.

        With a streaming sink, chunks are written to it as they arrive and
        the returned result is the same content the sink received.
        """
        self._acquire()
        try:
            return await self._correlate(message, sink)
        finally:
            self._release()

    def open_stream(self, message: str) -> StreamingSink:
        """Reserve the flight slot now and stream the reply into a new sink.

        Precondition failures raise here, before any response is started.
        Later failures are raised from the sink's iterator.
        """
        self._acquire()
        sink = StreamingSink()
        task = asyncio.create_task(self._drive_stream(message, sink), name="relay-stream")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Stream mode enabled for message")
        return sink

    async def _drive_stream(self, message: str, sink: StreamingSink) -> None:
        try:
            await self._correlate(message, sink)
        except asyncio.CancelledError:
            sink.fail(ChannelClosed("Stream cancelled during shutdown"))
            raise
        except Exception as e:
            logger.warning("Streaming send failed: %s", e)
            sink.fail(e)
        finally:
            self._release()

    async def _correlate(self, message: str, sink: OutputSink | None) -> ChatResult:
        self._registry.designate(sink)

        try:
            await self._channel.send_outgoing(message)
        except RelayError:
            raise
        except Exception as e:
            logger.error("Outgoing message failed: %s", e)
            raise ChannelSendFailed(f"Failed to send message: {e}") from e

        stream_id = await self._wait_for_reply()
        if stream_id is None:
            raise NoResponseObserved("No reply from Meta AI was observed after sending.")

        result = self._registry.claim(stream_id)
        if result is None:
            raise NoResponseObserved(f"No pending reply found for {stream_id}")

        # Shielded so a cancelled caller does not cancel the registry's future
        return await asyncio.shield(result)

    async def _wait_for_reply(self) -> str | None:
        for _ in range(self._poll_attempts):
            stream_id = self._registry.reply_id
            if stream_id is not None:
                return stream_id
            await asyncio.sleep(self._poll_interval)
        return self._registry.reply_id

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
