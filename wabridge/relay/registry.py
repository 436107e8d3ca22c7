"""Stream registry: one MessageStream per Meta AI reply.

Single source of truth for "is this reply still being written". All
methods are synchronous and run on the event loop, so mutations never
interleave. Side effects are limited to timers, sink writes, future
resolution and a best-effort mark-as-seen after finalize.

Lifecycle: created on the first non-self "created" notification, updated
on every edit (body replaced, timer reset), finalized when the detector
reports silence, then removed.

Streaming sinks receive the text the caller will get as the result: a
media reply streams the media placeholder once, never its caption.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from wabridge.relay.chunks import DEFAULT_MODEL, encode_chunk
from wabridge.relay.detector import CompletionDetector
from wabridge.relay.errors import ChannelClosed
from wabridge.relay.sinks import ChatResult, OutputSink, SingleShotSink

logger = logging.getLogger(__name__)

MEDIA_PLACEHOLDER = "[Media content received]"

# Finalized ids remembered so a replayed create cannot reopen a reply
FINISHED_HISTORY = 1024


@dataclass
class MessageStream:
    """Aggregation state for one reply, keyed by the channel's message id."""

    id: str
    body: str
    sink: OutputSink
    kind: str = "text"
    sent_content: str = ""
    is_complete: bool = False
    created_at: float = field(default_factory=time.time)
    last_edit_at: float = field(default_factory=time.time)  # diagnostics only
    completion_timer: asyncio.TimerHandle | None = None
    timer_generation: int = 0
    finalize_at: float | None = None  # loop time the live timer fires

    @property
    def result(self) -> asyncio.Future[ChatResult]:
        return self.sink.result

    @property
    def final_content(self) -> str:
        return self.body if self.kind == "text" else MEDIA_PLACEHOLDER


class StreamRegistry:
    """Owns every in-flight MessageStream plus the correlation slots.

    Two single-valued slots support the one-send-at-a-time correlator:
    the designated sink (attached to the next created stream) and the
    current identifier (the stream created for the latest send).
    """

    def __init__(
        self,
        *,
        creation_timeout: float = 6.0,
        edit_timeout: float = 3.0,
        model: str = DEFAULT_MODEL,
        mark_seen: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self._streams: dict[str, MessageStream] = {}
        self._pending: dict[str, asyncio.Future[ChatResult]] = {}
        self._designated: OutputSink | None = None
        self._current_id: str | None = None
        self._reply_id: str | None = None
        self._model = model
        self._mark_seen = mark_seen
        self._seen_tasks: set[asyncio.Task] = set()
        self._finished: OrderedDict[str, None] = OrderedDict()
        self.detector = CompletionDetector(
            self.finalize,
            creation_timeout=creation_timeout,
            edit_timeout=edit_timeout,
        )

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, stream_id: str) -> bool:
        return stream_id in self._streams

    def get(self, stream_id: str) -> MessageStream | None:
        return self._streams.get(stream_id)

    @property
    def current_id(self) -> str | None:
        return self._current_id

    @property
    def reply_id(self) -> str | None:
        """First reply created since the last designate. Survives finalize."""
        return self._reply_id

    # ------------------------------------------------------------------
    # Correlation slots
    # ------------------------------------------------------------------

    def designate(self, sink: OutputSink | None) -> None:
        """Prepare for a new send: attach sink to the next created stream."""
        self._purge_pending()
        self._designated = sink
        self._current_id = None
        self._reply_id = None

    def release(self) -> None:
        """Forget the designated sink if no stream picked it up."""
        self._designated = None

    def claim(self, stream_id: str) -> asyncio.Future[ChatResult] | None:
        """Take the result future for a stream (PendingCorrelation)."""
        return self._pending.pop(stream_id, None)

    def _purge_pending(self) -> None:
        for stream_id, future in list(self._pending.items()):
            if future.done():
                logger.debug("Dropping unclaimed result for %s", stream_id)
                del self._pending[stream_id]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def observe_created(
        self,
        stream_id: str,
        body: str,
        from_self: bool,
        kind: str = "text",
        *,
        placeholder: bool = False,
    ) -> MessageStream | None:
        if from_self:
            logger.info("User sent: %s", body or "[Media sent]")
            return None
        if placeholder:
            logger.info("Meta AI is typing...")
            return None
        if stream_id in self._streams or stream_id in self._finished:
            logger.debug("Duplicate create for %s ignored", stream_id)
            return None

        sink = self._designated or SingleShotSink()
        self._designated = None
        stream = MessageStream(id=stream_id, body=body or "", sink=sink, kind=kind)
        self._streams[stream_id] = stream
        self._pending[stream_id] = stream.result
        self._current_id = stream_id
        if self._reply_id is None:
            self._reply_id = stream_id
        self.detector.on_created(stream)
        logger.info("Reply %s created (%s, streaming=%s)", stream_id, kind, sink.streaming)

        if sink.streaming and stream.final_content:
            self._emit_delta(stream)
        return stream

    def observe_edited(self, stream_id: str, body: str, from_self: bool) -> None:
        if from_self:
            return
        stream = self._streams.get(stream_id)
        if stream is None or stream.is_complete:
            logger.debug("Edit for unknown or finished reply %s ignored", stream_id)
            return

        stream.body = body or ""
        stream.last_edit_at = time.time()
        if stream.sink.streaming and stream.kind == "text":
            self._emit_delta(stream)
        self.detector.on_edited(stream)

    def _emit_delta(self, stream: MessageStream) -> None:
        chunk = encode_chunk(stream.id, stream.sent_content, stream.final_content, model=self._model)
        try:
            stream.sink.write(chunk)
        except Exception as e:
            logger.warning("Failed to write chunk for %s: %s", stream.id, e)
            return
        stream.sent_content = stream.final_content

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def finalize(self, stream_id: str) -> None:
        stream = self._streams.get(stream_id)
        if stream is None or stream.is_complete:
            return

        stream.is_complete = True
        self.detector.cancel(stream)
        result = ChatResult(content=stream.final_content, kind=stream.kind)
        final_chunk = encode_chunk(
            stream.id, stream.sent_content, stream.final_content, is_final=True, model=self._model
        )

        try:
            stream.sink.finish(result, final_chunk)
        except Exception as e:
            logger.warning("Error completing sink for %s: %s", stream_id, e)
        # A broken sink must still release the waiting caller
        stream.sink.resolve(result)
        stream.sent_content = stream.final_content

        del self._streams[stream_id]
        self._finished[stream_id] = None
        if len(self._finished) > FINISHED_HISTORY:
            self._finished.popitem(last=False)
        if self._current_id == stream_id:
            self._current_id = None
        logger.info("Reply %s completed (%d chars)", stream_id, len(result.content))

        if self._mark_seen is not None:
            task = asyncio.create_task(self._acknowledge(stream_id), name=f"mark-seen-{stream_id}")
            self._seen_tasks.add(task)
            task.add_done_callback(self._seen_tasks.discard)

    async def _acknowledge(self, stream_id: str) -> None:
        try:
            await self._mark_seen(stream_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("mark_seen failed for %s: %s", stream_id, e)

    async def close(self) -> None:
        """Cancel all timers and fail everything still waiting."""
        for stream in list(self._streams.values()):
            self.detector.cancel(stream)
            stream.is_complete = True
            stream.sink.fail(ChannelClosed(f"Channel closed before reply {stream.id} completed"))
        self._streams.clear()
        self._pending.clear()
        self._designated = None
        self._current_id = None
        self._reply_id = None

        tasks = list(self._seen_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
