"""Where a finished (or in-progress) reply goes.

SingleShotSink only resolves its result future at finalize.
StreamingSink additionally receives every delta chunk, then the final
chunk and the [DONE] sentinel, and is consumed with ``async for``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

from wabridge.relay.chunks import DONE_SENTINEL

logger = logging.getLogger(__name__)

# Queue marker for end of iteration
_CLOSED = object()


@dataclass(frozen=True)
class ChatResult:
    """Final content of one reply."""

    content: str
    kind: str = "text"


class SinkClosed(RuntimeError):
    """Write attempted on a sink that was already closed."""


def _consume_exception(future: asyncio.Future) -> None:
    # Mark failures as retrieved when nobody awaits the future
    if not future.cancelled():
        future.exception()


class OutputSink:
    """Base sink: owns the single-resolution result future."""

    streaming = False

    def __init__(self) -> None:
        self.result: asyncio.Future[ChatResult] = asyncio.get_running_loop().create_future()
        self.result.add_done_callback(_consume_exception)

    def write(self, chunk: dict[str, Any]) -> None:
        """Deliver a delta chunk. Ignored by non-streaming sinks."""

    def finish(self, result: ChatResult, final_chunk: dict[str, Any]) -> None:
        self.resolve(result)

    def resolve(self, result: ChatResult) -> None:
        if not self.result.done():
            self.result.set_result(result)

    def fail(self, exc: BaseException) -> None:
        if not self.result.done():
            self.result.set_exception(exc)

    def close(self) -> None:
        pass


class SingleShotSink(OutputSink):
    """Sink for callers that only want the complete reply."""


class StreamingSink(OutputSink):
    """Sink for SSE callers.

    Items come out in write order: delta chunks (dicts), the final chunk,
    then DONE_SENTINEL. A failure is raised from the iterator.
    """

    streaming = True

    def __init__(self) -> None:
        super().__init__()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: dict[str, Any]) -> None:
        if self._closed:
            raise SinkClosed(f"sink for stream {chunk.get('id')} is closed")
        self._queue.put_nowait(chunk)

    def finish(self, result: ChatResult, final_chunk: dict[str, Any]) -> None:
        try:
            self.write(final_chunk)
            self._queue.put_nowait(DONE_SENTINEL)
            self.close()
        finally:
            self.resolve(result)

    def fail(self, exc: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(exc)
            self.close()
        super().fail(exc)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[dict[str, Any] | str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            if isinstance(item, BaseException):
                raise item
            yield item
