"""Completion detection by silence.

The channel never signals that a reply is finished. A reply is treated as
final once no edit has arrived for a while: creation_timeout after it
appears, or edit_timeout after the latest edit. A slow reply that pauses
longer than that is finalized early.

Timer state (handle + generation) lives on the MessageStream. Every
(re)schedule bumps the generation, so a callback from a superseded timer
is a no-op even if cancelling it raced with its firing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from wabridge.relay.registry import MessageStream

logger = logging.getLogger(__name__)


class CompletionDetector:
    """Schedules on_silence(stream_id) after a period without edits."""

    def __init__(
        self,
        on_silence: Callable[[str], None],
        creation_timeout: float = 6.0,
        edit_timeout: float = 3.0,
    ) -> None:
        self._on_silence = on_silence
        self.creation_timeout = creation_timeout
        self.edit_timeout = edit_timeout

    def on_created(self, stream: MessageStream) -> None:
        self._schedule(stream, self.creation_timeout)

    def on_edited(self, stream: MessageStream) -> None:
        self._schedule(stream, self.edit_timeout)

    def cancel(self, stream: MessageStream) -> None:
        """Drop any live timer. Bumping the generation invalidates in-flight callbacks."""
        stream.timer_generation += 1
        if stream.completion_timer is not None:
            stream.completion_timer.cancel()
            stream.completion_timer = None

    def _schedule(self, stream: MessageStream, delay: float) -> None:
        self.cancel(stream)
        generation = stream.timer_generation
        loop = asyncio.get_running_loop()
        stream.completion_timer = loop.call_later(delay, self._fire, stream, generation)
        stream.finalize_at = loop.time() + delay

    def _fire(self, stream: MessageStream, generation: int) -> None:
        if generation != stream.timer_generation or stream.is_complete:
            logger.debug("Ignoring stale completion timer for %s", stream.id)
            return
        stream.completion_timer = None
        logger.debug("Stream %s silent, finalizing", stream.id)
        self._on_silence(stream.id)
