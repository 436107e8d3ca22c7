"""Delta chunks for streaming replies.

A reply is edited in place, so each notification carries the full text so
far. encode_chunk turns (already sent, current) into the newly revealed
suffix, shaped as an OpenAI chat.completion.chunk.
"""

from __future__ import annotations

import logging
import time
from typing import Any

logger = logging.getLogger(__name__)

CHUNK_OBJECT = "chat.completion.chunk"
DEFAULT_MODEL = "meta-ai-whatsapp"

# Written once after the final chunk
DONE_SENTINEL = "[DONE]"


def compute_delta(stream_id: str, previous: str, current: str) -> str:
    """Return the part of current not yet sent.

    Edits normally only extend the text. If the text shrank or diverged,
    the whole current text is sent again.
    """
    if current.startswith(previous):
        return current[len(previous):]
    logger.warning(
        "Stream %s diverged from sent content (%d sent, %d current chars), resending full text",
        stream_id,
        len(previous),
        len(current),
    )
    return current


def encode_chunk(
    stream_id: str,
    previous: str,
    current: str,
    is_final: bool = False,
    *,
    model: str = DEFAULT_MODEL,
) -> dict[str, Any]:
    """Build one chunk. The final chunk has an empty delta and finish_reason "stop"."""
    if is_final:
        delta: dict[str, str] = {}
    else:
        delta = {"content": compute_delta(stream_id, previous, current)}
    return {
        "id": stream_id,
        "object": CHUNK_OBJECT,
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": "stop" if is_final else None,
            }
        ],
    }


def chunk_delta(chunk: dict[str, Any]) -> str:
    """Text carried by a chunk ("" for the final one)."""
    return chunk["choices"][0]["delta"].get("content", "")


def is_final_chunk(chunk: dict[str, Any]) -> bool:
    return chunk["choices"][0]["finish_reason"] == "stop"
