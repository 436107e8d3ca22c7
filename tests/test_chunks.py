"""Tests for delta chunk encoding (pure functions)."""

import logging

from wabridge.relay.chunks import (
    CHUNK_OBJECT,
    chunk_delta,
    compute_delta,
    encode_chunk,
    is_final_chunk,
)


class TestComputeDelta:
    def test_appended_suffix(self):
        """Only the newly appended text is returned."""
        assert compute_delta("s1", "Hel", "Hello") == "lo"

    def test_nothing_sent_yet(self):
        assert compute_delta("s1", "", "Hel") == "Hel"

    def test_unchanged_body_gives_empty_delta(self):
        assert compute_delta("s1", "Hello", "Hello") == ""

    def test_shrunk_content_resends_everything(self, caplog):
        """Content that shrank is resent whole, never sliced out of range."""
        with caplog.at_level(logging.WARNING):
            assert compute_delta("s1", "Hello there", "Hello") == "Hello"
        assert "diverged" in caplog.text

    def test_diverged_content_resends_everything(self):
        assert compute_delta("s1", "Hello", "Goodbye") == "Goodbye"


class TestEncodeChunk:
    def test_delta_chunk_shape(self):
        """Non-final chunks carry the delta and no finish_reason."""
        chunk = encode_chunk("msg-1", "Hel", "Hello there", model="m")
        assert chunk["id"] == "msg-1"
        assert chunk["object"] == CHUNK_OBJECT
        assert chunk["model"] == "m"
        assert isinstance(chunk["created"], int)
        choice = chunk["choices"][0]
        assert choice["index"] == 0
        assert choice["delta"] == {"content": "lo there"}
        assert choice["finish_reason"] is None
        assert not is_final_chunk(chunk)

    def test_final_chunk_has_empty_delta_and_stop(self):
        """The final chunk carries no content and finish_reason 'stop'."""
        chunk = encode_chunk("msg-1", "Hello", "Hello", is_final=True)
        assert chunk["choices"][0]["delta"] == {}
        assert chunk["choices"][0]["finish_reason"] == "stop"
        assert is_final_chunk(chunk)
        assert chunk_delta(chunk) == ""

    def test_deltas_concatenate_to_final_body(self):
        """Concatenated deltas of a growing body reproduce it exactly."""
        bodies = ["Hel", "Hello", "Hello there", "Hello there, how can I help?"]
        sent = ""
        pieces = []
        for body in bodies:
            pieces.append(chunk_delta(encode_chunk("s", sent, body)))
            sent = body
        assert "".join(pieces) == bodies[-1]
