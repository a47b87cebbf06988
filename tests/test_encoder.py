"""Tests for nimbus.streaming.encoder."""

from __future__ import annotations

import json

from nimbus.schemas.messages import TokenUsage
from nimbus.schemas.streaming import EventFrame
from nimbus.streaming.encoder import encode_chunk, encode_done, encode_frame


def _payload(record: bytes) -> dict:
    text = record.decode("utf-8")
    assert text.startswith("data: ")
    assert text.endswith("\n\n")
    return json.loads(text[len("data: "):-2])


class TestEncodeFrame:
    def test_chunk_record(self):
        assert encode_chunk("Hi") == b'data: {"chunk": "Hi"}\n\n'

    def test_done_record_carries_usage(self):
        usage = TokenUsage(prompt_tokens=12, completion_tokens=4, cost=0.25)
        assert _payload(encode_done(usage)) == {
            "done": True,
            "usage": {"prompt_tokens": 12, "completion_tokens": 4, "cost": 0.25},
        }

    def test_done_record_without_usage_reports_zero(self):
        assert _payload(encode_done())["usage"] == {
            "prompt_tokens": 0, "completion_tokens": 0, "cost": 0.0,
        }

    def test_error_record(self):
        assert _payload(encode_frame(EventFrame.error_frame("boom"))) == {"error": "boom"}

    def test_newlines_in_text_stay_inside_one_record(self):
        record = encode_chunk("line one\n\nline two\r\n")
        # Only the terminator may contain a raw newline
        assert record.count(b"\n") == 2
        assert record.endswith(b"\n\n")
        assert _payload(record) == {"chunk": "line one\n\nline two\r\n"}

    def test_non_ascii_is_utf8(self):
        record = encode_chunk("☀ 25°C in Zürich")
        assert "☀ 25°C in Zürich".encode() in record

    def test_empty_chunk(self):
        assert _payload(encode_chunk("")) == {"chunk": ""}
