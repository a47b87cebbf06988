"""Frame encoder: one EventFrame in, one ``data: <json>\\n\\n`` record out."""

from __future__ import annotations

import json

from nimbus.schemas.messages import TokenUsage
from nimbus.schemas.streaming import EventFrame

FRAME_PREFIX = "data:"
RECORD_TERMINATOR = "\n\n"


def encode_frame(frame: EventFrame) -> bytes:
    """Serialize ``frame`` into a UTF-8 event-stream record.

    JSON escaping keeps newlines out of the payload, so the blank-line
    terminator can never appear inside a record.
    """
    payload = json.dumps(frame.to_payload(), ensure_ascii=False)
    return f"{FRAME_PREFIX} {payload}{RECORD_TERMINATOR}".encode()


def encode_chunk(text: str) -> bytes:
    return encode_frame(EventFrame.chunk_frame(text))


def encode_done(usage: TokenUsage | None = None) -> bytes:
    return encode_frame(EventFrame.done_frame(usage))
