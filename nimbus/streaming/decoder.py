"""Frame decoder for event-stream bodies read in arbitrary chunks.

Network reads never line up with record boundaries: a read can end in
the middle of a multi-byte character, the ``data:`` prefix, the JSON
payload or the terminator. The decoder keeps everything after the last
complete record in its buffer until the next read completes it.
"""

from __future__ import annotations

import codecs
import json
import logging

from nimbus.schemas.streaming import EventFrame
from nimbus.streaming.encoder import FRAME_PREFIX, RECORD_TERMINATOR

logger = logging.getLogger(__name__)


class FrameDecoder:
    """Turns raw byte chunks into EventFrames, in order.

    One decoder serves one connection. Records that fail to parse are
    dropped and counted in ``dropped``; they never raise.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False
        self.dropped = 0

    @property
    def pending(self) -> str:
        """Text received but not yet resolved into a complete record."""
        return self._buffer

    def feed(self, data: bytes) -> list[EventFrame]:
        """Append one network read and return every frame it completes."""
        if self._closed:
            raise RuntimeError("feed() called on a closed FrameDecoder")
        if not data:
            return []

        self._buffer += self._utf8.decode(data)
        # A lone "\r" at the end waits for its "\n" from the next read
        self._buffer = self._buffer.replace("\r\n", "\n")

        *records, self._buffer = self._buffer.split(RECORD_TERMINATOR)

        frames: list[EventFrame] = []
        for record in records:
            frame = self._parse_record(record)
            if frame is not None:
                frames.append(frame)
        return frames

    def close(self) -> str:
        """Discard any unterminated trailing record and return it."""
        self._closed = True
        leftover = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        if leftover.strip():
            logger.debug("Discarding %d unterminated characters", len(leftover))
        return leftover

    def _parse_record(self, record: str) -> EventFrame | None:
        data_lines = [
            _strip_field(line[len(FRAME_PREFIX):])
            for line in record.split("\n")
            if line.startswith(FRAME_PREFIX)
        ]
        if not data_lines:
            # Comments and keep-alives carry no data line
            return None

        payload = "\n".join(data_lines)
        # ValueError covers JSONDecodeError, oversized integers and ValidationError
        try:
            return EventFrame.model_validate(json.loads(payload))
        except (ValueError, TypeError, RecursionError):
            self.dropped += 1
            logger.debug("Dropping malformed record: %.80r", payload)
            return None


def _strip_field(value: str) -> str:
    return value[1:] if value.startswith(" ") else value
