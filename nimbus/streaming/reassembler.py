"""Reassembler: rebuilds the response text from a stream of event frames.

Drives the read loop over a byte stream, feeds a FrameDecoder, appends
chunk text in arrival order and notifies an observer after each append.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Callable
from typing import Any

from nimbus.schemas.messages import TokenUsage
from nimbus.schemas.streaming import EventFrame, FrameKind, ReassembledResponse, StreamState
from nimbus.streaming.decoder import FrameDecoder

logger = logging.getLogger(__name__)

# Observer invoked with each chunk's text; may be sync or async
ChunkObserver = Callable[[str], Any]


class Reassembler:
    """Accumulates chunk frames until a terminal frame or a failure.

    State moves from STREAMING to COMPLETE on a done frame, or to FAILED
    on an error frame, a read failure, or a stream that ends without a
    terminal frame. Once terminal, no further frames are applied.
    """

    def __init__(self, on_chunk: ChunkObserver | None = None) -> None:
        self._on_chunk = on_chunk
        self._fragments: list[str] = []
        self.state = StreamState.STREAMING
        self.usage: TokenUsage | None = None
        self.error: str | None = None
        self.dropped = 0

    @property
    def text(self) -> str:
        """Everything received so far, in arrival order."""
        return "".join(self._fragments)

    @property
    def fragments(self) -> tuple[str, ...]:
        return tuple(self._fragments)

    @property
    def finished(self) -> bool:
        return self.state is not StreamState.STREAMING

    async def apply(self, frame: EventFrame) -> None:
        """Apply one decoded frame. Ignored once the stream is terminal."""
        if self.finished:
            logger.debug("Ignoring %s frame after %s", frame.kind, self.state)
            return

        if frame.kind is FrameKind.CHUNK:
            self._fragments.append(frame.chunk)
            if self._on_chunk is not None:
                result = self._on_chunk(frame.chunk)
                if asyncio.iscoroutine(result):
                    await result
        elif frame.kind is FrameKind.DONE:
            self.usage = frame.usage
            self.state = StreamState.COMPLETE
        else:
            self._fail(frame.error or "stream reported an error")

    async def consume(self, chunks: AsyncIterable[bytes]) -> ReassembledResponse:
        """Read ``chunks`` until a terminal frame or the end of the stream.

        Read failures mark the stream FAILED rather than raising.
        Exceptions raised by the observer propagate to the caller.
        """
        decoder = FrameDecoder()
        iterator = aiter(chunks)
        try:
            while not self.finished:
                try:
                    data = await anext(iterator)
                except StopAsyncIteration:
                    break
                except Exception as exc:
                    logger.warning("Stream read failed: %s", exc)
                    self._fail(f"read failed: {exc}")
                    break

                for frame in decoder.feed(data):
                    await self.apply(frame)
                    if self.finished:
                        break
        finally:
            decoder.close()
            self.dropped = decoder.dropped

        if not self.finished:
            self._fail("stream closed before a terminal frame")
        return self.result()

    def result(self) -> ReassembledResponse:
        """Snapshot of the current state as an immutable response."""
        return ReassembledResponse(
            text=self.text,
            chunk_count=len(self._fragments),
            state=self.state,
            usage=self.usage,
            error=self.error,
        )

    def _fail(self, reason: str) -> None:
        self.state = StreamState.FAILED
        self.error = reason
