"""Event-stream transport and the relay that drives it.

The relay runs as its own task and pushes encoded frames into a bounded
queue; the HTTP response body pulls them out. The queue is the only
thing the two sides share: a full queue suspends the relay, an empty
one suspends the response.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import TYPE_CHECKING

from nimbus.streaming.encoder import encode_chunk, encode_done

if TYPE_CHECKING:
    from nimbus.agents.base import WeatherAgent

logger = logging.getLogger(__name__)

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"

EVENT_STREAM_HEADERS: dict[str, str] = {
    "Content-Type": EVENT_STREAM_MEDIA_TYPE,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class StreamClosedError(RuntimeError):
    """Raised when writing to a transport that can no longer deliver."""


class StreamAbortedError(RuntimeError):
    """Raised from the response body when the relay aborted mid-stream."""


class TransportState(StrEnum):
    """Lifecycle of a StreamTransport."""

    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    ABORTED = "aborted"
    DISCONNECTED = "disconnected"


class _End:
    """Queue marker for a clean end of stream."""


class _Abort:
    """Queue marker carrying the error that ended the stream."""

    def __init__(self, error: BaseException) -> None:
        self.error = error


class StreamTransport:
    """Half-duplex byte channel from the relay to one HTTP response.

    Usage:
        transport = StreamTransport(capacity=16)
        headers = transport.open()
        ...relay task calls write() / close() / abort()...
        first = await transport.first_envelope()
        return StreamingResponse(transport.body(), headers=headers)
    """

    def __init__(self, capacity: int = 16) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._queue: asyncio.Queue[bytes | _End | _Abort] = asyncio.Queue(maxsize=capacity)
        self._state = TransportState.PENDING
        self._held: bytes | _End | None = None
        self.bytes_written = 0

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def writable(self) -> bool:
        return self._state in (TransportState.PENDING, TransportState.OPEN)

    def open(self) -> dict[str, str]:
        """Begin the stream and return the response headers to send."""
        if self._state is TransportState.PENDING:
            self._state = TransportState.OPEN
        return dict(EVENT_STREAM_HEADERS)

    async def write(self, envelope: bytes) -> None:
        """Queue one encoded frame, waiting while the queue is full.

        Raises:
            StreamClosedError: After close(), abort() or a consumer disconnect.
        """
        if not self.writable:
            raise StreamClosedError(f"Cannot write to a {self._state} stream")
        await self._queue.put(envelope)
        self.bytes_written += len(envelope)

    async def close(self) -> None:
        """Mark the end of the stream after the terminal frame was written."""
        if not self.writable:
            return
        self._state = TransportState.CLOSED
        await self._queue.put(_End())

    async def abort(self, error: BaseException) -> None:
        """End the stream without a terminal frame.

        The response body raises StreamAbortedError once it reaches this
        point, so the connection is torn down instead of closed cleanly.
        """
        if not self.writable:
            return
        self._state = TransportState.ABORTED
        await self._queue.put(_Abort(error))

    def disconnect(self) -> None:
        """Consumer went away: fail future writes and wake a blocked writer."""
        if self._state in (TransportState.CLOSED, TransportState.ABORTED):
            return
        self._state = TransportState.DISCONNECTED
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def first_envelope(self) -> bytes | None:
        """Wait for the first queued item before the response starts.

        Returns the first frame (held back and replayed by ``body()``), or
        None if the stream closed without writing anything.

        Raises:
            Exception: The relay's error, if it aborted before writing.
        """
        item = await self._queue.get()
        if isinstance(item, _Abort):
            raise item.error
        self._held = item
        return item if isinstance(item, bytes) else None

    async def body(self) -> AsyncIterator[bytes]:
        """Yield queued frames until the stream closes or aborts."""
        finished = False
        try:
            item = self._held if self._held is not None else await self._queue.get()
            self._held = None
            while True:
                if isinstance(item, _End):
                    finished = True
                    return
                if isinstance(item, _Abort):
                    finished = True
                    raise StreamAbortedError(f"Stream aborted: {item.error}") from item.error
                yield item
                item = await self._queue.get()
        finally:
            if not finished:
                self.disconnect()


class FragmentRelay:
    """Pulls fragments from an agent and writes them to a transport.

    The agent is supplied at construction; the relay never looks agents
    up by itself.
    """

    def __init__(self, agent: WeatherAgent, transport: StreamTransport) -> None:
        self._agent = agent
        self._transport = transport
        self.fragments_sent = 0

    async def run(self, query: str) -> None:
        """Relay one query's fragments, then a done frame, then close.

        Any failure while pulling, encoding or writing aborts the
        transport instead. The fragment source is always closed.
        """
        self._transport.open()
        try:
            source = self._agent.stream(query)
        except Exception as exc:
            logger.warning("Could not start stream from %s: %s", self._agent.display_name, exc)
            await self._transport.abort(exc)
            return

        try:
            async for fragment in source:
                await self._transport.write(encode_chunk(fragment))
                self.fragments_sent += 1
            await self._transport.write(encode_done(source.usage))
        except Exception as exc:
            if isinstance(exc, StreamClosedError):
                logger.info(
                    "Client went away after %d fragments; stopping %s",
                    self.fragments_sent, self._agent.display_name,
                )
            else:
                logger.warning(
                    "Stream from %s failed after %d fragments: %s",
                    self._agent.display_name, self.fragments_sent, exc,
                )
            await self._transport.abort(exc)
        else:
            await self._transport.close()
        finally:
            await source.aclose()

    def start(self, query: str) -> asyncio.Task[None]:
        """Run the relay as a background task on the current loop."""
        task = asyncio.get_running_loop().create_task(self.run(query))
        task.add_done_callback(_log_task_failure)
        return task


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Relay task crashed", exc_info=exc)
