"""Streaming schemas for the event-stream relay.

Defines the EventFrame tagged union carried by each wire record and the
ReassembledResponse produced on the receiving side.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)

from nimbus.schemas.messages import TokenUsage


class FrameKind(StrEnum):
    """Which tag of an EventFrame is populated."""

    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


class StreamState(StrEnum):
    """Lifecycle of a reassembled stream. COMPLETE and FAILED are terminal."""

    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


class EventFrame(BaseModel):
    """One step of an event stream: a text chunk, completion, or error.

    Exactly one of ``chunk``, ``done`` or ``error`` is populated. ``usage``
    may only accompany a ``done`` frame; usage that does not validate is
    read as absent.
    """

    model_config = ConfigDict(frozen=True)

    chunk: str | None = Field(default=None, description="Fragment text")
    done: bool = Field(default=False, description="True on the terminal success frame")
    usage: TokenUsage | None = Field(default=None, description="Final token accounting")
    error: str | None = Field(default=None, description="Failure message")

    @field_validator("usage", mode="wrap")
    @classmethod
    def _lenient_usage(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> TokenUsage | None:
        # Usage that fails validation becomes None; the frame itself still stands
        try:
            return handler(value)
        except ValidationError:
            return None

    @model_validator(mode="after")
    def _exactly_one_tag(self) -> EventFrame:
        tags = [self.chunk is not None, self.done, self.error is not None]
        if sum(tags) != 1:
            raise ValueError("exactly one of chunk, done or error must be set")
        if self.usage is not None and not self.done:
            raise ValueError("usage is only allowed on a done frame")
        return self

    @classmethod
    def chunk_frame(cls, text: str) -> EventFrame:
        return cls(chunk=text)

    @classmethod
    def done_frame(cls, usage: TokenUsage | None = None) -> EventFrame:
        return cls(done=True, usage=usage or TokenUsage())

    @classmethod
    def error_frame(cls, message: str) -> EventFrame:
        return cls(error=message)

    @property
    def kind(self) -> FrameKind:
        if self.chunk is not None:
            return FrameKind.CHUNK
        if self.done:
            return FrameKind.DONE
        return FrameKind.ERROR

    @property
    def is_terminal(self) -> bool:
        return self.kind is not FrameKind.CHUNK

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON object written on the wire for this frame."""
        if self.kind is FrameKind.CHUNK:
            return {"chunk": self.chunk}
        if self.kind is FrameKind.DONE:
            usage = self.usage.model_dump() if self.usage else None
            return {"done": True, "usage": usage}
        return {"error": self.error}


class ReassembledResponse(BaseModel):
    """Immutable result of consuming one event stream."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(default="", description="Concatenation of every chunk, in arrival order")
    chunk_count: int = Field(default=0, ge=0, description="Number of chunk frames applied")
    state: StreamState = Field(description="Terminal state the stream ended in")
    usage: TokenUsage | None = Field(default=None, description="Usage from the done frame")
    error: str | None = Field(default=None, description="Failure reason when state is FAILED")

    @property
    def ok(self) -> bool:
        return self.state is StreamState.COMPLETE
