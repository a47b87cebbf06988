"""Response envelopes returned by the HTTP API and the form actions."""

from __future__ import annotations

from pydantic import BaseModel, Field

from nimbus.schemas.messages import TokenUsage, WeatherReport


class ErrorEnvelope(BaseModel):
    """Body of every non-2xx JSON response."""

    success: bool = Field(default=False, description="Always False")
    error: str = Field(description="Human-readable failure reason")


class WeatherAnswer(BaseModel):
    """Successful plain request/response answer."""

    success: bool = Field(default=True)
    response: str = Field(description="The agent's answer")
    usage: TokenUsage | None = Field(default=None, description="Token usage for the call")
    city: str | None = Field(default=None, description="City the question was built from")


class StructuredAnswer(BaseModel):
    """Successful structured-output answer."""

    success: bool = Field(default=True)
    data: WeatherReport = Field(description="Validated weather report")


class ActionResult(BaseModel):
    """Outcome of a form action. Failures are reported, never raised."""

    success: bool = Field(description="Whether the agent produced an answer")
    response: str | None = Field(default=None, description="The agent's answer")
    city: str | None = Field(default=None, description="City submitted with the form")
    usage: TokenUsage | None = Field(default=None, description="Token usage for the call")
    error: str | None = Field(default=None, description="Failure reason when success is False")
