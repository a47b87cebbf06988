"""Message schemas exchanged between agents and the HTTP layer.

Defines token accounting, the one-shot agent reply, the incoming query
body, and the structured weather report.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from nimbus.prompts import city_question


class TokenUsage(BaseModel):
    """Token consumption and cost tracking for a single agent call."""

    prompt_tokens: int = Field(default=0, ge=0, description="Number of input tokens consumed")
    completion_tokens: int = Field(
        default=0, ge=0, description="Number of output tokens generated"
    )
    cost: float = Field(default=0.0, ge=0.0, description="Estimated cost in USD for this call")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class AgentReply(BaseModel):
    """Full, non-streamed answer produced by an agent."""

    text: str = Field(description="The complete response text")
    usage: TokenUsage = Field(default_factory=TokenUsage, description="Token usage for the call")
    model: str = Field(default="", description="Model identifier that produced the reply")


class WeatherQuery(BaseModel):
    """Request body accepted by the query and streaming endpoints.

    Either a free-text ``message`` or a ``city`` must be present. When only
    the city is given, the query sent to the agent is synthesized from it.
    """

    message: str | None = Field(default=None, description="Free-text weather question")
    city: str | None = Field(default=None, description="Location used to build a question")

    def resolve(self) -> str | None:
        """Return the effective question, or None when nothing usable was sent."""
        if self.message and self.message.strip():
            return self.message.strip()
        if self.city and self.city.strip():
            return city_question(self.city)
        return None


class WeatherReport(BaseModel):
    """Structured weather answer with activity recommendations."""

    location: str = Field(description="Location the report describes")
    temperature: float = Field(description="Current temperature in degrees Celsius")
    conditions: str = Field(description="Short description of current conditions")
    summary: str = Field(description="A brief summary of the weather")
    recommendations: list[str] = Field(
        default_factory=list, description="Activity recommendations based on weather"
    )


class StructuredRequest(BaseModel):
    """Request body for the structured-output endpoint."""

    city: str | None = Field(default=None, description="Location to report on")
