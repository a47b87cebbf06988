"""Agent registry and server configuration schemas.

Loaded from the TOML files in nimbus/config/. Each agent entry provides
the LiteLLM routing information, capability flags and cost data.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configuration for a single named agent in the registry."""

    provider: str = Field(description="Provider identifier (e.g. 'google', 'openai')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'gemini/gemini-2.5-flash')")
    display_name: str = Field(description="Human-friendly agent name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    instructions: str = Field(
        default="weather_agent", description="Prompt template used as the system prompt"
    )
    supports_structured: bool = Field(
        default=False, description="Whether the model supports structured output"
    )
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature (None = provider default)"
    )
    timeout: int = Field(default=120, gt=0, description="Timeout in seconds for one model call")
    cost_input: float = Field(default=0.0, ge=0.0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(default=0.0, ge=0.0, description="Cost per 1M output tokens in USD")


class ServerConfig(BaseModel):
    """HTTP server defaults."""

    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=8000, gt=0, lt=65536, description="Port to listen on")
    agent: str = Field(default="weather-agent", description="Registry key of the serving agent")
    stream_capacity: int = Field(
        default=16, gt=0, description="Max encoded frames buffered between relay and response"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed by the CORS middleware",
    )
