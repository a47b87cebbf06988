"""Nimbus schema definitions.

All Pydantic v2 models used by the agents, the relay and the HTTP API.
"""

from nimbus.schemas.api import (
    ActionResult,
    ErrorEnvelope,
    StructuredAnswer,
    WeatherAnswer,
)
from nimbus.schemas.config import AgentConfig, ServerConfig
from nimbus.schemas.messages import (
    AgentReply,
    StructuredRequest,
    TokenUsage,
    WeatherQuery,
    WeatherReport,
)
from nimbus.schemas.streaming import (
    EventFrame,
    FrameKind,
    ReassembledResponse,
    StreamState,
)

__all__ = [
    "ActionResult",
    "AgentConfig",
    "AgentReply",
    "ErrorEnvelope",
    "EventFrame",
    "FrameKind",
    "ReassembledResponse",
    "ServerConfig",
    "StreamState",
    "StructuredAnswer",
    "StructuredRequest",
    "TokenUsage",
    "WeatherAnswer",
    "WeatherQuery",
    "WeatherReport",
]
