"""Nimbus agent layer.

Agents are the only way models are called. The server resolves them by
name through an AgentRegistry and talks to them via the WeatherAgent
interface.
"""

from nimbus.agents.base import FragmentStream, WeatherAgent
from nimbus.agents.litellm_agent import LiteLLMAgent
from nimbus.agents.registry import (
    AgentRegistry,
    load_agents,
    load_server_config,
)

__all__ = [
    "AgentRegistry",
    "FragmentStream",
    "LiteLLMAgent",
    "WeatherAgent",
    "load_agents",
    "load_server_config",
]
