"""Agent registry and TOML configuration loader.

Loads agent definitions from agents.toml and server defaults from
defaults.toml. The AgentRegistry resolves a named agent and is handed
to the server explicitly; there is no process-wide registry.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Callable
from pathlib import Path

from nimbus.agents.base import WeatherAgent
from nimbus.agents.litellm_agent import LiteLLMAgent
from nimbus.schemas.config import AgentConfig, ServerConfig

logger = logging.getLogger(__name__)

# Default config directory relative to the nimbus package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

AgentFactory = Callable[[AgentConfig], WeatherAgent]


def load_agents(config_path: Path | None = None) -> dict[str, AgentConfig]:
    """Load the agent registry from a TOML file.

    Args:
        config_path: Path to agents.toml. Defaults to nimbus/config/agents.toml.

    Returns:
        Dictionary mapping agent names to AgentConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "agents.toml"
    if not path.exists():
        raise FileNotFoundError(f"Agent registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    agents_section = raw.get("agents")
    if not agents_section or not isinstance(agents_section, dict):
        raise ValueError(f"No [agents] section found in {path}")

    configs: dict[str, AgentConfig] = {}
    for name, entry in agents_section.items():
        if not isinstance(entry, dict):
            continue
        configs[name] = AgentConfig(**entry)

    return configs


def load_server_config(config_path: Path | None = None) -> ServerConfig:
    """Load server defaults from a TOML file.

    The ``NIMBUS_AGENT`` environment variable, when set, overrides the
    serving agent.

    Args:
        config_path: Path to defaults.toml. Defaults to nimbus/config/defaults.toml.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Server config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    server_section = dict(raw.get("server", {}))
    agent_override = os.environ.get("NIMBUS_AGENT")
    if agent_override:
        server_section["agent"] = agent_override

    return ServerConfig(**server_section)


class AgentRegistry:
    """Resolves agents by name, building each one on first use.

    Agents are created from their AgentConfig with ``factory`` (LiteLLMAgent
    by default). Prebuilt agents can be registered directly.
    """

    def __init__(
        self,
        configs: dict[str, AgentConfig] | None = None,
        *,
        factory: AgentFactory = LiteLLMAgent,
    ) -> None:
        self._configs = dict(configs or {})
        self._factory = factory
        self._agents: dict[str, WeatherAgent] = {}

    @classmethod
    def from_config(cls, config_path: Path | None = None) -> AgentRegistry:
        """Build a registry from agents.toml."""
        return cls(load_agents(config_path))

    def register(self, name: str, agent: WeatherAgent) -> None:
        """Add a prebuilt agent under ``name``, replacing any existing entry."""
        self._agents[name] = agent
        self._configs[name] = agent.config

    def names(self) -> list[str]:
        return sorted(self._configs)

    def configs(self) -> dict[str, AgentConfig]:
        return dict(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def get_agent(self, name: str) -> WeatherAgent:
        """Return the agent registered as ``name``.

        Raises:
            KeyError: If no agent with that name is configured.
        """
        agent = self._agents.get(name)
        if agent is not None:
            return agent

        config = self._configs.get(name)
        if config is None:
            known = ", ".join(self.names()) or "none"
            raise KeyError(f"Unknown agent '{name}' (configured: {known})")

        agent = self._factory(config)
        self._agents[name] = agent
        logger.debug("Created agent %s (%s)", name, config.model)
        return agent
