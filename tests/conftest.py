"""Shared fixtures: scripted agents and an in-process Nimbus app."""

from __future__ import annotations

import httpx
import pytest
from pydantic import BaseModel

from nimbus.agents.base import FragmentStream, WeatherAgent
from nimbus.agents.registry import AgentRegistry
from nimbus.client import WeatherClient
from nimbus.schemas.config import AgentConfig, ServerConfig
from nimbus.schemas.messages import TokenUsage
from nimbus.server.app import create_app

PARIS_FRAGMENTS = ("It's ", "sunny ", "in ", "Paris.")


def make_agent_config(**overrides) -> AgentConfig:
    """Create an AgentConfig with sensible defaults."""
    defaults = {
        "provider": "test",
        "model": "test/weather-model",
        "display_name": "Test Weather Agent",
        "api_key_env": "TEST_API_KEY",
        "cost_input": 1.0,
        "cost_output": 2.0,
    }
    defaults.update(overrides)
    return AgentConfig(**defaults)


class ScriptedAgent(WeatherAgent):
    """Agent that replays fixed fragments, optionally failing part-way.

    ``fail_after`` is the number of fragments yielded before ``error`` is
    raised; None means the stream finishes cleanly.
    """

    def __init__(
        self,
        fragments=PARIS_FRAGMENTS,
        *,
        usage: TokenUsage | None = None,
        fail_after: int | None = None,
        error: Exception | None = None,
        report: BaseModel | None = None,
    ) -> None:
        super().__init__(make_agent_config())
        self.fragments = list(fragments)
        self.usage = usage
        self.fail_after = fail_after
        self.error = error or RuntimeError("model exploded")
        self.report = report
        self.queries: list[str] = []
        self.streams: list[FragmentStream] = []
        self.pulled = 0

    def stream(self, query: str) -> FragmentStream:
        self.queries.append(query)

        async def produce(sink: FragmentStream):
            for i, fragment in enumerate(self.fragments):
                if i == self.fail_after:
                    raise self.error
                self.pulled += 1
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise self.error
            sink.usage = self.usage

        source = FragmentStream(produce)
        self.streams.append(source)
        return source

    async def generate_structured(self, query: str, schema: type[BaseModel]) -> BaseModel:
        self.queries.append(query)
        if self.report is None:
            raise ValueError(f"{self.display_name} did not return a valid {schema.__name__}")
        return self.report


@pytest.fixture
def make_agent():
    return ScriptedAgent


@pytest.fixture
def agent() -> ScriptedAgent:
    return ScriptedAgent(usage=TokenUsage(prompt_tokens=12, completion_tokens=4, cost=0.00002))


@pytest.fixture
def make_app():
    """Build an app serving ``agent`` under the default agent name."""

    def _make(agent: WeatherAgent, **server_overrides):
        registry = AgentRegistry()
        registry.register("weather-agent", agent)
        return create_app(registry, ServerConfig(**server_overrides))

    return _make


@pytest.fixture
def make_client(make_app):
    """Build a WeatherClient wired to an in-process app for ``agent``.

    App exceptions are not re-raised, so an aborted stream reaches the
    client as a truncated body, the way a dropped connection would.
    """

    def _make(agent: WeatherAgent, **server_overrides) -> WeatherClient:
        app = make_app(agent, **server_overrides)
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        return WeatherClient("http://nimbus.test", transport=transport)

    return _make


@pytest.fixture
def make_http(make_app):
    """Build a raw httpx client against an in-process app for ``agent``."""

    def _make(agent: WeatherAgent, **server_overrides) -> httpx.AsyncClient:
        app = make_app(agent, **server_overrides)
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        return httpx.AsyncClient(transport=transport, base_url="http://nimbus.test")

    return _make
