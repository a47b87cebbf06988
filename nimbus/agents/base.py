"""Abstract base class for weather agents and the fragment stream contract.

Defines the WeatherAgent interface every LLM adapter must implement. The
server, the relay and the actions interact exclusively through this
interface — they never call provider SDKs directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterable

from pydantic import BaseModel

from nimbus.schemas.config import AgentConfig
from nimbus.schemas.messages import AgentReply, TokenUsage

# Producer callback: receives the stream so it can record usage on it
FragmentProducer = Callable[["FragmentStream"], AsyncIterator[str]]


class FragmentStream:
    """Lazy, finite, single-pass sequence of text fragments.

    Nothing is requested from the agent until the first fragment is pulled.
    ``usage`` holds the final token accounting once the stream is exhausted
    and stays None if the producer never reported any. After ``aclose()``
    no further fragments are pulled.
    """

    def __init__(self, produce: FragmentProducer) -> None:
        self.usage: TokenUsage | None = None
        self._fragments = produce(self)
        self._exhausted = False
        self._closed = False

    @classmethod
    def from_fragments(
        cls, fragments: Iterable[str], usage: TokenUsage | None = None
    ) -> FragmentStream:
        """Build a stream over already-known fragments."""

        async def produce(stream: FragmentStream) -> AsyncIterator[str]:
            for fragment in fragments:
                yield fragment
            stream.usage = usage

        return cls(produce)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> FragmentStream:
        return self

    async def __anext__(self) -> str:
        if self._closed or self._exhausted:
            raise StopAsyncIteration
        try:
            return await anext(self._fragments)
        except StopAsyncIteration:
            self._exhausted = True
            raise

    async def aclose(self) -> None:
        """Stop pulling fragments and release the underlying producer."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()

    async def collect(self) -> str:
        """Drain the stream and return the concatenated text."""
        parts = [fragment async for fragment in self]
        return "".join(parts)


class WeatherAgent(ABC):
    """Abstract interface for any agent that can answer weather questions.

    Initialized from an AgentConfig loaded from the TOML registry. Exposes
    identity, cost info, and the ``stream()`` method every agent must
    implement.
    """

    def __init__(self, config: AgentConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        """Human-friendly agent name for CLI output."""
        return self._config.display_name

    @property
    def config(self) -> AgentConfig:
        """The full AgentConfig backing this agent."""
        return self._config

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    def stream(self, query: str) -> FragmentStream:
        """Return a lazy stream of response fragments for ``query``.

        Failures may surface at any point while the stream is pulled.
        """

    async def generate(self, query: str) -> AgentReply:
        """Answer ``query`` in one piece.

        Default implementation drains ``stream()``. Agents with a cheaper
        non-streaming path should override this method.
        """
        source = self.stream(query)
        try:
            text = await source.collect()
        finally:
            await source.aclose()
        return AgentReply(text=text, usage=source.usage or TokenUsage(), model=self.model_id)

    async def generate_structured(self, query: str, schema: type[BaseModel]) -> BaseModel:
        """Answer ``query`` as an instance of ``schema``.

        Raises:
            NotImplementedError: If the agent has no structured output path.
        """
        raise NotImplementedError(f"{self.display_name} does not support structured output")

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Calculate the USD cost for a given token count."""
        input_cost = (prompt_tokens / 1_000_000) * self._config.cost_input
        output_cost = (completion_tokens / 1_000_000) * self._config.cost_output
        return input_cost + output_cost
