"""Universal LiteLLM adapter implementing the WeatherAgent interface.

Routes weather questions to any LLM provider via LiteLLM's unified API.
Handles streamed deltas, structured output parsing, token tracking, cost
calculation, timeouts, and retry with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from collections.abc import AsyncIterator
from datetime import date

import litellm
from pydantic import BaseModel, ValidationError

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from nimbus.agents.base import FragmentStream, WeatherAgent
from nimbus.prompts import agent_instructions, structured_request
from nimbus.schemas.config import AgentConfig
from nimbus.schemas.messages import AgentReply, TokenUsage

logger = logging.getLogger(__name__)

# Max attempts for transient failures while opening a call
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds

_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


class LiteLLMAgent(WeatherAgent):
    """Weather agent powered by LiteLLM.

    Routes calls to any provider (Google, OpenAI, Anthropic, etc.) through
    litellm.acompletion(). Retries only cover opening a call; once a
    stream has produced fragments, a failure propagates to the caller.
    """

    def __init__(self, config: AgentConfig) -> None:
        super().__init__(config)
        self._api_key = os.environ.get(config.api_key_env, "")

    @property
    def instructions(self) -> str:
        """Rendered system prompt for this agent."""
        return agent_instructions(self._config.instructions, today=date.today())

    def stream(self, query: str) -> FragmentStream:
        return FragmentStream(lambda sink: self._stream_fragments(query, sink))

    async def _stream_fragments(
        self, query: str, sink: FragmentStream
    ) -> AsyncIterator[str]:
        kwargs = self._build_completion_kwargs(self._messages(query))
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        response = await self._call_with_retry(kwargs, label="Streaming call")

        token_count = 0
        prompt_tokens = 0
        completion_tokens = 0
        async for chunk in response:
            usage = getattr(chunk, "usage", None)
            if usage:
                prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
                completion_tokens = getattr(usage, "completion_tokens", 0) or 0

            delta = ""
            if chunk.choices and chunk.choices[0].delta:
                delta = chunk.choices[0].delta.content or ""
            if delta:
                token_count += 1  # approximate, 1 chunk ~= 1 token
                yield delta

        # Streaming does not always report usage; fall back to the chunk count
        completion_tokens = completion_tokens or token_count
        sink.usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=self.calculate_cost(prompt_tokens, completion_tokens),
        )

    async def generate(self, query: str) -> AgentReply:
        """Answer ``query`` with a single non-streaming completion."""
        kwargs = self._build_completion_kwargs(self._messages(query))
        response = await self._call_with_retry(kwargs, label="Model call")
        return AgentReply(
            text=self._extract_content(response),
            usage=self._build_token_usage(response),
            model=self._config.model,
        )

    async def generate_structured(self, query: str, schema: type[BaseModel]) -> BaseModel:
        """Answer ``query`` as a validated instance of ``schema``.

        Requests JSON mode when the model supports it and falls back to
        extracting JSON from a markdown code block otherwise.

        Raises:
            ValueError: If the response cannot be parsed into ``schema``.
        """
        prompt = structured_request(query, schema)
        kwargs = self._build_completion_kwargs(self._messages(prompt))
        if self._config.supports_structured:
            kwargs["response_format"] = schema

        response = await self._call_with_retry(kwargs, label="Structured call")
        content = self._extract_content(response)

        parsed = self._try_parse_structured(content, schema)
        if parsed is None:
            raise ValueError(
                f"{self._config.display_name} did not return a valid {schema.__name__}"
            )
        return parsed

    def _messages(self, query: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.instructions},
            {"role": "user", "content": query},
        ]

    def _build_completion_kwargs(self, messages: list[dict[str, str]]) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "timeout": float(self._config.timeout),
        }

        if self._api_key:
            kwargs["api_key"] = self._api_key

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature

        return kwargs

    async def _call_with_retry(self, kwargs: dict, *, label: str):
        """Call litellm.acompletion with exponential backoff retry.

        Retries on transient errors (rate limits, server errors, timeouts).
        Non-retryable errors (auth, invalid request) are raised immediately.

        Raises:
            TimeoutError: If all retries time out.
            RuntimeError: If all retries fail with non-timeout errors.
        """
        last_error: Exception | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                return await litellm.acompletion(**kwargs)
            except TimeoutError:
                last_error = TimeoutError(
                    f"{label} timed out after {kwargs.get('timeout')}s "
                    f"(attempt {attempt + 1}/{_MAX_RETRIES})"
                )
            except litellm.AuthenticationError:
                raise RuntimeError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise RuntimeError(f"Bad request to {self._config.model}: {e}") from e
            except (
                litellm.RateLimitError,
                litellm.ServiceUnavailableError,
                litellm.InternalServerError,
                litellm.APIConnectionError,
            ) as e:
                last_error = e

            if attempt < _MAX_RETRIES - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "%s retry %d/%d for %s (%s, backoff: %.1fs)",
                    label,
                    attempt + 1,
                    _MAX_RETRIES,
                    self._config.display_name,
                    _short_error_reason(last_error),
                    backoff,
                )
                await asyncio.sleep(backoff)

        if isinstance(last_error, TimeoutError):
            raise last_error
        raise RuntimeError(
            f"{label} to {self._config.model} failed after {_MAX_RETRIES} "
            f"retries: {last_error}"
        ) from last_error

    def _extract_content(self, response) -> str:
        """Extract text content from a LiteLLM response."""
        if not response.choices:
            return ""
        message = response.choices[0].message
        return message.content or "" if message else ""

    def _try_parse_structured(
        self, content: str, schema: type[BaseModel]
    ) -> BaseModel | None:
        """Attempt to parse content as JSON matching the schema.

        Returns the parsed model instance, or None if parsing fails.
        """
        if not content:
            return None

        try:
            return schema.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError):
            pass

        json_match = _JSON_BLOCK_RE.search(content)
        if json_match:
            try:
                return schema.model_validate(json.loads(json_match.group(1)))
            except (json.JSONDecodeError, ValidationError):
                pass

        logger.debug("Structured output parsing failed for %s", self._config.model)
        return None

    def _build_token_usage(self, response) -> TokenUsage:
        """Build TokenUsage from the LiteLLM response usage data."""
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=self.calculate_cost(prompt_tokens, completion_tokens),
        )
