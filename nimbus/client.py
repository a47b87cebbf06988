"""Nimbus Python client — async HTTP client for the weather API.

Usage:

    from nimbus.client import WeatherClient

    async with WeatherClient("http://localhost:8000") as client:
        answer = await client.ask(city="Paris")
        print(answer.response)

        result = await client.stream(
            "What's the weather in Paris?",
            on_chunk=lambda text: print(text, end="", flush=True),
        )
        print(result.state)
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from nimbus.schemas.api import ActionResult, StructuredAnswer, WeatherAnswer
from nimbus.schemas.streaming import ReassembledResponse
from nimbus.streaming.reassembler import ChunkObserver, Reassembler

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:8000"


class NimbusAPIError(Exception):
    """Non-2xx answer from the Nimbus API."""

    def __init__(self, message: str, status: int = 0, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


def _query_body(message: str | None, city: str | None) -> dict[str, str]:
    body: dict[str, str] = {}
    if message is not None:
        body["message"] = message
    if city is not None:
        body["city"] = city
    return body


class WeatherClient:
    """Async client for every Nimbus endpoint.

    ``transport`` lets callers swap the network layer, e.g. an
    ``httpx.ASGITransport`` to talk to an in-process app.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or os.environ.get("NIMBUS_URL") or DEFAULT_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> WeatherClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Request / response ───────────────────────────────────────

    async def ask(self, message: str | None = None, *, city: str | None = None) -> WeatherAnswer:
        """POST /api/weather."""
        data = await self._request("POST", "/api/weather", json=_query_body(message, city))
        return WeatherAnswer.model_validate(data)

    async def ask_city(self, city: str) -> WeatherAnswer:
        """GET /api/weather?city=..."""
        data = await self._request("GET", "/api/weather", params={"city": city})
        return WeatherAnswer.model_validate(data)

    async def structured(self, city: str) -> StructuredAnswer:
        """POST /api/weather-structured."""
        data = await self._request("POST", "/api/weather-structured", json={"city": city})
        return StructuredAnswer.model_validate(data)

    # ── Form actions ─────────────────────────────────────────────

    async def submit_city(self, city: str) -> ActionResult:
        """Submit the city form; failures come back in the result."""
        data = await self._request("POST", "/actions/weather", data={"city": city})
        return ActionResult.model_validate(data)

    async def submit_message(self, message: str) -> ActionResult:
        """Submit the free-text form; failures come back in the result."""
        data = await self._request("POST", "/actions/message", data={"message": message})
        return ActionResult.model_validate(data)

    # ── Streaming ────────────────────────────────────────────────

    async def stream(
        self,
        message: str | None = None,
        *,
        city: str | None = None,
        on_chunk: ChunkObserver | None = None,
    ) -> ReassembledResponse:
        """POST /api/weather-stream and reassemble the answer.

        ``on_chunk`` is called with each fragment as it arrives. A broken
        connection ends the result in the FAILED state instead of raising.

        Raises:
            NimbusAPIError: If the server rejects the request before streaming.
        """
        reassembler = Reassembler(on_chunk=on_chunk)
        async with self._client.stream(
            "POST", "/api/weather-stream", json=_query_body(message, city)
        ) as response:
            if response.is_error:
                await response.aread()
                raise self._api_error(response)
            result = await reassembler.consume(response.aiter_bytes())

        logger.debug(
            "Stream ended %s after %d chunks (%d malformed records dropped)",
            result.state, result.chunk_count, reassembler.dropped,
        )
        return result

    # ── Internals ────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise self._api_error(response)
        return response.json()

    @staticmethod
    def _api_error(response: httpx.Response) -> NimbusAPIError:
        body = response.text
        try:
            message = response.json().get("error") or body
        except (ValueError, AttributeError):
            message = body
        return NimbusAPIError(
            f"HTTP {response.status_code}: {message}", response.status_code, body
        )
