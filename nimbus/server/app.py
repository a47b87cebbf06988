"""Nimbus HTTP API.

FastAPI application exposing the three interaction patterns — form
actions, plain request/response calls, and the streaming event relay —
plus structured weather reports and a health check.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from nimbus import __version__
from nimbus.actions import get_weather_info, get_weather_with_message
from nimbus.agents.registry import AgentRegistry, load_server_config
from nimbus.schemas.api import (
    ActionResult,
    ErrorEnvelope,
    StructuredAnswer,
    WeatherAnswer,
)
from nimbus.schemas.config import ServerConfig
from nimbus.schemas.messages import StructuredRequest, WeatherQuery, WeatherReport
from nimbus.streaming.transport import (
    EVENT_STREAM_MEDIA_TYPE,
    FragmentRelay,
    StreamTransport,
)

logger = logging.getLogger(__name__)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorEnvelope(error=message).model_dump(), status_code=status_code)


def _failure_message(exc: Exception) -> str:
    return str(exc) or "Unknown error"


class EventStreamResponse(StreamingResponse):
    """Streaming response that releases its transport however it ends.

    The body generator only runs once Starlette starts iterating it, so a
    send that fails on the response start would otherwise leave the relay
    blocked on a full queue.
    """

    def __init__(self, transport: StreamTransport, headers: dict[str, str]) -> None:
        super().__init__(
            transport.body(),
            media_type=EVENT_STREAM_MEDIA_TYPE,
            headers=headers,
        )
        self.transport = transport

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.transport.disconnect()


def create_app(
    registry: AgentRegistry | None = None,
    config: ServerConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: Agents available to the app. Defaults to agents.toml.
        config: Server settings. Defaults to defaults.toml.

    Returns:
        The app instance. The serving agent is resolved once, here.

    Raises:
        KeyError: If the configured agent is not in the registry.
    """
    if registry is None:
        registry = AgentRegistry.from_config()
    if config is None:
        config = load_server_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Serving agent %s", config.agent)
        yield

    app = FastAPI(
        title="Nimbus Weather API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    serving_agent = registry.get_agent(config.agent)
    relays: set[asyncio.Task[None]] = set()

    app.state.registry = registry
    app.state.config = config
    app.state.relays = relays

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(f"Invalid request: {detail}", 400)

    # ── Request / response ───────────────────────────────────────

    @app.post("/api/weather", response_model=WeatherAnswer)
    async def ask_weather(body: WeatherQuery) -> Any:
        """Answer a weather question in one piece."""
        query = body.resolve()
        if query is None:
            return _error("A message or city is required", 400)

        try:
            reply = await serving_agent.generate(query)
        except Exception as exc:
            logger.exception("Weather API error")
            return _error(_failure_message(exc), 500)

        return WeatherAnswer(response=reply.text, usage=reply.usage)

    @app.get("/api/weather", response_model=WeatherAnswer)
    async def weather_for_city(city: str | None = None) -> Any:
        """Answer the weather question for ``?city=``."""
        query = WeatherQuery(city=city).resolve()
        if query is None:
            return _error("City parameter is required", 400)

        try:
            reply = await serving_agent.generate(query)
        except Exception as exc:
            logger.exception("Weather API error")
            return _error(_failure_message(exc), 500)

        return WeatherAnswer(response=reply.text, city=city.strip())

    # ── Streaming ────────────────────────────────────────────────

    @app.post("/api/weather-stream")
    async def stream_weather(body: WeatherQuery) -> Any:
        """Relay the agent's answer as an event stream.

        Waits for the first frame before committing to a streaming
        response, so a failure before any output still gets a JSON error.
        """
        query = body.resolve()
        if query is None:
            return _error("A message or city is required", 400)

        transport = StreamTransport(capacity=config.stream_capacity)
        headers = transport.open()
        task = FragmentRelay(serving_agent, transport).start(query)
        relays.add(task)
        task.add_done_callback(relays.discard)

        try:
            await transport.first_envelope()
        except asyncio.CancelledError:
            transport.disconnect()
            raise
        except Exception as exc:
            logger.error("Streaming weather API error: %s", exc)
            return _error(_failure_message(exc), 500)

        return EventStreamResponse(transport, headers)

    # ── Structured output ────────────────────────────────────────

    @app.post("/api/weather-structured", response_model=StructuredAnswer)
    async def structured_weather(body: StructuredRequest) -> Any:
        """Return a validated WeatherReport for a city."""
        city = (body.city or "").strip()
        if not city:
            return _error("City is required", 400)

        try:
            report = await serving_agent.generate_structured(city, WeatherReport)
        except Exception as exc:
            logger.exception("Structured weather API error")
            return _error(_failure_message(exc), 500)

        return StructuredAnswer(data=report)

    # ── Form actions ─────────────────────────────────────────────

    @app.post("/actions/weather", response_model=ActionResult)
    async def weather_action(city: str = Form(default="")) -> ActionResult:
        """Form submission: look up the weather for a city."""
        return await get_weather_info(serving_agent, city)

    @app.post("/actions/message", response_model=ActionResult)
    async def message_action(message: str = Form(default="")) -> ActionResult:
        """Form submission: answer a free-text question."""
        return await get_weather_with_message(serving_agent, message)

    # ── Health ───────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "agent": config.agent}

    return app
