"""Form actions: one-shot weather lookups that report failures as data.

Unlike the JSON API, an action never raises and never returns an error
status. Every outcome, including a missing city, comes back as an
ActionResult for the caller to render.
"""

from __future__ import annotations

import logging

from nimbus.agents.base import WeatherAgent
from nimbus.schemas.api import ActionResult
from nimbus.schemas.messages import WeatherQuery

logger = logging.getLogger(__name__)


async def get_weather_info(agent: WeatherAgent, city: str | None) -> ActionResult:
    """Answer the weather question for a submitted ``city`` field."""
    city = (city or "").strip()
    if not city:
        return ActionResult(success=False, error="City is required")

    try:
        reply = await agent.generate(WeatherQuery(city=city).resolve())
    except Exception as exc:
        logger.exception("Weather action failed for %s", city)
        return ActionResult(success=False, city=city, error=str(exc) or "Unknown error")

    return ActionResult(success=True, response=reply.text, city=city, usage=reply.usage)


async def get_weather_with_message(agent: WeatherAgent, message: str | None) -> ActionResult:
    """Answer a free-text weather question submitted as ``message``."""
    query = WeatherQuery(message=message).resolve()
    if query is None:
        return ActionResult(success=False, error="Message is required")

    try:
        reply = await agent.generate(query)
    except Exception as exc:
        logger.exception("Message action failed")
        return ActionResult(success=False, error=str(exc) or "Unknown error")

    return ActionResult(success=True, response=reply.text, usage=reply.usage)
