"""Prompts sent to weather agents.

Markdown templates in this directory are rendered through one shared
Jinja2 environment. Callers use the typed builders below; ``render_prompt``
stays available for templates named in configuration.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from pydantic import BaseModel

_PROMPTS_DIR = Path(__file__).parent

# Undefined variables render empty, so {% if today %} guards stay optional
_env = Environment(
    loader=FileSystemLoader(_PROMPTS_DIR, encoding="utf-8"),
    keep_trailing_newline=True,
    autoescape=False,
)


def render_prompt(template_name: str, **variables: object) -> str:
    """Render ``<template_name>.md`` with the given variables.

    Raises:
        FileNotFoundError: If no such template ships with Nimbus.
    """
    try:
        template = _env.get_template(f"{template_name}.md")
    except TemplateNotFound:
        raise FileNotFoundError(
            f"Prompt template not found: {_PROMPTS_DIR / f'{template_name}.md'}"
        ) from None
    return template.render(**variables)


def agent_instructions(template_name: str, today: date | None = None) -> str:
    """System prompt for an agent, dated when ``today`` is given."""
    return render_prompt(template_name, today=today.isoformat() if today else None)


def city_question(city: str) -> str:
    """The question asked on behalf of a caller who only named a city."""
    return render_prompt("city_query", city=city.strip()).strip()


def structured_request(city: str, schema: type[BaseModel]) -> str:
    """Prompt asking for a report on ``city`` as JSON matching ``schema``."""
    return render_prompt(
        "structured_report",
        city=city,
        schema=json.dumps(schema.model_json_schema(), indent=2),
    )
