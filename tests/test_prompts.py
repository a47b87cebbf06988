"""Tests for nimbus.prompts — Prompt template loading and rendering."""

from datetime import date

import pytest

from nimbus.prompts import (
    agent_instructions,
    city_question,
    render_prompt,
    structured_request,
)
from nimbus.schemas.messages import WeatherReport


class TestRenderPrompt:
    def test_renders_named_template(self):
        assert render_prompt("city_query", city="Lisbon") == "What's the weather like in Lisbon?\n"

    def test_missing_variable_renders_empty(self):
        assert "Today's date" not in render_prompt("weather_agent")

    def test_nonexistent_template_raises(self):
        with pytest.raises(FileNotFoundError, match="Prompt template not found"):
            render_prompt("nonexistent", city="anywhere")

    def test_template_names_stay_inside_prompts_dir(self):
        with pytest.raises(FileNotFoundError):
            render_prompt("../config/agents")


class TestAgentInstructions:
    def test_dated(self):
        result = agent_instructions("weather_agent", today=date(2026, 10, 19))
        assert "weather assistant" in result
        assert "Today's date is 2026-10-19." in result

    def test_undated(self):
        result = agent_instructions("weather_agent")
        assert "weather assistant" in result
        assert "Today's date" not in result


class TestCityQuestion:
    def test_question(self):
        assert city_question("Lisbon") == "What's the weather like in Lisbon?"

    def test_city_is_stripped(self):
        assert city_question("  Paris \n") == "What's the weather like in Paris?"


class TestStructuredRequest:
    def test_embeds_city_and_schema(self):
        result = structured_request("Paris", WeatherReport)
        assert "Get the weather for Paris" in result
        assert '"recommendations"' in result
        assert '"temperature"' in result
