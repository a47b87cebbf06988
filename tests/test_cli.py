"""Tests for the Nimbus CLI.

Covers: app structure, version flag, every command against an in-process
server via CliRunner.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from nimbus import __version__
from nimbus.cli import app
from nimbus.schemas.messages import WeatherReport

runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


@pytest.fixture
def wired(make_client):
    """Point the CLI's WeatherClient at an in-process app for ``agent``."""

    def _wire(agent):
        return patch("nimbus.cli.WeatherClient", lambda url: make_client(agent))

    return _wire


# ══════════════════════════════════════════════════════════════════
# App structure
# ══════════════════════════════════════════════════════════════════


class TestAppStructure:
    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "ask", "stream", "form", "structured", "agents"):
            assert command in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"nimbus {__version__}" in result.output

    def test_query_required(self):
        result = runner.invoke(app, ["ask"])
        assert result.exit_code == 2
        assert "pass a question or --city" in result.output


# ══════════════════════════════════════════════════════════════════
# Client commands
# ══════════════════════════════════════════════════════════════════


class TestAsk:
    def test_city(self, wired, agent):
        with wired(agent):
            result = runner.invoke(app, ["ask", "--city", "Paris"])

        assert result.exit_code == 0
        assert "It's sunny in Paris." in result.output
        assert "tokens: 12 in / 4 out" in result.output
        assert agent.queries == ["What's the weather like in Paris?"]

    def test_message(self, wired, agent):
        with wired(agent):
            result = runner.invoke(app, ["ask", "Umbrella today?"])

        assert result.exit_code == 0
        assert agent.queries == ["Umbrella today?"]

    def test_api_error(self, wired, make_agent):
        agent = make_agent(fail_after=0, error=RuntimeError("quota exceeded"))
        with wired(agent):
            result = runner.invoke(app, ["ask", "--city", "Paris"])

        assert result.exit_code == 1
        assert "quota exceeded" in result.output


class TestStream:
    def test_renders_full_answer(self, wired, agent):
        with wired(agent):
            result = runner.invoke(app, ["stream", "--city", "Paris"])

        assert result.exit_code == 0
        assert "It's sunny in Paris." in result.output
        assert "tokens: 12 in / 4 out" in result.output

    def test_mid_stream_failure(self, wired, make_agent):
        with wired(make_agent(fail_after=2)):
            result = runner.invoke(app, ["stream", "--city", "Paris"])

        assert result.exit_code == 1
        assert "Stream failed" in result.output

    def test_query_required(self):
        result = runner.invoke(app, ["stream"])
        assert result.exit_code == 2


class TestForm:
    def test_success(self, wired, agent):
        with wired(agent):
            result = runner.invoke(app, ["form", "Paris"])

        assert result.exit_code == 0
        assert "Weather in Paris" in result.output
        assert "It's sunny in Paris." in result.output

    def test_failure_is_reported(self, wired, make_agent):
        with wired(make_agent(fail_after=0)):
            result = runner.invoke(app, ["form", "Paris"])

        assert result.exit_code == 1
        assert "model exploded" in result.output


class TestStructured:
    def test_table(self, wired, make_agent):
        report = WeatherReport(
            location="Paris",
            temperature=21.5,
            conditions="Sunny",
            summary="Warm and clear.",
            recommendations=["Picnic by the Seine", "Wear sunscreen"],
        )
        with wired(make_agent(report=report)):
            result = runner.invoke(app, ["structured", "Paris"])

        assert result.exit_code == 0
        assert "21.5 °C" in result.output
        assert "1. Picnic by the Seine" in result.output
        assert "2. Wear sunscreen" in result.output

    def test_error(self, wired, agent):
        with wired(agent):
            result = runner.invoke(app, ["structured", "Paris"])

        assert result.exit_code == 1
        assert "WeatherReport" in result.output


# ══════════════════════════════════════════════════════════════════
# Local commands
# ══════════════════════════════════════════════════════════════════


class TestAgents:
    def test_lists_configured_agents(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "set")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("NIMBUS_AGENT", raising=False)

        with patch("nimbus.cli.load_keys_env"):
            result = runner.invoke(app, ["agents"])

        assert result.exit_code == 0
        assert "weather-agent (default)" in result.output
        assert "gemini/gemini-2.5-flash" in result.output
        assert "OPENAI_API_KEY missing" in result.output

    def test_verbose_flag(self):
        with patch("nimbus.cli.load_keys_env"):
            result = runner.invoke(app, ["--verbose", "agents"])
        assert result.exit_code == 0


class TestServe:
    def test_starts_uvicorn_with_config(self, monkeypatch):
        monkeypatch.delenv("NIMBUS_AGENT", raising=False)
        with (
            patch("nimbus.cli.load_keys_env"),
            patch("uvicorn.run") as mock_run,
        ):
            result = runner.invoke(app, ["serve", "--port", "9001"])

        assert result.exit_code == 0
        mock_run.assert_called_once()
        kwargs = mock_run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9001
        assert mock_run.call_args.args[0].state.config.agent == "weather-agent"

    def test_agent_option(self, monkeypatch):
        monkeypatch.delenv("NIMBUS_AGENT", raising=False)
        with (
            patch("nimbus.cli.load_keys_env"),
            patch("uvicorn.run") as mock_run,
        ):
            result = runner.invoke(app, ["serve", "--agent", "weather-agent-claude"])

        assert result.exit_code == 0
        assert mock_run.call_args.args[0].state.config.agent == "weather-agent-claude"

    def test_unknown_agent(self):
        with (
            patch("nimbus.cli.load_keys_env"),
            patch("uvicorn.run") as mock_run,
        ):
            result = runner.invoke(app, ["serve", "--agent", "nope"])

        assert result.exit_code == 1
        assert "Unknown agent" in result.output
        mock_run.assert_not_called()
