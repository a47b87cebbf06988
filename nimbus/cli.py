"""Nimbus CLI — Typer + Rich terminal interface.

Commands: serve, ask, stream, form, structured, agents.
The client commands talk to a running ``nimbus serve`` over HTTP.
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from nimbus import __version__
from nimbus.agents.registry import AgentRegistry, load_agents, load_server_config
from nimbus.client import NimbusAPIError, WeatherClient
from nimbus.keys import load_keys_env, missing_keys
from nimbus.schemas.messages import TokenUsage
from nimbus.schemas.streaming import StreamState

console = Console()

app = typer.Typer(
    name="nimbus",
    help="Ask an AI weather agent — one-shot, plain API, or streamed.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_URL_OPTION = typer.Option(
    None, "--url", "-u",
    help="Nimbus server URL (default: $NIMBUS_URL or http://127.0.0.1:8000)",
)


# ── Version / logging callback ─────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"nimbus {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log debug output.",
    ),
) -> None:
    """Nimbus — weather questions answered by an AI agent."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# ── Helpers ──────────────────────────────────────────────────────


def _usage_line(usage: TokenUsage | None) -> str:
    if usage is None:
        return "[dim]usage: n/a[/dim]"
    return (
        f"[dim]tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out "
        f"· cost: ${usage.cost:.6f}[/dim]"
    )


def _require_query(message: str | None, city: str | None) -> None:
    if not (message or city):
        console.print("[red]Error:[/red] pass a question or --city")
        raise typer.Exit(2)


def _api_failure(error: NimbusAPIError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(1)


# ── nimbus serve ─────────────────────────────────────────────────


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Interface to bind (default from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port to listen on (default from config)"),
    agent: str = typer.Option(None, "--agent", "-a", help="Registry name of the serving agent"),
) -> None:
    """Start the weather API server."""
    import uvicorn

    from nimbus.server.app import create_app

    load_keys_env()
    config = load_server_config()
    overrides = {
        key: value
        for key, value in {"host": host, "port": port, "agent": agent}.items()
        if value is not None
    }
    config = config.model_copy(update=overrides)

    registry = AgentRegistry.from_config()
    if config.agent not in registry:
        console.print(
            f"[red]Unknown agent:[/red] {config.agent} "
            f"(configured: {', '.join(registry.names())})"
        )
        raise typer.Exit(1)

    needed = missing_keys({config.agent: registry.configs()[config.agent]})
    if needed:
        console.print(f"[yellow]Warning:[/yellow] {needed[config.agent]} is not set")

    console.print(Panel(
        f"[bold]URL:[/bold] http://{config.host}:{config.port}\n"
        f"[bold]Agent:[/bold] {config.agent}",
        title="[bold blue]Nimbus[/bold blue]",
        border_style="blue",
    ))
    uvicorn.run(create_app(registry, config), host=config.host, port=config.port, log_level="info")


# ── nimbus ask ───────────────────────────────────────────────────


@app.command()
def ask(
    message: str = typer.Argument(None, help="Weather question"),
    city: str = typer.Option(None, "--city", "-c", help="Ask about this city instead"),
    url: str = _URL_OPTION,
) -> None:
    """Plain request/response call."""
    _require_query(message, city)

    async def _run():
        async with WeatherClient(url) as client:
            if message:
                return await client.ask(message, city=city)
            return await client.ask_city(city)

    try:
        answer = asyncio.run(_run())
    except NimbusAPIError as e:
        raise _api_failure(e) from None

    console.print(Panel(Markdown(answer.response), title="Weather", border_style="green"))
    console.print(_usage_line(answer.usage))


# ── nimbus stream ────────────────────────────────────────────────


@app.command()
def stream(
    message: str = typer.Argument(None, help="Weather question"),
    city: str = typer.Option(None, "--city", "-c", help="Ask about this city instead"),
    url: str = _URL_OPTION,
) -> None:
    """Streamed call, rendered as fragments arrive."""
    _require_query(message, city)

    async def _run():
        text: list[str] = []
        with Live(Markdown(""), console=console, refresh_per_second=12) as live:

            def on_chunk(fragment: str) -> None:
                text.append(fragment)
                live.update(Markdown("".join(text)))

            async with WeatherClient(url) as client:
                return await client.stream(message, city=city, on_chunk=on_chunk)

    try:
        result = asyncio.run(_run())
    except NimbusAPIError as e:
        raise _api_failure(e) from None

    if result.state is StreamState.COMPLETE:
        console.print(_usage_line(result.usage))
        return

    console.print(f"[red]Stream failed:[/red] {result.error}")
    raise typer.Exit(1)


# ── nimbus form ──────────────────────────────────────────────────


@app.command()
def form(
    city: str = typer.Argument(..., help="City to submit"),
    url: str = _URL_OPTION,
) -> None:
    """One-shot form submission."""

    async def _run():
        async with WeatherClient(url) as client:
            return await client.submit_city(city)

    try:
        result = asyncio.run(_run())
    except NimbusAPIError as e:
        raise _api_failure(e) from None

    if not result.success:
        console.print(f"[red]Error:[/red] {result.error}")
        raise typer.Exit(1)

    console.print(Panel(
        Markdown(result.response or ""),
        title=f"Weather in {result.city}",
        border_style="green",
    ))


# ── nimbus structured ────────────────────────────────────────────


@app.command()
def structured(
    city: str = typer.Argument(..., help="City to report on"),
    url: str = _URL_OPTION,
) -> None:
    """Structured weather report with recommendations."""

    async def _run():
        async with WeatherClient(url) as client:
            return await client.structured(city)

    try:
        answer = asyncio.run(_run())
    except NimbusAPIError as e:
        raise _api_failure(e) from None

    report = answer.data
    table = Table(title=f"Weather Report — {report.location}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Temperature", f"{report.temperature:g} °C")
    table.add_row("Conditions", report.conditions)
    table.add_row("Summary", report.summary)
    for i, recommendation in enumerate(report.recommendations, 1):
        table.add_row("Recommendations" if i == 1 else "", f"{i}. {recommendation}")
    console.print(table)


# ── nimbus agents ────────────────────────────────────────────────


@app.command()
def agents() -> None:
    """List configured agents and whether their API key is set."""
    load_keys_env()
    try:
        configs = load_agents()
        default = load_server_config().agent
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading agents:[/red] {e}")
        raise typer.Exit(1) from None

    needed = missing_keys(configs)

    table = Table(title="Agents")
    table.add_column("Name", style="bold")
    table.add_column("Model")
    table.add_column("Key")
    table.add_column("Structured", justify="center")
    table.add_column("$/1M in", justify="right")
    table.add_column("$/1M out", justify="right")

    for name, cfg in configs.items():
        label = f"{name} [cyan](default)[/cyan]" if name == default else name
        key_status = f"[red]{cfg.api_key_env} missing[/red]" if name in needed else "[green]set[/green]"
        table.add_row(
            label,
            cfg.model,
            key_status,
            "✓" if cfg.supports_structured else "—",
            f"{cfg.cost_input:.2f}",
            f"{cfg.cost_output:.2f}",
        )

    console.print(table)


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
