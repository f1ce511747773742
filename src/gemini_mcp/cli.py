"""gemini-mcp CLI: run the Gemini MCP server over stdio.

Usage:
    gemini-mcp                 # Serve MCP on stdio (same as `serve`)
    gemini-mcp serve           # Serve MCP on stdio
    gemini-mcp tools           # List the tools the server exposes
    gemini-mcp config          # Show resolved configuration

stdout carries the MCP protocol, so all human-facing output goes to stderr.
"""

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from gemini_mcp import __version__
from gemini_mcp.config import ConfigError, GeminiConfig

console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _load_config() -> GeminiConfig:
    try:
        return GeminiConfig.load()
    except ConfigError as e:
        console.print(f"[bold red]{e}[/]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="gemini-mcp")
@click.pass_context
def cli(ctx):
    """Gemini MCP server: Gemini chat, image and video tools over MCP stdio."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.option("--log-level", default=None, help="Override GEMINI_MCP_LOG_LEVEL")
def serve(log_level):
    """Serve MCP on stdin/stdout."""
    from gemini_mcp.server import run_stdio

    config = _load_config()
    try:
        config.require_api_key()
    except ConfigError as e:
        # Plain stderr line so MCP hosts show it verbatim
        click.echo(str(e), err=True)
        sys.exit(1)

    _configure_logging(log_level or config.log_level)
    try:
        asyncio.run(run_stdio(config))
    except KeyboardInterrupt:
        pass


@cli.command()
def tools():
    """List the tools exposed by the server."""
    from gemini_mcp.tools import ServerContext, ToolDispatcher
    from gemini_mcp.gemini_client import GeminiClient
    from gemini_mcp.sessions import SessionStore

    config = _load_config()
    context = ServerContext(
        config=config,
        client=GeminiClient(api_key=config.api_key, default_model=config.models.chat),
        sessions=SessionStore(),
    )
    dispatcher = ToolDispatcher(context)

    table = Table(title="Gemini MCP Tools")
    table.add_column("Tool", style="cyan")
    table.add_column("Required")
    table.add_column("Optional", style="dim")
    for t in dispatcher.tools:
        schema = t.input_schema
        required = schema.get("required", [])
        optional = [p for p in schema.get("properties", {}) if p not in required]
        table.add_row(t.name, ", ".join(required) or "-", ", ".join(optional) or "-")
    console.print(table)


@cli.command("config")
def show_config():
    """Show the resolved configuration (API key masked)."""
    config = _load_config()
    data = config.to_dict()

    table = Table(title="Gemini MCP Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                table.add_row(f"{key}.{sub_key}", str(sub_value))
        else:
            table.add_row(key, str(value))
    console.print(table)

    if not config.api_key:
        console.print("[yellow]No API key set: `serve` will refuse to start.[/]")


def main():
    cli()


if __name__ == "__main__":
    main()
