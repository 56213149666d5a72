"""Command-line interface for pkceflow."""

import asyncio
import logging
import sys
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pkceflow.auth.authorize import build_authorization_url
from pkceflow.auth.pkce import generate_pkce, generate_state
from pkceflow.auth.server import CALLBACK_PATH, LOGIN_PATH, LoginServer
from pkceflow.exceptions import ConfigurationError
from pkceflow.settings import REQUIRED_ENV_HELP, Settings, get_settings

EXIT_CONFIG_ERROR = 2

console = Console()

app = typer.Typer(
    name="pkceflow",
    help="OAuth2 authorization code + PKCE login server.",
)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def _load_settings_or_exit() -> Settings:
    try:
        settings = get_settings()
        settings.flow_config()
    except ConfigurationError as e:
        console.print(f"[red bold]Configuration error:[/red bold] {e}")
        _print_env_help()
        raise typer.Exit(EXIT_CONFIG_ERROR) from e
    return settings


def _print_env_help() -> None:
    console.print("\n[bold]Environment variables:[/bold]")
    for name, description in REQUIRED_ENV_HELP:
        console.print(f"  [cyan]{name}[/cyan]: {description}")


async def _serve(server: LoginServer) -> None:
    await server.start()
    console.print(f"\n[bold]Server running on port {server.port}[/bold]")
    console.print(f"  Home URL:  {server.base_url}/")
    console.print(f"  Login URL: {server.base_url}{LOGIN_PATH}")
    console.print(f"  Callback:  {server.settings.redirect_uri}\n")
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Interface to bind. Defaults to HOST or localhost."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to listen on. Defaults to PORT or 3000."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Run the login server."""
    _setup_logging(verbose)
    settings = _load_settings_or_exit()

    if not settings.redirect_uri.rstrip("/").endswith(CALLBACK_PATH):
        logging.getLogger(__name__).warning(
            "REDIRECT_URI does not point at %s on this server", CALLBACK_PATH
        )

    server = LoginServer(settings, host=host, port=port)
    try:
        asyncio.run(_serve(server))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
        sys.exit(130)


@app.command()
def config() -> None:
    """Show the effective flow configuration."""
    settings = _load_settings_or_exit()
    flow = settings.flow_config()

    table = Table(title="Flow Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Client ID", flow.client_id)
    table.add_row("Authority", flow.authority_url)
    table.add_row("Authorize endpoint", flow.authorize_url)
    table.add_row("Token endpoint", flow.token_url)
    table.add_row("Redirect URI", flow.redirect_uri)
    table.add_row("Scopes", flow.scope)
    table.add_row("Prompt", flow.prompt or "-")
    table.add_row("Attempt TTL", f"{settings.attempt_ttl}s")
    console.print(table)


@app.command("login-url")
def login_url() -> None:
    """Print an authorization URL with a fresh PKCE challenge."""
    settings = _load_settings_or_exit()
    pkce = generate_pkce()
    url = build_authorization_url(
        settings.flow_config(), pkce.challenge, state=generate_state()
    )
    console.print(url, soft_wrap=True, markup=False, highlight=False, emoji=False)


if __name__ == "__main__":
    app()
