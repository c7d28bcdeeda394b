"""CLI entry point for chatwire"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from chatwire.config.config import Settings
from chatwire.provider.errors import ProviderError

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="chatwire",
    help="Stream chat completions from many LLM providers through one interface",
    add_completion=False,
)

_state: dict = {"settings": None}


def _settings() -> Settings:
    if _state["settings"] is None:
        _state["settings"] = Settings.load()
    return _state["settings"]


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a chatwire.json config file"),
):
    """Global options"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _state["settings"] = Settings.load(config) if config else None


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    provider: str = typer.Option(None, "--provider", "-p", help="Provider name or kind"),
    model: str = typer.Option(None, "--model", "-m", help="Model id"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
):
    """Send a single message and stream the reply"""
    from chatwire.provider.base import Delta, Done, Error
    from chatwire.provider.router import stream_chat

    settings = _settings()
    config = settings.resolve(provider, model)

    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": message})

    async def stream_reply():
        async for event in stream_chat(config, messages, settings=settings):
            if isinstance(event, Delta):
                print(event.content, end="", flush=True)
            elif isinstance(event, Done):
                print()
                if event.total_tokens:
                    console.print(f"[dim]{event.total_tokens} tokens[/dim]")
                return True
            elif isinstance(event, Error):
                print()
                err_console.print(f"[red]Error:[/red] {event.message}")
                return False
        return False

    if not asyncio.run(stream_reply()):
        raise typer.Exit(1)


@app.command()
def models(
    provider: str = typer.Option(None, "--provider", "-p", help="Provider name or kind"),
):
    """List the models a provider offers"""
    from chatwire.provider.router import list_models

    settings = _settings()
    config = settings.resolve(provider)

    try:
        items = asyncio.run(list_models(config, settings=settings))
    except ProviderError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not items:
        console.print("[dim](no models)[/dim]")
        return

    table = Table(title=f"{config.provider_kind.value} models")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Context", justify="right")
    for item in items:
        table.add_row(item.id, item.display_name, str(item.context_window or ""))
    console.print(table)


@app.command()
def check(
    provider: str = typer.Option(None, "--provider", "-p", help="Provider name or kind"),
    model: str = typer.Option(None, "--model", "-m", help="Model id to probe with"),
):
    """Check that a provider answers a trivial prompt"""
    from chatwire.provider.collect import probe_connection

    settings = _settings()
    config = settings.resolve(provider, model)
    result = asyncio.run(probe_connection(config, settings=settings))

    if result.success:
        console.print(f"[green]{config.provider_kind.value} is reachable[/green]")
    else:
        err_console.print(f"[red]Connection failed:[/red] {result.error}")
        raise typer.Exit(1)


@app.command("copilot-login")
def copilot_login(
    open_browser: bool = typer.Option(True, "--browser/--no-browser", help="Open the verification page"),
):
    """Sign in to GitHub Copilot with the device flow"""
    import webbrowser
    from chatwire.auth.copilot_oauth import CopilotOAuth
    from chatwire.auth.credentials import CredentialStore
    from chatwire.provider.endpoints import ProviderKind

    oauth = CopilotOAuth(_settings().copilot)

    async def login() -> str:
        state = await oauth.start_device_flow()
        console.print(f"Open [cyan]{state.verification_uri}[/cyan] and enter code [bold]{state.user_code}[/bold]")
        if open_browser:
            webbrowser.open(state.verification_uri)
        with console.status("Waiting for authorization..."):
            return await oauth.wait_for_token(state)

    try:
        token = asyncio.run(login())
    except ProviderError as e:
        err_console.print(f"[red]Sign-in failed:[/red] {e}")
        raise typer.Exit(1)

    CredentialStore().set_api_key(ProviderKind.GITHUB_COPILOT, token)
    console.print("[green]Signed in to GitHub Copilot[/green]")


def main():
    app()


if __name__ == "__main__":
    main()
