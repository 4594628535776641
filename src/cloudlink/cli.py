"""
cloudlink CLI: command-line interface.

Usage:
    cloudlink providers
    cloudlink connect google_drive --user alice
    cloudlink files dropbox --user alice
    cloudlink download onedrive FILE_ID --user alice --output report.pdf
    cloudlink status --user alice
    cloudlink disconnect google_drive --user alice
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cloudlink import __version__
from cloudlink.errors import AuthError

T = TypeVar("T")

app = typer.Typer(
    name="cloudlink",
    help="☁️  cloudlink: connect Google Drive, Dropbox and OneDrive accounts",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

# Global options, filled in by the callback
_options: dict[str, Any] = {"config": None, "verbose": False}


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]cloudlink[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
    config: str = typer.Option(
        "cloudlink.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """☁️  cloudlink: sign in with the system browser, then list and download documents."""
    _options["config"] = config if Path(config).exists() else None
    _options["verbose"] = verbose


class _ConsoleLauncher:
    """Prints the consent URL instead of opening a browser."""

    def open(self, url: str) -> bool:
        console.print("Open this URL in your browser to continue:")
        console.print(url, soft_wrap=True)
        return True


def _load_storage():  # noqa: ANN202
    from cloudlink.log import configure_logging
    from cloudlink.storage import CloudStorage

    storage = CloudStorage.from_config(_options["config"])
    configure_logging(
        logging.DEBUG if _options["verbose"] else logging.WARNING,
        redact_secrets=storage.config.security.redact_logs,
    )
    if not storage.config.security.open_browser:
        storage.browser = _ConsoleLauncher()
        storage.orchestrator.browser = storage.browser
    return storage


def _run(storage, operation: Callable[[], Awaitable[T]]) -> T:  # noqa: ANN001
    """Run one async operation, always closing HTTP clients; AuthError exits 1."""

    async def runner() -> T:
        try:
            return await operation()
        finally:
            await storage.close()

    try:
        return asyncio.run(runner())
    except AuthError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from None


@app.command()
def providers() -> None:
    """List the available storage providers."""
    storage = _load_storage()

    async def configured() -> list:
        return storage.providers()

    table = Table(title="Storage Providers")
    table.add_column("Provider", style="bold cyan")
    table.add_column("Kind")
    table.add_column("Scopes")
    table.add_column("Status")

    for provider in _run(storage, configured):
        status = "✅ Configured" if provider.is_configured else "🔑 Needs client id"
        table.add_row(provider.id, provider.kind.value, " ".join(provider.scopes), status)

    console.print(table)


@app.command()
def connect(
    provider: str = typer.Argument(..., help="Provider id, e.g. google_drive"),
    user: str = typer.Option("default", "--user", "-u", help="Local user id"),
) -> None:
    """Sign in to a provider through the system browser."""
    storage = _load_storage()

    console.print(Panel.fit(
        f"[bold blue]☁️  cloudlink[/bold blue]: connecting [bold]{provider}[/bold]",
        subtitle=f"v{__version__}",
    ))

    with console.status("[bold green]Waiting for sign-in in your browser...[/bold green]"):
        credential = _run(storage, lambda: storage.connect(provider, user))

    refresh = "with" if credential.refresh_token else "without"
    console.print(f"[green]✓[/green] Connected [bold]{provider}[/bold] for {user} ({refresh} refresh token)")


@app.command()
def files(
    provider: str = typer.Argument(..., help="Provider id"),
    user: str = typer.Option("default", "--user", "-u", help="Local user id"),
) -> None:
    """List supported documents in a connected account."""
    storage = _load_storage()

    with console.status("[bold green]Fetching files...[/bold green]"):
        items = _run(storage, lambda: storage.list_files(provider, user))

    table = Table(title=f"{provider} documents")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Modified")

    for item in items:
        table.add_row(item.id, item.name, item.mime_type, f"{item.size:,}", item.modified_time or "")

    console.print(table)
    if not items:
        console.print("[dim]No supported documents found (PDF, DOCX, TXT, MD).[/dim]")


@app.command()
def download(
    provider: str = typer.Argument(..., help="Provider id"),
    file_id: str = typer.Argument(..., help="File id as shown by `cloudlink files`"),
    user: str = typer.Option("default", "--user", "-u", help="Local user id"),
    output: str = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path (defaults to the file id)",
    ),
) -> None:
    """Download one file from a connected account."""
    storage = _load_storage()

    with console.status("[bold green]Downloading...[/bold green]"):
        data = _run(storage, lambda: storage.download_file(provider, user, file_id))

    path = Path(output or Path(file_id).name)
    path.write_bytes(data)
    console.print(f"[green]✓[/green] Saved {len(data):,} bytes to [bold]{path}[/bold]")


@app.command()
def disconnect(
    provider: str = typer.Argument(..., help="Provider id"),
    user: str = typer.Option("default", "--user", "-u", help="Local user id"),
    all_users: bool = typer.Option(
        False,
        "--all-users",
        help="Remove stored tokens for every user of this provider",
    ),
) -> None:
    """Forget stored tokens for a provider."""
    storage = _load_storage()

    if all_users:

        async def purge() -> int:
            return storage.purge_provider(provider)

        removed = _run(storage, purge)
        console.print(f"[green]✓[/green] Removed {removed} stored secrets for [bold]{provider}[/bold]")
        return

    _run(storage, lambda: storage.disconnect(provider, user))
    console.print(f"[green]✓[/green] Disconnected [bold]{provider}[/bold] for {user}")


@app.command()
def status(
    user: str = typer.Option("default", "--user", "-u", help="Local user id"),
) -> None:
    """Show which providers are connected for a user."""
    storage = _load_storage()

    async def collect() -> list:
        return [(p.id, storage.status(p.id, user)) for p in storage.providers()]

    rows = _run(storage, collect)

    table = Table(title=f"Connections for {user}", show_lines=True)
    table.add_column("Provider", style="bold cyan")
    table.add_column("Connected")
    table.add_column("Refresh token")
    table.add_column("Expires")

    for provider_id, token_status in rows:
        table.add_row(
            provider_id,
            "✅" if token_status.connected else "no",
            "yes" if token_status.has_refresh_token else "no",
            token_status.expires_at.strftime("%Y-%m-%d %H:%M UTC") if token_status.expires_at else "",
        )

    console.print(table)


if __name__ == "__main__":
    app()
