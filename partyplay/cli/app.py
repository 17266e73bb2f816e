"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from partyplay import __version__
from partyplay.backends.registry import BackendRegistry
from partyplay.exceptions import PartyplayError
from partyplay.storage.cache import CachePipeline
from partyplay.storage.config_manager import ConfigManager, default_cache_dir
from partyplay.utils.config_validator import (
    validate_backend_sections,
    validate_config_schema,
)
from partyplay.web.server import PartyServer

from .formatters import print_config, print_search_results, print_validation_table

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("partyplay")

app = typer.Typer(
    name="partyplay",
    help=(
        "A crowd-voted party jukebox server. Use 'partyplay <command> --help' for"
        " more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "partyplay"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Delete every cached song and exit."
    ),
):
    """partyplay server CLI"""
    if version:
        console.print(f"[bold]partyplay[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("partyplay").setLevel(log_level)

    if clear_cache:
        config = ConfigManager(CONFIG_FILE).load_config()
        cache = CachePipeline(Path(config.cache_dir), BackendRegistry())
        console.print("[cyan]Clearing song cache...[/cyan]")

        files_count = sum(1 for p in cache.cache_dir.rglob("*") if p.is_file())

        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} files removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]partyplay init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(
            CONFIG_FILE, config.model_dump(exclude={"config_path", "log_dir"})
        )
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    catalog_url: str = typer.Option(
        ..., "--catalog-url", "-u", help="Base URL of the song catalog service."
    ),
    name: str = typer.Option(
        "catalog", "--name", "-n", help="Name under which the catalog is registered."
    ),
    cache_dir: Path | None = typer.Option(  # noqa: B008
        None, "--cache-dir", help="Where downloaded songs are kept."
    ),
    port: int = typer.Option(8080, "--port", "-p", help="Port the server listens on."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create a configuration with one catalog backend."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "port": port,
        "cache_dir": str(cache_dir.expanduser())
        if cache_dir
        else default_cache_dir(CONFIG_DIR),
    }
    backends = {name: {"type": "http_catalog", "base_url": catalog_url}}

    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config(settings, backends)
    console.print(
        f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]"
    )
    console.print("Ready to party! Try: [cyan]partyplay serve[/cyan]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Address to bind to."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on."),
    log_dir: Path | None = typer.Option(  # noqa: B008
        None, "--log-dir", help="Write a JSON-lines event log into this directory."
    ),
):
    """Run the party server until interrupted."""
    cli_options = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "log_dir": str(log_dir) if log_dir else None,
        }.items()
        if value is not None
    }

    config = ConfigManager(CONFIG_FILE).load_config(cli_options)
    server = PartyServer(config)
    console.print("[bold cyan]🎵 Starting party server...[/bold cyan]")
    asyncio.run(server.run_forever())


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
    except PartyplayError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e

    settings = config.model_dump(exclude={"config_path", "log_dir"})
    schema_ok, schema_errors = validate_config_schema(settings)
    sections_ok, section_messages = validate_backend_sections(settings)
    if not (schema_ok and sections_ok):
        for message in schema_errors + section_messages:
            console.print(f"[red]✗ {message}[/red]")
        raise typer.Exit(code=1)

    print_validation_table(config, section_messages)


@app.command()
def search(
    terms: str = typer.Argument(..., help="Words to search for."),
    limit: int | None = typer.Option(
        None, "--limit", "-l", help="Maximum results per backend."
    ),
):
    """Search every configured backend from the terminal."""
    config = ConfigManager(CONFIG_FILE).load_config()

    async def _search_async():
        registry = BackendRegistry.from_config(config)
        try:
            await registry.initialize_all()
            return await registry.search(terms, limit or config.search_result_count)
        finally:
            await registry.close_all()

    print_search_results(terms, asyncio.run(_search_async()))
