"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from partyplay.backends.registry import SearchOutcome
from partyplay.models.config import PartyConfig
from partyplay.utils.formatting import display_artist, format_track_length


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `partyplay init --catalog-url <URL>` to create a configuration.",
            "• Run `partyplay validate` to see which setting is wrong.",
        ],
        "BackendError": [
            "• Check that the catalog service is running and reachable.",
            "• Verify `base_url` in the [backend:<name>] section of your config.",
        ],
        "BackendNotFoundError": [
            "• The backend name must match one listed under `backends`.",
            "• Run `partyplay --show-config` to list the configured backends.",
        ],
        "CacheError": [
            "• The media server refused or kept redirecting the download.",
            "• Check free disk space in the cache directory.",
        ],
        "CircuitBreakerError": [
            "• The catalog failed repeatedly and is cooling down.",
            "• Check your network connection and try again shortly.",
        ],
        "OSError": [
            "• The port may already be in use. Try `partyplay serve --port <N>`.",
            "• Binding to ports below 1024 usually requires elevated privileges.",
        ],
        "TimeoutError": [
            "• A backend did not answer in time.",
            "• Increase `timeout` in the backend section of your config.",
        ],
    }

    suggestions = next(
        (
            suggestions_map[cls.__name__]
            for cls in type(error).__mro__
            if cls.__name__ in suggestions_map
        ),
        ["• Run the command with -vv for detailed logs."],
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, one section per backend."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "backend_options":
            continue
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {escape(str(value))}\n"

    for name, options in config_data.get("backend_options", {}).items():
        content += f"\n[bold][backend:{escape(name)}][/bold]\n"
        for key, value in options.items():
            content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: PartyConfig, warnings: list[str] | None = None):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Listen Address:", f"[green]{config.host}:{config.port}[/green]")
    table.add_row("Cache Directory:", f"[dim]{escape(config.cache_dir)}[/dim]")
    table.add_row("Max Workers:", str(config.max_workers))
    table.add_row(
        "Retry Policy:",
        f"{config.max_connection_retries} reconnects every {config.retry_delay:g}s, "
        f"{config.max_redirects} redirects",
    )
    table.add_row("End Padding:", f"{config.end_padding:g}s")

    if config.backends:
        for name in config.backends:
            backend_type = config.backend_options.get(name, {}).get("type", "?")
            table.add_row("Backend:", f"{escape(name)} [dim]({backend_type})[/dim]")
    else:
        table.add_row("Backend:", "[yellow]✗ None enabled[/yellow]")

    for warning in warnings or []:
        table.add_row("⚠", f"[yellow]{escape(warning)}[/yellow]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_search_results(terms: str, outcome: SearchOutcome):
    """Displays aggregated search results and any per-backend failures."""
    console = Console()

    if outcome.songs:
        table = Table(title=f"Results for '{escape(terms)}'", box=box.ROUNDED)
        table.add_column("#", style="dim", justify="right")
        table.add_column("Title", style="cyan")
        table.add_column("Artist")
        table.add_column("Length", justify="right", style="green")
        table.add_column("Backend", style="magenta")
        table.add_column("ID", style="dim")
        for i, song in enumerate(outcome.songs, 1):
            data = song.to_dict()
            table.add_row(
                str(i),
                escape(data["title"]),
                escape(display_artist(data)),
                format_track_length(data["duration"]),
                escape(data["service"]),
                escape(data["id"]),
            )
        console.print(table)
    else:
        console.print(f"[yellow]No songs found for '{escape(terms)}'.[/yellow]")

    for name, error in outcome.errors.items():
        console.print(f"[red]✗ {escape(name)}:[/red] {escape(error)}")
