"""Command-line interface for rb-scrobbler."""

import datetime as dt
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config.settings import RunOptions, Settings
from .core.normalizer import normalize_log
from .core.parser import LogParser
from .exceptions import ParseError
from .models.outcome import OutcomeStatus, RunSummary
from .utils.logger import setup_logger
from .utils.platform import get_config_dir

app = typer.Typer(help="Submit Rockbox .scrobbler.log files to Last.fm")
console = Console()


class FileAction(str, Enum):
    """What to do with the log file after a run."""

    PROMPT = "prompt"
    KEEP = "keep"
    DELETE = "delete"
    DELETE_ON_SUCCESS = "delete-on-success"


def get_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from file or defaults."""
    return Settings.from_file_or_default(config_path)


def format_timestamp(timestamp: int) -> str:
    """Render an epoch timestamp as UTC, falling back to the raw number."""
    try:
        return dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return str(timestamp)


def print_diagnostics(diagnostics) -> None:
    """Print rejected log lines."""
    if not diagnostics:
        return

    table = Table(title="Rejected Lines")
    table.add_column("Line", justify="right", style="cyan")
    table.add_column("Problem", style="yellow")

    for error in diagnostics:
        table.add_row(str(error.line_number), error.message)

    console.print(table)


def print_summary(summary: RunSummary) -> None:
    """Print the outcome of a run."""
    print_diagnostics(summary.diagnostics)

    failed = [o for o in summary.outcomes if o.status is OutcomeStatus.FAILED]
    if failed:
        table = Table(title="Failed Scrobbles")
        table.add_column("Line", justify="right", style="cyan")
        table.add_column("Track", style="green")
        table.add_column("Reason", style="red")

        for outcome in failed:
            table.add_row(str(outcome.record.line_number), str(outcome.record), outcome.reason or "")

        console.print(table)

    if summary.error is not None:
        console.print(f"[red]Error: {summary.error}[/red]")
    if summary.cancelled:
        console.print("[yellow]Run cancelled, remaining scrobbles were not sent[/yellow]")

    console.print(
        f"[bold]Accepted:[/bold] {summary.accepted}  "
        f"[bold]Ignored:[/bold] {summary.ignored}  "
        f"[bold]Failed:[/bold] {summary.failed}  "
        f"[bold]Rejected lines:[/bold] {len(summary.diagnostics)}"
    )


def delete_log_file(path: Path) -> int:
    """Delete the log file, returning an exit code."""
    try:
        path.unlink()
    except OSError as e:
        console.print(f"[red]Error deleting {path}: {e}[/red]")
        return 1

    console.print(f"[green]{path} deleted[/green]")
    return 0


def handle_file(path: Path, action: FileAction, summary: RunSummary) -> int:
    """Keep or delete the log after a run, returning an exit code."""
    success = summary.exit_code == 0

    if action is FileAction.KEEP:
        console.print(f"{path} kept")
        return 0

    if action is FileAction.DELETE:
        return delete_log_file(path)

    if not success:
        console.print(f"[yellow]Scrobble failures: {path} not deleted[/yellow]")
        return 0

    if action is FileAction.DELETE_ON_SUCCESS:
        return delete_log_file(path)

    if typer.confirm(f"Delete {path}?", default=False):
        return delete_log_file(path)

    console.print(f"{path} kept")
    return 0


@app.command()
def scrobble(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to your .scrobbler.log"
    ),
    offset: float = typer.Option(
        0.0,
        "--offset",
        "-o",
        help="Offset in hours of the player's local time to UTC, e.g. -5.5"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file"
    ),
    non_interactive: FileAction = typer.Option(
        FileAction.PROMPT,
        "--non-interactive",
        "-n",
        help="What to do with the log afterwards instead of asking"
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Abort on the first malformed line"
    )
):
    """Submit the plays in a scrobbler log to Last.fm."""
    try:
        settings = get_settings(config)
        options = RunOptions(log_path=file, offset_hours=offset, strict=strict)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)

    password = None
    lastfm = settings.lastfm
    if not lastfm.session_key and not lastfm.password and lastfm.username:
        password = typer.prompt(f"Last.fm password for {lastfm.username}", hide_input=True)

    # Import here to keep --help fast
    from .service import ScrobblerService

    try:
        with ScrobblerService(settings=settings) as service:
            summary = service.run(options, password=password)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user[/yellow]")
        raise typer.Exit(130)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    print_summary(summary)

    file_exit = handle_file(file, non_interactive, summary)
    raise typer.Exit(summary.exit_code or file_exit)


@app.command()
def inspect(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to your .scrobbler.log"
    ),
    offset: float = typer.Option(
        0.0,
        "--offset",
        "-o",
        help="Offset in hours of the player's local time to UTC"
    )
):
    """Parse a log and show what would be submitted, without sending anything."""
    logger = setup_logger(
        log_file=None,  # Console only for inspection
        level="WARNING",
        console=True
    )

    try:
        options = RunOptions(log_path=file, offset_hours=offset)
        log = LogParser(logger=logger).parse_file(options.log_path)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)
    except (OSError, ParseError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[cyan]Format version:[/cyan] {log.version}")
    console.print(f"[cyan]Timezone:[/cyan] {log.timezone}")
    console.print(f"[cyan]Client:[/cyan] {log.client or 'Unknown'}\n")

    table = Table(title="Log Records")
    table.add_column("Line", justify="right", style="cyan")
    table.add_column("Artist", style="green")
    table.add_column("Title", style="green")
    table.add_column("Album")
    table.add_column("Rating")
    table.add_column("Played (UTC)")

    for record, utc in zip(log.records, normalize_log(log, options.offset_hours, logger=logger)):
        rating = "[green]Listened[/green]" if record.listened else "[yellow]Skipped[/yellow]"
        played = format_timestamp(utc.timestamp)
        if record.timestamp == 0:
            played += " (no clock, dated now)"
        table.add_row(
            str(record.line_number),
            record.artist,
            record.title,
            record.album,
            rating,
            played
        )

    console.print(table)
    print_diagnostics(log.diagnostics)

    if not log.records:
        raise typer.Exit(1)


@app.command()
def init_config(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path for config file"
    )
):
    """Initialize a configuration file with defaults."""
    if output is None:
        output = get_config_dir() / 'config.yaml'

    if output.exists():
        overwrite = typer.confirm(
            f"Config file already exists at {output}. Overwrite?",
            default=False
        )
        if not overwrite:
            console.print("[yellow]Cancelled[/yellow]")
            return

    settings = Settings()
    settings.save(output)

    console.print(f"[green]Configuration file created: {output}[/green]")
    console.print("\nAdd your Last.fm API key, secret and username to this file")


if __name__ == "__main__":
    app()
