"""Command-line interface for the focus ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .clock import day_key, parse_day_key, today_key
from .config import TrackerSettings
from .errors import FocusLedgerError
from .paths import get_db_path, get_export_path

app = typer.Typer(help="Narrated time tracking with distraction accounting.")

_DB_OPTION = typer.Option(
    None, "--db", path_type=Path, help="Location of the ledger SQLite database."
)
_DATE_OPTION = typer.Option(
    None, "--date", help="Date (YYYY-MM-DD) to report on. Defaults to today."
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _service(db_path: Optional[Path]):
    from .service import TrackerService
    from .store import LedgerStore

    return TrackerService(
        store=LedgerStore(db_path or get_db_path()), settings=TrackerSettings.from_env()
    )


def _anchor(date: Optional[str]):
    try:
        return parse_day_key(date) if date else datetime.now().date()
    except FocusLedgerError as exc:
        raise typer.BadParameter(str(exc), param_hint="--date") from exc


@app.command()
def summary(date: Optional[str] = _DATE_OPTION, db_path: Optional[Path] = _DB_OPTION) -> None:
    """Print the timeline and totals for a specific day."""
    from .reporting import SummaryPrinter, format_duration

    service = _service(db_path)
    target = _anchor(date)
    SummaryPrinter(service.ledger.days(), service.correlator.history()).print_daily_summary(target)
    tracked = service.session.seconds_for(day_key(target))
    if tracked:
        typer.echo(f"\nTime spent logging: {format_duration(tracked)}")


@app.command()
def week(date: Optional[str] = _DATE_OPTION, db_path: Optional[Path] = _DB_OPTION) -> None:
    """Compare the ISO week containing --date with the week before."""
    from .reporting import SummaryPrinter

    service = _service(db_path)
    printer = SummaryPrinter(service.ledger.days(), service.correlator.history())
    printer.print_period_summary("Week", service.week_summary(_anchor(date)))


@app.command()
def month(date: Optional[str] = _DATE_OPTION, db_path: Optional[Path] = _DB_OPTION) -> None:
    """Compare the calendar month containing --date with the month before."""
    from .reporting import SummaryPrinter

    service = _service(db_path)
    printer = SummaryPrinter(service.ledger.days(), service.correlator.history())
    printer.print_period_summary("Month", service.month_summary(_anchor(date)))


@app.command()
def stop(
    at: Optional[str] = typer.Option(None, "--at", help="End time (ISO 8601). Defaults to now."),
    db_path: Optional[Path] = _DB_OPTION,
) -> None:
    """Close the ongoing activity."""
    service = _service(db_path)
    try:
        stopped = service.stop(at)
    except FocusLedgerError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if stopped is None:
        typer.echo("Nothing is ongoing.")
    else:
        typer.echo(f"Stopped {stopped.description!r} after {stopped.duration} minutes.")


@app.command("export")
def export_ledger(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", path_type=Path, help="Destination file for the export."
    ),
    db_path: Optional[Path] = _DB_OPTION,
) -> None:
    """Write the whole ledger to a JSON file."""
    destination = output or get_export_path(today_key())
    destination.write_text(_service(db_path).export_document(), encoding="utf-8")
    typer.echo(f"Exported ledger to {destination}")


@app.command("import")
def import_ledger(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Exported JSON file."),
    db_path: Optional[Path] = _DB_OPTION,
) -> None:
    """Replace the ledger with the contents of an export."""
    try:
        count = _service(db_path).import_document(source.read_text(encoding="utf-8"))
    except FocusLedgerError as exc:
        typer.secho(f"Import failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Imported {count} day(s).")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = _DB_OPTION,
    poll_seconds: float = typer.Option(
        2.0,
        "--interval",
        min=0.5,
        help="Foreground-app polling interval in seconds.",
    ),
    gap_minutes: float = typer.Option(
        5.0,
        "--gap-threshold",
        min=1.0,
        help="Minutes of unaccounted time before a gap is reported.",
    ),
    monitor: bool = typer.Option(
        True,
        "--monitor/--no-monitor",
        help="Watch foreground apps for distractions.",
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the local API with the session ticker and foreground poller."""
    from .server_runner import run_server

    settings = TrackerSettings.from_env(
        base=TrackerSettings.from_intervals(poll_seconds=poll_seconds, gap_minutes=gap_minutes)
    )
    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        monitor=monitor,
        open_browser=open_browser,
    )
