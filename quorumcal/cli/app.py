"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.http_snapshot_client import HttpSnapshotClient
from ..adapters.ics_renderer import ICSRenderer
from ..adapters.snapshot_store import SnapshotFileStore
from ..config import AppConfig, get_default_config_path
from ..domain.eligibility import DateEligibility, HolidayCalendar
from ..domain.exceptions import QuorumCalError
from ..domain.models import WEEKDAY_NAMES, weekday_of
from ..domain.validation import describe_window, parse_clock, parse_date
from ..services.feed import FeedService

app = typer.Typer(
    name="quorumcal",
    help="Turn participant availability into a quorum-based iCalendar feed",
    add_completion=False
)

console = Console()
err_console = Console(stderr=True)

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./quorumcal.yaml")]
SnapshotOption = Annotated[Optional[Path], typer.Option("--snapshot", "-s", help="Snapshot file (YAML or JSON). Overrides the config.")]
CalendarOption = Annotated[str, typer.Option("--calendar", "-C", help="Calendar id")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], snapshot: Optional[Path]) -> AppConfig:
    """
    Load the YAML config, or fall back to defaults when a snapshot is given
    on the command line and no config file exists.
    """
    config_path = config_file or get_default_config_path()
    if config_file is None and snapshot is not None and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_service(config: AppConfig, snapshot: Optional[Path]) -> FeedService:
    if snapshot is not None:
        store = SnapshotFileStore(snapshot)
    elif config.snapshot_path is not None:
        store = SnapshotFileStore(config.snapshot_path)
    elif config.snapshot_url:
        store = HttpSnapshotClient(config.snapshot_url, timeout=config.request_timeout)
    else:
        raise QuorumCalError("No snapshot configured. Pass --snapshot or set snapshot_path/snapshot_url.")

    return FeedService(
        store,
        eligibility=DateEligibility(HolidayCalendar()),
        renderer=ICSRenderer(product_id=config.product_id),
        default_domain=config.default_domain,
        max_range_days=config.max_range_days,
        horizon_days=config.recurrence_horizon_days,
    )


def _parse_headers(values: List[str]) -> Dict[str, str]:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise QuorumCalError(f"Invalid header {value!r}, expected \"Name: value\"")
        headers[name.strip()] = content.strip()
    return headers


def _setup(config_file: Optional[Path], snapshot: Optional[Path], verbose: bool) -> FeedService:
    config = _load_config(config_file, snapshot)
    _configure_logging(config.log_level, verbose)
    return _build_service(config, snapshot)


@app.command()
def feed(
    calendar: CalendarOption,
    config_file: ConfigOption = None,
    snapshot: SnapshotOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Host used in event UIDs. Defaults to default_domain.")] = None,
    header: Annotated[Optional[List[str]], typer.Option("--header", "-H", help="Request header as \"Name: value\"; X-Forwarded-Host, X-Real-Host and Host pick the UID host.")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write the feed to this file instead of stdout.")] = None,
    verbose: VerboseOption = False,
):
    """
    Render the iCalendar feed of a calendar.

    Examples:

        quorumcal feed --calendar team --snapshot snapshot.yaml

        quorumcal feed -C team -o team.ics --host cal.example.org

        quorumcal feed -C team -H "X-Forwarded-Host: cal.example.org"
    """
    try:
        headers = _parse_headers(header or [])
        service = _setup(config_file, snapshot, verbose)
        response = service.build_feed(calendar, host=host, headers=headers)
    except (FileNotFoundError, QuorumCalError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if output is None:
        typer.echo(response.body, nl=False)
        return

    # Keep the CRLF line endings intact
    output.write_bytes(response.body.encode("utf-8"))
    err_console.print(f"[green]✓ Feed written to {output}[/green]")


@app.command()
def summary(
    calendar: CalendarOption,
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Single date (YYYY-MM-DD)")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Range start (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Range end (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    snapshot: SnapshotOption = None,
    verbose: VerboseOption = False,
):
    """
    Show who is available, and the resulting slots, for a date or a range.
    """
    if date is None and (start is None or end is None):
        err_console.print("[red]Error: pass --date, or both --start and --end.[/red]")
        raise typer.Exit(1)

    try:
        service = _setup(config_file, snapshot, verbose)
        if date is not None:
            summaries = [service.date_summary(calendar, date)]
        else:
            summaries = service.range_summary(calendar, start, end)
    except (FileNotFoundError, QuorumCalError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not any(s.entries for s in summaries):
        console.print("[yellow]⚠ No availability in this period.[/yellow]")
        return

    table = Table(
        title=f"Availability - {calendar}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Peak", justify="right")
    table.add_column("Participants")
    table.add_column("Slots", style="green")

    for day_summary in summaries:
        participants = "\n".join(
            f"{entry.name} ({describe_window(parse_clock(entry.start_time), parse_clock(entry.end_time))})"
            for entry in day_summary.entries
        )
        slots = "\n".join(slot.format_display() for slot in day_summary.slots) or "-"
        table.add_row(day_summary.date.isoformat(), str(day_summary.total_count), participants, slots)

    console.print()
    console.print(table)
    console.print()


@app.command()
def calendars(
    config_file: ConfigOption = None,
    snapshot: SnapshotOption = None,
    verbose: VerboseOption = False,
):
    """
    List the calendars available in the snapshot.
    """
    try:
        service = _setup(config_file, snapshot, verbose)
        configs = service.list_calendars()
    except (FileNotFoundError, QuorumCalError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not configs:
        console.print("[yellow]⚠ No calendars in this snapshot.[/yellow]")
        return

    table = Table(title="Calendars", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Quorum", justify="right")
    table.add_column("Weekdays")
    table.add_column("Timezone")

    for config in configs:
        weekdays = ", ".join(WEEKDAY_NAMES[day][:3] for day in config.allowed_weekdays)
        quorum = f"{config.threshold}/{config.total_participants}"
        table.add_row(config.id, config.name, quorum, weekdays, config.timezone)

    console.print()
    console.print(table)
    console.print()


@app.command("check-date")
def check_date(
    calendar: CalendarOption,
    day: Annotated[str, typer.Argument(help="Date to check (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    snapshot: SnapshotOption = None,
    verbose: VerboseOption = False,
):
    """
    Explain whether a date may carry events for a calendar.
    """
    try:
        service = _setup(config_file, snapshot, verbose)
        parsed = parse_date(day)
        config = service.get_calendar(calendar)
    except (FileNotFoundError, QuorumCalError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    verdict = service.eligibility.explain(
        parsed,
        config.timezone,
        config.allowed_weekdays,
        config.holidays_policy,
        config.allow_holiday_eves,
    )
    if verdict.allowed and not config.in_date_range(parsed):
        status = "[bold red]✗ Not allowed[/bold red]"
        reason = "outside of the calendar's date range"
    elif verdict.allowed:
        status = "[bold green]✓ Allowed[/bold green]"
        reason = verdict.reason
    else:
        status = "[bold red]✗ Not allowed[/bold red]"
        reason = verdict.reason

    hours = config.allowed_hours.allowed_range_for_date(parsed, config, service.eligibility.holiday_calendar)
    console.print(Panel.fit(
        f"{status}\n\n"
        f"[bold]Date:[/bold] {WEEKDAY_NAMES[weekday_of(parsed)]}, {parsed.isoformat()}\n"
        f"[bold]Reason:[/bold] {reason}\n"
        f"[bold]Country:[/bold] {verdict.country_code or 'n/a'}\n"
        f"[bold]Allowed hours:[/bold] {describe_window(hours.start, hours.end) if not hours.is_empty else 'none'}",
        title=config.name
    ))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]quorumcal[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
