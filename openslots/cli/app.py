"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Awaitable, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.json_repository import JsonAvailabilityRepository
from ..adapters.sync_client import HttpCalendarSyncClient
from ..config import AppConfig
from ..domain.exceptions import (
    InvalidRequestError,
    ProviderNotFoundError,
    SlotEngineError,
)
from ..domain.slot_calculator import SlotCalculator
from ..services.responses import SlotQueryService
from ..services.slot_finder import SlotFinderService
from ..services.sync import BackgroundSyncTrigger

app = typer.Typer(
    name="openslots",
    help="Resolve bookable appointment slots for service providers",
    add_completion=False
)

console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2
EXIT_UNKNOWN_PROVIDER = 4

_STATUS_EXIT_CODES = {400: EXIT_INVALID_INPUT, 404: EXIT_UNKNOWN_PROVIDER}

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./openslots.yaml"),
]
DataOption = Annotated[
    Optional[Path],
    typer.Option("--data", help="JSON data file. Overrides data_file from the config."),
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _build_services(
    config_file: Optional[Path],
    data_file: Optional[Path],
) -> Tuple[AppConfig, SlotFinderService, Optional[BackgroundSyncTrigger]]:
    """Load the configuration and wire the repository, calendar sync and engine."""
    config = AppConfig.load_or_default(config_file)
    _configure_logging(config.log_level)

    repository = JsonAvailabilityRepository(data_file or config.data_file)

    sync_trigger = None
    if config.sync.enabled and config.sync.base_url:
        client = HttpCalendarSyncClient(
            base_url=config.sync.base_url,
            api_token=config.sync.api_token,
            timeout_seconds=config.sync.timeout_seconds,
        )
        sync_trigger = BackgroundSyncTrigger(client, timeout_seconds=config.sync.timeout_seconds)

    finder = SlotFinderService(
        providers=repository,
        availability=repository,
        calendar=repository,
        locations=repository,
        slot_calculator=SlotCalculator(
            safety_buffer_minutes=config.safety_buffer_minutes,
            step_policy=config.slot_step_policy,
            step_minutes=config.step_minutes,
        ),
        sync_trigger=sync_trigger,
        fallback_timezone=config.default_timezone,
        default_services=config.default_services,
        location_fallback=config.location_fallback,
        default_days_ahead=config.default_days_ahead,
    )
    return config, finder, sync_trigger


def _run(coro: Awaitable[Any], sync_trigger: Optional[BackgroundSyncTrigger]) -> Any:
    """Run one engine call and let any in-flight calendar sync finish before exit."""
    async def runner():
        try:
            return await coro
        finally:
            if sync_trigger is not None:
                await sync_trigger.drain()

    return asyncio.run(runner())


def _fail(message: str, code: int) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code)


def _exit_for(exc: Exception) -> None:
    """Map engine and configuration errors onto exit codes."""
    if isinstance(exc, InvalidRequestError):
        _fail(str(exc), EXIT_INVALID_INPUT)
    if isinstance(exc, ProviderNotFoundError):
        _fail(str(exc), EXIT_UNKNOWN_PROVIDER)
    _fail(str(exc), EXIT_FAILURE)


@app.command()
def find(
    provider_id: Annotated[str, typer.Argument(help="Provider to list open slots for")],
    service_type: Annotated[Optional[str], typer.Option("--service-type", "-s", help="Only slots offering this service")] = None,
    days_ahead: Annotated[Optional[int], typer.Option("--days-ahead", "-d", help="Days to look ahead (default from config)")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the client-facing JSON payload")] = False,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List all open slots of a provider from now on.

    Examples:

        openslots find prov-1

        openslots find prov-1 --service-type consultation --days-ahead 7

        openslots find prov-1 --json
    """
    try:
        _, finder, sync_trigger = _build_services(config_file, data_file)
    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        _fail(str(e), EXIT_FAILURE)

    outcome = _run(
        SlotQueryService(finder).query_open_slots(provider_id, service_type, days_ahead),
        sync_trigger,
    )

    if as_json:
        typer.echo(json.dumps(outcome.body, indent=2))
        if not outcome.ok:
            raise typer.Exit(_STATUS_EXIT_CODES.get(outcome.status, EXIT_FAILURE))
        return

    if not outcome.ok:
        _fail(outcome.body.get("error", "Request failed"), _STATUS_EXIT_CODES.get(outcome.status, EXIT_FAILURE))

    body = outcome.body
    provider = body["provider"]
    tz = provider["timezone"]

    console.print()
    if not body["slots"]:
        console.print(
            f"[yellow]⚠ No open slots for {provider['name']}.[/yellow]\n"
            "Try a longer look-ahead or a different service type."
        )
        return

    table = Table(
        title=f"{provider['name']} ({tz}): {body['totalSlots']} open slot(s)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Time")
    table.add_column("Min", justify="right")
    table.add_column("Type", style="dim")
    table.add_column("Left", justify="right")
    table.add_column("Location")

    for slot in body["slots"]:
        start = pendulum.parse(slot["startTime"]).in_timezone(tz)
        end = pendulum.parse(slot["endTime"]).in_timezone(tz)
        table.add_row(
            start.format("ddd YYYY-MM-DD"),
            f"{start.format('HH:mm')} - {end.format('HH:mm')}",
            str(slot["duration"]),
            slot["type"],
            str(slot["slotsRemaining"]),
            slot["location"]["display"],
        )

    console.print(table)
    console.print()


@app.command()
def day(
    provider_id: Annotated[str, typer.Argument(help="Provider to list slots for")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD) in the provider's timezone")],
    duration: Annotated[int, typer.Argument(help="Appointment duration in minutes")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show automatic slots of one duration on a single date.
    """
    try:
        target = pendulum.from_format(date, "YYYY-MM-DD").date()
    except ValueError as e:
        _fail(f"Invalid date {date!r}: {e}", EXIT_INVALID_INPUT)

    try:
        _, finder, sync_trigger = _build_services(config_file, data_file)
        result = _run(finder.slots_for_date(provider_id, target, duration), sync_trigger)
    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        _exit_for(e)

    console.print()
    if not result.slots:
        console.print(f"[yellow]⚠ No {duration}-minute slots on {target.isoformat()}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(result.slots)} slot(s) for {result.provider.name}:[/bold green]\n")
    for slot in result.slots:
        console.print(f"  {slot.format_display(result.timezone)}")
    console.print()


@app.command()
def preview(
    provider_id: Annotated[str, typer.Argument(help="Provider to preview")],
    days_ahead: Annotated[Optional[int], typer.Option("--days-ahead", "-d", help="Days to look ahead")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Preview per-day availability: governing source, location and slot counts.
    """
    try:
        _, finder, sync_trigger = _build_services(config_file, data_file)
        provider, tz, previews = _run(
            finder.availability_preview(provider_id, days_ahead=days_ahead),
            sync_trigger,
        )
    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        _exit_for(e)

    durations = provider.effective_durations()
    table = Table(
        title=f"Availability preview: {provider.name} ({tz})",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Source", style="dim")
    for minutes in durations:
        table.add_column(f"{minutes} min", justify="right")
    table.add_column("Location")

    for entry in previews:
        source = entry.source + (" ★" if entry.using_advanced_schedule else "")
        counts = [str(entry.slot_counts.get(minutes, 0)) for minutes in durations]
        style = None if entry.has_availability else "dim"
        table.add_row(
            pendulum.date(entry.date.year, entry.date.month, entry.date.day).format("ddd YYYY-MM-DD"),
            source,
            *counts,
            entry.location_display,
            style=style,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def check(
    provider_id: Annotated[str, typer.Argument(help="Provider to check")],
    start: Annotated[str, typer.Argument(help="Start as ISO-8601 date-time; without an offset UTC is assumed")],
    duration: Annotated[int, typer.Argument(help="Appointment duration in minutes")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Check whether a specific appointment could be booked.
    """
    try:
        start_at = pendulum.parse(start)
    except ValueError as e:
        _fail(f"Invalid start {start!r}: {e}", EXIT_INVALID_INPUT)
    if not isinstance(start_at, pendulum.DateTime):
        _fail(f"Start must include a time of day, got {start!r}", EXIT_INVALID_INPUT)

    try:
        _, finder, sync_trigger = _build_services(config_file, data_file)
        available = _run(finder.is_slot_available(provider_id, start_at, duration), sync_trigger)
    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        _exit_for(e)

    when = f"{start_at.in_timezone('UTC').to_iso8601_string()} ({duration} min)"
    if available:
        console.print(Panel.fit(f"[bold green]✓ Available[/bold green]\n{when}", title=provider_id))
    else:
        console.print(Panel.fit(f"[bold red]✗ Not available[/bold red]\n{when}", title=provider_id))
        raise typer.Exit(EXIT_FAILURE)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]openslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
