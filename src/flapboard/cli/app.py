"""
Root Typer application for the flapboard CLI.

Operator entry points into the scheduling engine: one-off ticks, manual
and synchronized triggers, resync, lock maintenance, the long-running
scheduler, and the pin overlay.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfoNotFoundError

import typer
from typer import Typer

from flapboard import __version__
from flapboard.cli.db import app as db_app
from flapboard.cli.pin import app as pin_app
from flapboard.cli.utils import console, fail, make_service, output
from flapboard.core.errors import FlapboardError
from flapboard.core.logging import configure_logging
from flapboard.core.settings import get_settings
from flapboard.core.timestamps import from_iso8601
from flapboard.scheduling.time_window import TimeWindow, TimeWindowCalculator, trigger_times

app = Typer(
    name="flapboard",
    help="flapboard — scheduling engine for split-flap display boards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"flapboard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """flapboard CLI — run, trigger and maintain board schedules."""


# ── Scheduling commands ──────────────────────────────────────────────────


@app.command()
def tick(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one scheduling pass over every active board."""
    service, _conn = make_service(database)
    batch = asyncio.run(service.run_all_boards())
    if json_out:
        output(batch, as_json=True)
        return
    output(batch.results, title="Boards")
    console.print(
        f"\n[bold]{batch.boards_processed}[/bold] processed: "
        f"[green]{batch.success_count} ok[/green], "
        f"[yellow]{batch.skipped_count} skipped[/yellow], "
        f"[red]{batch.failed_count} failed[/red], "
        f"{batch.pins_expired} pins expired"
    )


@app.command()
def trigger(
    board_id: str = typer.Argument(..., help="Board ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update one board now, ignoring its interval."""
    service, _conn = make_service(database)
    try:
        result = asyncio.run(service.trigger_board(board_id))
    except FlapboardError as e:
        raise fail(e) from e
    output(result, as_json=json_out, title=f"Board: {board_id}")


@app.command("trigger-workflow")
def trigger_workflow(
    workflow_id: str = typer.Argument(..., help="Workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update every board on a workflow with the same screen at once."""
    service, _conn = make_service(database)
    try:
        results = asyncio.run(service.trigger_workflow(workflow_id))
    except FlapboardError as e:
        raise fail(e) from e
    output(results, as_json=json_out, title=f"Workflow: {workflow_id}")


@app.command()
def resync(
    workflow_id: str = typer.Argument(..., help="Workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Put every board on a workflow back in lockstep."""
    service, _conn = make_service(database)
    try:
        count = service.resync_workflow(workflow_id)
    except FlapboardError as e:
        raise fail(e) from e
    output({"workflow_id": workflow_id, "boards_resynced": count}, as_json=json_out, title="Resync")


@app.command()
def unlock(
    stale_seconds: int | None = typer.Option(
        None, "--stale-seconds", help="Only release locks held longer than this"
    ),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Release board locks left behind by a crashed run."""
    service, _conn = make_service(database)
    if stale_seconds is None:
        released = service.clear_all_locks()
    else:
        released = service.lock_manager.release_stale_locks(stale_seconds)
    output({"released": released}, as_json=json_out, title="Unlock")


@app.command()
def serve(
    database: str | None = typer.Option(None, "--database", "-d"),
    interval: float | None = typer.Option(None, "--interval", help="Tick interval in seconds"),
) -> None:
    """Run the scheduler until interrupted."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    service, conn = make_service(database)
    if interval is not None:
        service.interval = interval
    service.start()
    console.print(f"[green]Scheduler running[/green] (every {service.interval}s). Ctrl+C to stop.")
    try:
        service.backend.wait()
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping scheduler...[/yellow]")
    finally:
        service.stop()
        conn.close()


@app.command("next-trigger")
def next_trigger(
    interval: int | None = typer.Option(None, "--interval", "-i", help="Interval in minutes"),
    start: str | None = typer.Option(None, "--start", help="Window start HH:MM"),
    end: str | None = typer.Option(None, "--end", help="Window end HH:MM"),
    days: str | None = typer.Option(None, "--days", help="Allowed weekdays, 0=Sunday, e.g. 1,2,3,4,5"),
    at: str | None = typer.Option(None, "--at", help="Evaluate at this ISO-8601 instant"),
    timezone: str | None = typer.Option(None, "--timezone", "--tz"),
    list_times: bool = typer.Option(False, "--list", help="Also list every trigger time in the window"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show when a board on the given schedule would next update."""
    settings = get_settings()
    if interval is None:
        interval = settings.default_interval_minutes
    try:
        calculator = TimeWindowCalculator(timezone or settings.timezone)
        window = None
        if start and end:
            day_list = [int(d) for d in days.split(",")] if days else None
            window = TimeWindow(start, end, day_list)
        now: datetime | None = from_iso8601(at) if at else None
        instant = calculator.next_trigger(interval, window, now)
        times = trigger_times(start, end, interval) if list_times and start and end else None
    except FlapboardError as e:
        raise fail(e) from e
    except (ValueError, ZoneInfoNotFoundError) as e:
        raise typer.BadParameter(str(e)) from e

    data = {
        "next_trigger_utc": instant.isoformat(),
        "next_trigger_local": calculator.to_civil(instant).isoformat(),
        "timezone": calculator.timezone,
    }
    if times is not None:
        data["trigger_times"] = ", ".join(times)
    output(data, as_json=json_out, title="Next Trigger")


# ── Sub-command registration ─────────────────────────────────────────────

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(pin_app, name="pin", help="Pin content to every board.")
