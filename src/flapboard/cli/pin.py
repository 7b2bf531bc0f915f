"""
CLI: ``flapboard pin`` — pin overlay commands.
"""

from __future__ import annotations

import json

import typer

from flapboard.cli.utils import fail, make_service, output
from flapboard.core.errors import FlapboardError
from flapboard.core.models.workflow import Workflow, WorkflowKind
from flapboard.core.settings import get_settings
from flapboard.scheduling.pins import build_pin_request

app = typer.Typer(no_args_is_help=True)


def _pin_row(pin: Workflow) -> dict:
    schedule = pin.schedule
    return {
        "id": pin.id,
        "name": pin.name,
        "start": f"{schedule.start_date} {schedule.start_time or ''}".strip(),
        "end": f"{schedule.end_date} {schedule.end_time or ''}".strip(),
        "steps": len(pin.steps),
        "active": pin.is_active,
    }


@app.command("create")
def create_pin(
    board_id: str = typer.Argument(..., help="Board the pin is requested from"),
    message: str | None = typer.Option(None, "--message", "-m", help="Text to show (MESSAGE screen)"),
    screen_type: str = typer.Option("MESSAGE", "--screen-type", help="Renderer screen type"),
    config_json: str | None = typer.Option(None, "--config", help="Screen config as JSON"),
    start_date: str | None = typer.Option(None, "--start-date", help="YYYY-MM-DD (default: today)"),
    end_date: str | None = typer.Option(None, "--end-date", help="YYYY-MM-DD (default: start date)"),
    start_time: str | None = typer.Option(None, "--start-time", help="HH:MM"),
    end_time: str | None = typer.Option(None, "--end-time", help="HH:MM"),
    display_seconds: int | None = typer.Option(None, "--display-seconds", help="Seconds per screen"),
    created_by: str | None = typer.Option(None, "--created-by"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Pin a screen to every board for a date/time range."""
    service, _conn = make_service(database)
    try:
        screen_config = json.loads(config_json) if config_json else {}
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--config is not valid JSON: {e}") from e
    if message is not None:
        screen_config["message"] = message

    start_date = start_date or service.calculator.civil_now().date().isoformat()
    if display_seconds is None:
        display_seconds = get_settings().default_display_seconds
    try:
        request = build_pin_request(
            steps=[{"screen_type": screen_type, "screen_config": screen_config, "display_seconds": display_seconds}],
            start_date=start_date,
            end_date=end_date or start_date,
            start_time=start_time,
            end_time=end_time,
        )
        pin = service.pins.create_pin(board_id, request, created_by=created_by)
    except FlapboardError as e:
        raise fail(e) from e
    output(_pin_row(pin), as_json=json_out, title="Pin Created")


@app.command("list")
def list_pins(
    show_all: bool = typer.Option(False, "--all", help="Include inactive and out-of-range pins"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List pins currently overriding the boards."""
    service, _conn = make_service(database)
    if show_all:
        pins = service.workflows.list_workflows(kind=WorkflowKind.PINNED)
    else:
        pins = service.pins.active_pins()
    output([_pin_row(p) for p in pins], as_json=json_out, title="Pins")


@app.command("remove")
def remove_pin(
    workflow_id: str = typer.Argument(..., help="Pinned workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Deactivate a pin before its range ends."""
    service, _conn = make_service(database)
    try:
        pin = service.pins.remove_pin(workflow_id)
    except FlapboardError as e:
        raise fail(e) from e
    output(_pin_row(pin), as_json=json_out, title="Pin Removed")


@app.command("sweep")
def sweep_pins(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Deactivate pins whose range has passed."""
    service, _conn = make_service(database)
    count = service.pins.sweep_expired()
    output({"expired": count}, as_json=json_out, title="Pin Sweep")
