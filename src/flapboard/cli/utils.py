"""
CLI utility helpers — output formatting and service wiring.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from flapboard.core.errors import FlapboardError
from flapboard.core.schema import create_core_tables
from flapboard.core.settings import FlapboardSettings, get_settings
from flapboard.core.sqlite_conn import SqliteConnection
from flapboard.rendering.text import TextRenderer
from flapboard.scheduling import SchedulerService, create_scheduler
from flapboard.transports.vestaboard import VestaboardClient

console = Console()
err_console = Console(stderr=True)


# ── Connection helpers ───────────────────────────────────────────────────


def get_connection(database: str | None = None, settings: FlapboardSettings | None = None) -> SqliteConnection:
    """Open the database (``FLAPBOARD_DATABASE_PATH`` by default) with tables ensured."""
    settings = settings or get_settings()
    conn = SqliteConnection(database or settings.database_path)
    create_core_tables(conn)
    return conn


def make_service(database: str | None = None) -> tuple[SchedulerService, SqliteConnection]:
    """Wire a scheduler with the text renderer and the Vestaboard client."""
    settings = get_settings()
    conn = get_connection(database, settings)
    service = create_scheduler(
        conn,
        renderer=TextRenderer(),
        transport=VestaboardClient.from_settings(settings),
        settings=settings,
    )
    return service, conn


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def fail(error: FlapboardError) -> typer.Exit:
    """Print an engine error and return the exit to raise."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    return typer.Exit(code=1)


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a result object, dict or list of them to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table([_to_dict(d) for d in data], title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*("" if v is None else str(v) for v in item.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
