"""
CLI: ``flapboard db`` — database management commands.
"""

from __future__ import annotations

import typer

from flapboard.cli.utils import get_connection, output
from flapboard.core.schema import CORE_TABLES

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    conn = get_connection(database)
    conn.close()
    output({"tables": ", ".join(CORE_TABLES), "initialized": True}, as_json=json_out, title="Database Init")
