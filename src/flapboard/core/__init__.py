"""Flapboard Core -- storage, errors, logging and configuration.

Manifesto:
    The scheduling engine needs a small, boring foundation: a connection
    protocol it can run against SQLite in tests, repositories that speak
    plain SQL, an error hierarchy that tells a skip from a failure, and
    structured logs that carry the board being worked on.

Architecture::

    Layer 1 -- Types & Errors
        errors.py          FlapboardError hierarchy + ErrorContext
        protocols.py       Connection, Renderer, Transport
        timestamps.py      ULID ids + UTC/ISO-8601 helpers

    Layer 2 -- Database
        dialect.py         Placeholder / upsert dialects
        repository.py      BaseRepository helpers
        sqlite_conn.py     sqlite3 adapter for the Connection protocol
        schema.py          DDL + create_core_tables()
        models/            Board, Workflow, BoardState dataclasses
        repositories/      Board / workflow / board-state stores

    Layer 3 -- Runtime
        settings.py        FlapboardSettings (pydantic-settings)
        logging.py         structlog configuration + LogContext

Tags:
    flapboard, core, storage, errors, logging, settings
"""

from flapboard.core.errors import (
    ErrorCategory,
    ErrorContext,
    FlapboardError,
    NotFoundError,
    ValidationError,
)
from flapboard.core.logging import configure_logging, get_logger
from flapboard.core.protocols import Connection, Matrix, PushOutcome, Renderer, Transport
from flapboard.core.schema import create_core_tables
from flapboard.core.settings import FlapboardSettings, get_settings
from flapboard.core.sqlite_conn import SqliteConnection

__all__ = [
    "Connection",
    "ErrorCategory",
    "ErrorContext",
    "FlapboardError",
    "FlapboardSettings",
    "Matrix",
    "NotFoundError",
    "PushOutcome",
    "Renderer",
    "SqliteConnection",
    "Transport",
    "ValidationError",
    "configure_logging",
    "create_core_tables",
    "get_logger",
    "get_settings",
]
