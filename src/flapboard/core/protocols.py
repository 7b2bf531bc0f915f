"""
Protocol definitions for flapboard.

Single home for the structural contracts the engine depends on: the
database ``Connection`` and the two device-side collaborators, the
``Renderer`` and the ``Transport``.  The scheduler only ever depends on
these shapes, so tests can hand it in-memory doubles and production can
hand it the httpx-backed Vestaboard client.

Architecture:
    ::

        protocols.py
        ├── Connection   — sync DB protocol (sqlite3 adapter)
        ├── Renderer     — async render(screen_type, config) -> Matrix
        ├── Transport    — async push(credential, matrix) -> PushOutcome
        └── PushOutcome  — {success, status, data}

Guardrails:
    ❌ DON'T: Duplicate these protocols in other modules
    ✅ DO: Import from flapboard.core.protocols

    ❌ DON'T: Interpret the matrix in the engine
    ✅ DO: Pass it from renderer to transport and cache it for display

Tags:
    protocol, connection, renderer, transport, contracts
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# A display matrix: fixed-size grid of small non-negative character/color codes
Matrix = list[list[int]]


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface for database operations.

    Repositories are written against this shape; ``SqliteConnection`` is
    the adapter used by the CLI and the tests.

    Examples:
        >>> conn.execute("SELECT * FROM boards WHERE id = ?", ("b_1",))
        >>> row = conn.fetchone()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters. SYNC."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets. SYNC."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query. SYNC."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...


@dataclass(frozen=True)
class PushOutcome:
    """Result of one push to a device.

    The engine treats any non-exception return as authoritative and only
    looks at ``success``; ``status`` and ``data`` are kept for logs.
    """

    success: bool
    status: int | None = None
    data: Any = None
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Renderer(Protocol):
    """Turns a step's screen type and configuration into a display matrix."""

    async def render(self, screen_type: str, config: Mapping[str, Any]) -> Matrix:
        ...


@runtime_checkable
class Transport(Protocol):
    """Pushes a display matrix to a physical board."""

    async def push(self, credential: str, matrix: Matrix) -> PushOutcome:
        ...


__all__ = [
    "Connection",
    "Matrix",
    "PushOutcome",
    "Renderer",
    "Transport",
]
