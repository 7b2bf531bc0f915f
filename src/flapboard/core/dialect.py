"""SQL dialect abstraction for the repositories.

Repositories and the lock manager generate placeholders, conflict-tolerant
inserts and boolean literals through a ``Dialect`` instead of inlining
backend-specific SQL. ``SQLiteDialect`` is the default everywhere.

Examples:
    >>> from flapboard.core.dialect import SQLiteDialect
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.insert_or_ignore("board_states", ["board_id"])
    'INSERT OR IGNORE INTO board_states (board_id) VALUES (?)'

Guardrails:
    ❌ DON'T: Write backend-specific SQL in repositories
    ✅ DO: Use Dialect methods for placeholders and inserts

Tags:
    dialect, sql, portability, database
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a SQL fragment (or full statement) valid for the
    target database.
    """

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """``INSERT … ON CONFLICT DO NOTHING`` (or equivalent)."""
        ...

    def boolean_true(self) -> str:
        """Literal SQL value for boolean ``True``."""
        ...

    def boolean_false(self) -> str:
        """Literal SQL value for boolean ``False``."""
        ...


class SQLiteDialect:
    """SQLite dialect — ``?`` placeholders, integer booleans."""

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"


__all__ = [
    "Dialect",
    "SQLiteDialect",
]
