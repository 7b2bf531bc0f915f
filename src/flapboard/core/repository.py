"""Base repository with dialect-aware database access.

Pairs a :class:`~flapboard.core.protocols.Connection` with a
:class:`~flapboard.core.dialect.Dialect` so the board, workflow and
scheduling-state repositories write portable SQL.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       BaseRepository                               │
    │                                                                    │
    │   conn: Connection        ← protocol from flapboard.core.protocols │
    │   dialect: Dialect        ← from flapboard.core.dialect            │
    │                                                                    │
    │   execute(sql, params)     → cursor                                │
    │   query(sql, params)       → list[dict]                            │
    │   query_one(sql, params)   → dict | None                           │
    │   insert(table, data)      → cursor                                │
    │   update(table, key, data) → rowcount                              │
    └────────────────────────────────────────────────────────────────────┘

Tags:
    repository, database, abstraction, portability
"""

from __future__ import annotations

from typing import Any

from flapboard.core.dialect import Dialect, SQLiteDialect
from flapboard.core.protocols import Connection


class BaseRepository:
    """Dialect-aware base class for data-access repositories.

    Parameters:
        conn: Any object satisfying the :class:`Connection` protocol.
        dialect: SQL dialect to use.  Defaults to :class:`SQLiteDialect`.
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def ph(self, count: int) -> str:
        """Shortcut for ``self.dialect.placeholders(count)``.

        Embed directly in f-strings:

            f"SELECT * FROM boards WHERE id = {self.ph(1)}"
        """
        return self.dialect.placeholders(count)

    # -- Query helpers -----------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a statement and return the raw cursor/result."""
        return self.conn.execute(sql, params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        cursor = self.conn.execute(sql, params)
        rows = cursor.fetchall()
        if not rows:
            return []

        # dict(row) works with sqlite3.Row
        try:
            return [dict(row) for row in rows]
        except (TypeError, ValueError):
            pass

        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row, strict=False)) for row in rows]

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a SELECT and return the first row as a dict (or None)."""
        results = self.query(sql, params)
        return results[0] if results else None

    # -- Write helpers -----------------------------------------------------

    def insert(self, table: str, data: dict[str, Any]) -> Any:
        """Insert a single row from a dict."""
        columns = list(data.keys())
        values = list(data.values())
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({self.ph(len(values))})"
        return self.conn.execute(sql, tuple(values))

    def update(self, table: str, key: tuple[str, Any], data: dict[str, Any]) -> int:
        """Update columns of the row(s) matching ``key`` and return the rowcount."""
        if not data:
            return 0
        ph = self.dialect.placeholders(1)
        assignments = ", ".join(f"{col} = {ph}" for col in data)
        key_column, key_value = key
        sql = f"UPDATE {table} SET {assignments} WHERE {key_column} = {ph}"
        cursor = self.conn.execute(sql, (*data.values(), key_value))
        return cursor.rowcount

    def commit(self) -> None:
        """Commit the current transaction."""
        self.conn.commit()


__all__ = [
    "BaseRepository",
]
