"""Board repository — read access for the scheduler, CRUD for operators.

Tags:
    repository, boards
"""

from __future__ import annotations

from typing import Any

from flapboard.core.models.board import Board
from flapboard.core.repository import BaseRepository
from flapboard.core.timestamps import from_iso8601, new_id, to_iso8601, utc_now


class BoardRepository(BaseRepository):
    """Access to the ``boards`` table."""

    TABLE = "boards"

    def get(self, board_id: str) -> Board | None:
        row = self.query_one(f"SELECT * FROM {self.TABLE} WHERE id = {self.ph(1)}", (board_id,))
        return self._row_to_board(row) if row else None

    def list_all(self) -> list[Board]:
        return [self._row_to_board(r) for r in self.query(f"SELECT * FROM {self.TABLE} ORDER BY name ASC")]

    def list_active(self) -> list[Board]:
        """Active boards in a stable order (creation time, then id)."""
        rows = self.query(
            f"SELECT * FROM {self.TABLE} WHERE is_active = {self.dialect.boolean_true()} "
            "ORDER BY created_at ASC, id ASC"
        )
        return [self._row_to_board(r) for r in rows]

    def list_by_workflow(self, workflow_id: str, *, active_only: bool = True) -> list[Board]:
        """Boards whose default workflow is ``workflow_id``."""
        sql = f"SELECT * FROM {self.TABLE} WHERE default_workflow_id = {self.ph(1)}"
        if active_only:
            sql += f" AND is_active = {self.dialect.boolean_true()}"
        rows = self.query(sql + " ORDER BY created_at ASC, id ASC", (workflow_id,))
        return [self._row_to_board(r) for r in rows]

    def create(self, board: Board) -> Board:
        """Insert a board, filling in id and timestamps when missing."""
        now = utc_now()
        board.id = board.id or new_id("brd")
        board.created_at = board.created_at or now
        board.updated_at = now
        self.insert(
            self.TABLE,
            {
                "id": board.id,
                "name": board.name,
                "location_label": board.location_label,
                "write_key": board.write_key,
                "default_workflow_id": board.default_workflow_id,
                "is_active": 1 if board.is_active else 0,
                "created_at": to_iso8601(board.created_at),
                "updated_at": to_iso8601(board.updated_at),
            },
        )
        self.commit()
        return board

    def assign_workflow(self, board_id: str, workflow_id: str | None) -> bool:
        count = self.update(
            self.TABLE,
            ("id", board_id),
            {"default_workflow_id": workflow_id, "updated_at": to_iso8601(utc_now())},
        )
        self.commit()
        return count > 0

    def set_active(self, board_id: str, active: bool) -> bool:
        count = self.update(
            self.TABLE,
            ("id", board_id),
            {"is_active": 1 if active else 0, "updated_at": to_iso8601(utc_now())},
        )
        self.commit()
        return count > 0

    def delete(self, board_id: str) -> bool:
        """Delete a board together with its scheduling state."""
        self.execute(f"DELETE FROM board_states WHERE board_id = {self.ph(1)}", (board_id,))
        cursor = self.execute(f"DELETE FROM {self.TABLE} WHERE id = {self.ph(1)}", (board_id,))
        self.commit()
        return cursor.rowcount > 0

    def _row_to_board(self, row: dict[str, Any]) -> Board:
        return Board(
            id=row["id"],
            name=row["name"],
            location_label=row.get("location_label"),
            write_key=row.get("write_key"),
            default_workflow_id=row.get("default_workflow_id"),
            is_active=bool(row["is_active"]),
            created_at=from_iso8601(row.get("created_at")),
            updated_at=from_iso8601(row.get("updated_at")),
        )
