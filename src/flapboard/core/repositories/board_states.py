"""Scheduling-state repository (``board_states``).

Rows are created lazily on first contact (insert-or-ignore) and updated
after every run.  The lock columns are owned by
:class:`~flapboard.scheduling.lock_manager.BoardLockManager`; this
repository never touches ``workflow_running``.

Tags:
    repository, scheduling-state
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from flapboard.core.errors import StorageError
from flapboard.core.models.board_state import BoardState
from flapboard.core.protocols import Matrix
from flapboard.core.repository import BaseRepository
from flapboard.core.timestamps import from_iso8601, to_iso8601, utc_now


class BoardStateRepository(BaseRepository):
    """Access to the ``board_states`` table."""

    TABLE = "board_states"

    def get(self, board_id: str) -> BoardState | None:
        row = self.query_one(f"SELECT * FROM {self.TABLE} WHERE board_id = {self.ph(1)}", (board_id,))
        return self._row_to_state(row) if row else None

    def get_or_create(self, board_id: str) -> BoardState:
        """Load the board's state, creating an empty row on first contact."""
        now = to_iso8601(utc_now())
        self.execute(
            self.dialect.insert_or_ignore(self.TABLE, ["board_id", "created_at", "updated_at"]),
            (board_id, now, now),
        )
        self.commit()
        state = self.get(board_id)
        if state is None:
            raise StorageError(f"Could not create scheduling state for board {board_id}")
        return state

    def list_all(self) -> list[BoardState]:
        return [self._row_to_state(r) for r in self.query(f"SELECT * FROM {self.TABLE} ORDER BY board_id ASC")]

    def record_success(
        self,
        board_id: str,
        *,
        workflow_id: str,
        step_index: int,
        matrix: Matrix,
        at: datetime,
        next_trigger: datetime | None,
    ) -> None:
        """Persist a successful run and bump the cycle counter."""
        ph = self.ph(1)
        self.execute(
            f"UPDATE {self.TABLE} SET "
            f"current_workflow_id = {ph}, current_step_index = {ph}, last_matrix_json = {ph}, "
            f"last_update_at = {ph}, last_update_success = {self.dialect.boolean_true()}, "
            f"last_error = NULL, cycle_count = cycle_count + 1, next_scheduled_trigger = {ph}, "
            f"updated_at = {ph} WHERE board_id = {ph}",
            (
                workflow_id,
                step_index,
                json.dumps(matrix),
                to_iso8601(at),
                to_iso8601(next_trigger),
                to_iso8601(utc_now()),
                board_id,
            ),
        )
        self.commit()

    def record_failure(
        self,
        board_id: str,
        *,
        error: str,
        at: datetime,
        workflow_id: str | None = None,
        next_trigger: datetime | None = None,
        step_index: int | None = None,
    ) -> None:
        """Persist a failed run.

        The rotation cursor is left unchanged unless ``step_index`` is given;
        a failed first run of a newly active workflow passes 0 so the
        rotation still starts at its first step.
        """
        data: dict[str, Any] = {
            "last_update_at": to_iso8601(at),
            "last_update_success": 0,
            "last_error": error,
            "updated_at": to_iso8601(utc_now()),
        }
        if workflow_id is not None:
            data["current_workflow_id"] = workflow_id
        if next_trigger is not None:
            data["next_scheduled_trigger"] = to_iso8601(next_trigger)
        if step_index is not None:
            data["current_step_index"] = step_index
        self.update(self.TABLE, ("board_id", board_id), data)
        self.commit()

    def resync(self, board_ids: list[str], trigger_at: datetime) -> int:
        """Put the given boards on one immediate trigger with cursor 0."""
        if not board_ids:
            return 0
        for board_id in board_ids:
            self.execute(
                self.dialect.insert_or_ignore(self.TABLE, ["board_id", "created_at", "updated_at"]),
                (board_id, to_iso8601(trigger_at), to_iso8601(trigger_at)),
            )
        cursor = self.execute(
            f"UPDATE {self.TABLE} SET next_scheduled_trigger = {self.ph(1)}, current_step_index = 0, "
            f"updated_at = {self.ph(1)} WHERE board_id IN ({self.ph(len(board_ids))})",
            (to_iso8601(trigger_at), to_iso8601(utc_now()), *board_ids),
        )
        self.commit()
        return cursor.rowcount

    def delete(self, board_id: str) -> bool:
        cursor = self.execute(f"DELETE FROM {self.TABLE} WHERE board_id = {self.ph(1)}", (board_id,))
        self.commit()
        return cursor.rowcount > 0

    def _row_to_state(self, row: dict[str, Any]) -> BoardState:
        matrix = row.get("last_matrix_json")
        success = row.get("last_update_success")
        return BoardState(
            board_id=row["board_id"],
            current_workflow_id=row.get("current_workflow_id"),
            current_step_index=row["current_step_index"] or 0,
            workflow_running=bool(row["workflow_running"]),
            locked_at=from_iso8601(row.get("locked_at")),
            last_matrix=json.loads(matrix) if matrix else None,
            last_update_at=from_iso8601(row.get("last_update_at")),
            last_update_success=None if success is None else bool(success),
            last_error=row.get("last_error"),
            cycle_count=row["cycle_count"] or 0,
            next_scheduled_trigger=from_iso8601(row.get("next_scheduled_trigger")),
            created_at=from_iso8601(row.get("created_at")),
            updated_at=from_iso8601(row.get("updated_at")),
        )
