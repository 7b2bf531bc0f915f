"""Per-board scheduling state (``board_states`` table).

One row per board, created lazily the first time the scheduler touches
the board.  It carries the rotation cursor, the re-entrancy lock and the
bookkeeping of the last and next runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class BoardState:
    """Scheduling state row (``board_states``).

    ``current_step_index`` is always interpreted modulo the current number
    of enabled steps, so adding or removing steps between runs is safe.
    ``last_matrix`` is cached for display only.
    """

    board_id: str = ""
    current_workflow_id: str | None = None
    current_step_index: int = 0
    workflow_running: bool = False
    locked_at: datetime | None = None
    last_matrix: list[list[int]] | None = None
    last_update_at: datetime | None = None
    last_update_success: bool | None = None
    last_error: str | None = None
    cycle_count: int = 0
    next_scheduled_trigger: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """True when no trigger is pending or the pending one has passed."""
        return self.next_scheduled_trigger is None or self.next_scheduled_trigger <= now
