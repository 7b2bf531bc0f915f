"""Result records surfaced to operators.

Every single-board run ends in exactly one :class:`BoardRunResult`;
``run_all_boards`` aggregates them into a :class:`BatchResult`.  Batch
runners never raise for a board's failure; the failure is a result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from flapboard.core.errors import ErrorCategory, FlapboardError, ScheduleError, categorize_error


class RunStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BoardRunResult:
    """Outcome of one board's run."""

    board_id: str
    status: RunStatus
    workflow_id: str | None = None
    step_index: int | None = None
    screen_type: str | None = None
    reason: str | None = None
    error: str | None = None
    error_category: ErrorCategory | None = None
    next_trigger: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status != RunStatus.FAILED

    @classmethod
    def from_error(cls, board_id: str, error: Exception) -> BoardRunResult:
        """Map an exception to a result.

        Schedule conditions (not scheduled now, board busy) are skips;
        everything else is a failure.
        """
        category = categorize_error(error)
        message = error.message if isinstance(error, FlapboardError) else str(error)
        if isinstance(error, ScheduleError):
            return cls(board_id=board_id, status=RunStatus.SKIPPED, reason=message, error_category=category)
        workflow_id = None
        if isinstance(error, FlapboardError):
            workflow_id = error.context.workflow_id
        return cls(
            board_id=board_id,
            status=RunStatus.FAILED,
            workflow_id=workflow_id,
            error=message,
            error_category=category,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "board_id": self.board_id,
            "status": self.status.value,
            "workflow_id": self.workflow_id,
            "step_index": self.step_index,
            "screen_type": self.screen_type,
            "reason": self.reason,
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "next_trigger": self.next_trigger.isoformat() if self.next_trigger else None,
        }


@dataclass
class BatchResult:
    """Aggregate of one ``run_all_boards`` pass."""

    started_at: datetime
    finished_at: datetime | None = None
    pins_expired: int = 0
    results: list[BoardRunResult] = field(default_factory=list)

    @property
    def boards_processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == RunStatus.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.status == RunStatus.SKIPPED)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.status == RunStatus.FAILED)

    def for_board(self, board_id: str) -> BoardRunResult | None:
        return next((r for r in self.results if r.board_id == board_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "boards_processed": self.boards_processed,
            "success_count": self.success_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "pins_expired": self.pins_expired,
            "results": [r.to_dict() for r in self.results],
        }
