"""
Workflow resolution and rotation-step selection.

Answers two questions for the scheduler: which workflow may drive a board
right now, and which step of that workflow should be displayed.

Resolution order:
    ::

        1. active pin in range ─────────────► pin  (overrides every board)
        2. board has no default workflow ───► None
        3. default missing or inactive ─────► None
        4. schedule allows now?
              always        ──► workflow
              daily_window  ──► weekday + [start, end] (end inclusive)
              date_range    ──► civil dates inclusive, plus time bounds
                                when both start and end time are set

All civil comparisons use the calculator's timezone, never the server's
or UTC's calendar date, so resolution near midnight is stable.

Resolution is pure with respect to its inputs: the same board, store
contents and instant always resolve to the same workflow.

Tags:
    scheduling, resolver, pins, rotation

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from flapboard.core.errors import ValidationError
from flapboard.core.logging import get_logger
from flapboard.core.models.board import Board
from flapboard.core.models.workflow import ScheduleType, Workflow, WorkflowStep
from flapboard.core.repositories.workflows import WorkflowRepository
from flapboard.scheduling.time_window import (
    TimeWindow,
    TimeWindowCalculator,
    minute_of_day,
    parse_time_to_minutes,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class StepSelection:
    """The step to display now and its position in the rotation."""

    step: WorkflowStep
    index: int
    count: int

    @property
    def next_index(self) -> int:
        """Cursor value to persist after a successful run."""
        return (self.index + 1) % self.count


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)", field="date", value=value) from exc


class WorkflowResolver:
    """Picks the workflow and step a board should show.

    Args:
        workflows: Workflow store (read-only here).
        calculator: Civil-time source for all schedule checks.
    """

    def __init__(self, workflows: WorkflowRepository, calculator: TimeWindowCalculator) -> None:
        self.workflows = workflows
        self.calculator = calculator

    # ------------------------------------------------------------------
    # Workflow resolution
    # ------------------------------------------------------------------

    def active_pin(self, now: datetime | None = None) -> Workflow | None:
        """Most recently created active pin whose range contains ``now``."""
        now = now or self.calculator.now()
        for pin in self.workflows.list_active_pins():
            if self.is_in_date_range(pin, now):
                return pin
        return None

    def active_workflow(self, board: Board, now: datetime | None = None) -> Workflow | None:
        """The workflow allowed to run on ``board`` at ``now``, if any."""
        now = now or self.calculator.now()

        pin = self.active_pin(now)
        if pin is not None:
            logger.debug("pin_override", board_id=board.id, workflow_id=pin.id)
            return pin

        if not board.default_workflow_id:
            return None

        workflow = self.workflows.get(board.default_workflow_id)
        if workflow is None or not workflow.is_active:
            return None

        return workflow if self.is_workflow_active_now(workflow, now) else None

    def is_workflow_active_now(self, workflow: Workflow, now: datetime | None = None) -> bool:
        """Evaluate the workflow's schedule against ``now``."""
        now = now or self.calculator.now()
        schedule_type = workflow.schedule.type
        if schedule_type == ScheduleType.ALWAYS:
            return True
        if schedule_type == ScheduleType.DAILY_WINDOW:
            return self.is_in_daily_window(workflow, now)
        if schedule_type == ScheduleType.DATE_RANGE:
            return self.is_in_date_range(workflow, now)
        return False

    def is_in_daily_window(self, workflow: Workflow, now: datetime | None = None) -> bool:
        schedule = workflow.schedule
        if not schedule.start_time or not schedule.end_time:
            return True
        return self.calculator.is_in_window(schedule.start_time, schedule.end_time, schedule.days_of_week, now)

    def is_in_date_range(self, workflow: Workflow, now: datetime | None = None) -> bool:
        """Civil-date bounds check, with time bounds when both are set.

        With both times present the range is the closed interval
        ``[start_date start_time, end_date end_time]`` at minute precision.
        """
        schedule = workflow.schedule
        if not schedule.start_date or not schedule.end_date:
            return False

        civil = self.calculator.civil_now(now)
        today = civil.date()
        start_date = _parse_date(schedule.start_date)
        end_date = _parse_date(schedule.end_date)
        if today < start_date or today > end_date:
            return False

        if schedule.start_time and schedule.end_time:
            current = minute_of_day(civil)
            if today == start_date and current < parse_time_to_minutes(schedule.start_time):
                return False
            if today == end_date and current > parse_time_to_minutes(schedule.end_time):
                return False
        return True

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def next_step(self, workflow: Workflow, cursor: int) -> StepSelection | None:
        """Step to display now for the given rotation cursor.

        The cursor is taken modulo the current enabled-step count, so it
        stays valid when steps are added or removed between runs.
        """
        steps = workflow.enabled_steps()
        if not steps:
            return None
        index = cursor % len(steps)
        return StepSelection(step=steps[index], index=index, count=len(steps))

    def window_for(self, workflow: Workflow) -> TimeWindow | None:
        """Daily window that constrains next-trigger computation."""
        schedule = workflow.schedule
        if schedule.type == ScheduleType.DAILY_WINDOW and schedule.start_time and schedule.end_time:
            return TimeWindow(schedule.start_time, schedule.end_time, schedule.days_of_week)
        return None

    def next_trigger_for(self, workflow: Workflow, now: datetime | None = None) -> datetime:
        """Next aligned trigger for a board driven by ``workflow``."""
        return self.calculator.next_trigger(
            workflow.schedule.update_interval_minutes,
            self.window_for(workflow),
            now,
        )
