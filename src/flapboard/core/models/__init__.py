"""Dataclass models for the flapboard tables.

Modules
-------
board
    ``boards`` -- display units and their credentials.
workflow
    ``workflows`` -- step rotations, schedules and pins.
board_state
    ``board_states`` -- per-board scheduling state.
"""

from flapboard.core.models.board import Board
from flapboard.core.models.board_state import BoardState
from flapboard.core.models.workflow import (
    DEFAULT_DISPLAY_SECONDS,
    DEFAULT_INTERVAL_MINUTES,
    ScheduleType,
    Workflow,
    WorkflowKind,
    WorkflowSchedule,
    WorkflowStep,
)

__all__ = [
    "Board",
    "BoardState",
    "DEFAULT_DISPLAY_SECONDS",
    "DEFAULT_INTERVAL_MINUTES",
    "ScheduleType",
    "Workflow",
    "WorkflowKind",
    "WorkflowSchedule",
    "WorkflowStep",
]
