"""Workflow models (``workflows`` table).

A workflow is an ordered rotation of display steps plus a schedule that
says when the rotation may run.  Pins are workflows with
``kind = WorkflowKind.PINNED`` and a ``date_range`` schedule.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from flapboard.core.errors import ValidationError

DEFAULT_DISPLAY_SECONDS = 20
DEFAULT_INTERVAL_MINUTES = 30
MAX_INTERVAL_MINUTES = 1440


class WorkflowKind(str, Enum):
    NORMAL = "normal"
    PINNED = "pinned"


class ScheduleType(str, Enum):
    ALWAYS = "always"
    DAILY_WINDOW = "daily_window"
    DATE_RANGE = "date_range"


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@dataclass
class WorkflowStep:
    """One (screen type, configuration, duration) unit of a rotation."""

    step_id: str = ""
    order: int = 0
    screen_type: str = ""
    screen_config: dict[str, Any] = field(default_factory=dict)
    display_seconds: int = DEFAULT_DISPLAY_SECONDS
    is_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowStep:
        return cls(
            step_id=data.get("step_id", ""),
            order=int(data.get("order", 0)),
            screen_type=data.get("screen_type", ""),
            screen_config=dict(data.get("screen_config") or {}),
            display_seconds=int(data.get("display_seconds") or DEFAULT_DISPLAY_SECONDS),
            is_enabled=bool(data.get("is_enabled", True)),
        )


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


@dataclass
class WorkflowSchedule:
    """When a workflow may run.

    ``start_time`` / ``end_time`` are civil ``HH:MM``; ``start_date`` /
    ``end_date`` are civil ``YYYY-MM-DD`` and only used by ``date_range``.
    ``days_of_week`` uses 0 = Sunday.
    """

    type: ScheduleType = ScheduleType.ALWAYS
    start_time: str | None = None
    end_time: str | None = None
    days_of_week: list[int] | None = None
    start_date: str | None = None
    end_date: str | None = None
    update_interval_minutes: int = DEFAULT_INTERVAL_MINUTES

    def __post_init__(self) -> None:
        if not 1 <= self.update_interval_minutes <= MAX_INTERVAL_MINUTES:
            raise ValidationError(
                f"Update interval must be between 1 and {MAX_INTERVAL_MINUTES} minutes",
                field="update_interval_minutes",
                value=self.update_interval_minutes,
            )


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@dataclass
class Workflow:
    """Workflow row (``workflows``)."""

    id: str = ""
    name: str = ""
    kind: WorkflowKind = WorkflowKind.NORMAL
    description: str | None = None
    is_default: bool = False
    is_active: bool = True
    steps: list[WorkflowStep] = field(default_factory=list)
    schedule: WorkflowSchedule = field(default_factory=WorkflowSchedule)
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pinned(self) -> bool:
        return self.kind == WorkflowKind.PINNED

    def enabled_steps(self) -> list[WorkflowStep]:
        """Enabled steps sorted by ``order``: the rotation sequence."""
        return sorted((s for s in self.steps if s.is_enabled), key=lambda s: s.order)
