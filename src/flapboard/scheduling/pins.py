"""
Pin overlay: short-lived workflows that override every board.

A pin is a workflow with ``kind = pinned`` and a ``date_range`` schedule.
While an active pin's range contains "now", the resolver returns it for
every board regardless of the board's own assignment.  Pins are never
deleted by the engine; the sweep deactivates them once their range has
passed and runs at the start of every scheduler tick so that expiry
unblocks normal workflows promptly.

Examples:
    >>> request = PinRequest(
    ...     steps=[PinStepConfig(screen_type="MESSAGE", screen_config={"message": "FIRE DRILL"})],
    ...     start_date="2026-01-12", end_date="2026-01-12",
    ...     start_time="09:00", end_time="10:00",
    ... )
    >>> pin = manager.create_pin("brd_1", request, created_by="ops")  # doctest: +SKIP

Tags:
    scheduling, pins, override, pydantic

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flapboard.core.errors import ValidationError, WorkflowNotFoundError
from flapboard.core.logging import get_logger
from flapboard.core.models.workflow import (
    DEFAULT_DISPLAY_SECONDS,
    ScheduleType,
    Workflow,
    WorkflowKind,
    WorkflowSchedule,
    WorkflowStep,
)
from flapboard.core.repositories.workflows import WorkflowRepository
from flapboard.scheduling.resolver import WorkflowResolver
from flapboard.scheduling.time_window import format_minutes, minute_of_day, parse_time_to_minutes

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class PinStepConfig(BaseModel):
    """One screen of a pin."""

    model_config = ConfigDict(extra="forbid")

    screen_type: str = Field(..., min_length=1, description="Renderer screen type")
    screen_config: dict[str, Any] = Field(default_factory=dict, description="Opaque renderer configuration")
    display_seconds: int = Field(default=DEFAULT_DISPLAY_SECONDS, ge=5, le=300)


class PinRequest(BaseModel):
    """Validated request to pin content to every board for a period."""

    model_config = ConfigDict(extra="forbid")

    steps: list[PinStepConfig] = Field(..., min_length=1, description="Screens to rotate while pinned")
    start_date: str = Field(..., description="First civil day, YYYY-MM-DD")
    end_date: str = Field(..., description="Last civil day, YYYY-MM-DD")
    start_time: str | None = Field(default=None, description="Civil start time on start_date, HH:MM")
    end_time: str | None = Field(default=None, description="Civil end time on end_date, HH:MM")

    @field_validator("start_date", "end_date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        date.fromisoformat(value)
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _hh_mm(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                parse_time_to_minutes(value)
            except ValidationError as exc:
                raise ValueError(exc.message) from exc
        return value

    @model_validator(mode="after")
    def _ordered(self) -> PinRequest:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (
            self.start_date == self.end_date
            and self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            raise ValueError("end_time must not be before start_time on a single-day pin")
        return self


def build_pin_request(**data: Any) -> PinRequest:
    """Validate raw input into a :class:`PinRequest`.

    Raises:
        ValidationError: With pydantic's messages joined into one line.
    """
    try:
        return PinRequest.model_validate(data)
    except pydantic.ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid pin request: {messages}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class PinManager:
    """Creates, lists and expires pins."""

    def __init__(self, workflows: WorkflowRepository, resolver: WorkflowResolver) -> None:
        self.workflows = workflows
        self.resolver = resolver
        self.calculator = resolver.calculator

    def create_pin(self, board_id: str, request: PinRequest, created_by: str | None = None) -> Workflow:
        """Create an active pinned workflow from ``request``.

        ``board_id`` records where the pin was requested from; the pin
        itself applies to every board while in range.
        """
        civil = self.calculator.civil_now()
        steps = [
            WorkflowStep(
                step_id=f"step_{index}",
                order=index,
                screen_type=config.screen_type,
                screen_config=dict(config.screen_config),
                display_seconds=config.display_seconds,
                is_enabled=True,
            )
            for index, config in enumerate(request.steps)
        ]
        workflow = Workflow(
            name=f"Pinned - {civil:%m/%d} {format_minutes(minute_of_day(civil))}",
            kind=WorkflowKind.PINNED,
            description=f"Pinned from board {board_id}",
            is_default=False,
            is_active=True,
            steps=steps,
            schedule=WorkflowSchedule(
                type=ScheduleType.DATE_RANGE,
                start_date=request.start_date,
                end_date=request.end_date,
                start_time=request.start_time,
                end_time=request.end_time,
            ),
            created_by=created_by,
        )
        self.workflows.create(workflow)
        logger.info(
            "pin_created",
            workflow_id=workflow.id,
            board_id=board_id,
            start=f"{request.start_date} {request.start_time or ''}".strip(),
            end=f"{request.end_date} {request.end_time or ''}".strip(),
            steps=len(steps),
        )
        return workflow

    def is_expired(self, pin: Workflow, now: datetime | None = None) -> bool:
        """True once the pin's range has fully passed.

        Expired when the end date is before today, or is today and the end
        time of day has been reached.
        """
        schedule = pin.schedule
        if not schedule.end_date:
            return False
        civil = self.calculator.civil_now(now)
        today = civil.strftime("%Y-%m-%d")
        if schedule.end_date < today:
            return True
        return (
            schedule.end_date == today
            and schedule.end_time is not None
            and schedule.end_time <= format_minutes(minute_of_day(civil))
        )

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Deactivate every active pin whose range has passed."""
        now = now or self.calculator.now()
        expired = [pin for pin in self.workflows.list_active_pins() if self.is_expired(pin, now)]
        count = self.workflows.deactivate_many([pin.id for pin in expired])
        for pin in expired:
            logger.info("pin_expired", workflow_id=pin.id, name=pin.name)
        return count

    def active_pins(self, now: datetime | None = None) -> list[Workflow]:
        """Active pins whose range contains ``now``, newest first."""
        now = now or self.calculator.now()
        return [pin for pin in self.workflows.list_active_pins() if self.resolver.is_in_date_range(pin, now)]

    def remove_pin(self, workflow_id: str) -> Workflow:
        """Deactivate a pin before its range ends."""
        pin = self.workflows.get(workflow_id)
        if pin is None or not pin.is_pinned:
            raise WorkflowNotFoundError(workflow_id)
        if pin.is_active:
            self.workflows.set_active(workflow_id, False)
            pin.is_active = False
            logger.info("pin_removed", workflow_id=workflow_id)
        return pin
