"""Workflow repository — workflows and pins.

Steps and weekday sets are stored as JSON text.  Pins are ordinary rows
with ``kind = 'pinned'``.

Tags:
    repository, workflows, pins
"""

from __future__ import annotations

import json
from typing import Any

from flapboard.core.models.workflow import (
    ScheduleType,
    Workflow,
    WorkflowKind,
    WorkflowSchedule,
    WorkflowStep,
)
from flapboard.core.repository import BaseRepository
from flapboard.core.timestamps import from_iso8601, new_id, to_iso8601, utc_now


class WorkflowRepository(BaseRepository):
    """Access to the ``workflows`` table."""

    TABLE = "workflows"

    def get(self, workflow_id: str) -> Workflow | None:
        row = self.query_one(f"SELECT * FROM {self.TABLE} WHERE id = {self.ph(1)}", (workflow_id,))
        return self._row_to_workflow(row) if row else None

    def list_workflows(self, *, kind: WorkflowKind | None = None, active_only: bool = False) -> list[Workflow]:
        clauses: list[str] = []
        params: list[Any] = []
        if kind is not None:
            clauses.append(f"kind = {self.ph(1)}")
            params.append(kind.value)
        if active_only:
            clauses.append(f"is_active = {self.dialect.boolean_true()}")
        where = " AND ".join(clauses) if clauses else "1=1"
        rows = self.query(
            f"SELECT * FROM {self.TABLE} WHERE {where} ORDER BY created_at ASC, id ASC",
            tuple(params),
        )
        return [self._row_to_workflow(r) for r in rows]

    def list_active_pins(self) -> list[Workflow]:
        """Active pins, most recently created first."""
        rows = self.query(
            f"SELECT * FROM {self.TABLE} "
            f"WHERE kind = {self.ph(1)} AND is_active = {self.dialect.boolean_true()} "
            "ORDER BY created_at DESC, id DESC",
            (WorkflowKind.PINNED.value,),
        )
        return [self._row_to_workflow(r) for r in rows]

    def create(self, workflow: Workflow) -> Workflow:
        """Insert a workflow, filling in id and timestamps when missing."""
        now = utc_now()
        workflow.id = workflow.id or new_id("wf")
        workflow.created_at = workflow.created_at or now
        workflow.updated_at = now
        self.insert(self.TABLE, self._workflow_to_row(workflow))
        self.commit()
        return workflow

    def set_active(self, workflow_id: str, active: bool) -> bool:
        count = self.update(
            self.TABLE,
            ("id", workflow_id),
            {"is_active": 1 if active else 0, "updated_at": to_iso8601(utc_now())},
        )
        self.commit()
        return count > 0

    def deactivate_many(self, workflow_ids: list[str]) -> int:
        if not workflow_ids:
            return 0
        now = to_iso8601(utc_now())
        cursor = self.execute(
            f"UPDATE {self.TABLE} SET is_active = {self.dialect.boolean_false()}, updated_at = {self.ph(1)} "
            f"WHERE id IN ({self.ph(len(workflow_ids))})",
            (now, *workflow_ids),
        )
        self.commit()
        return cursor.rowcount

    def delete(self, workflow_id: str) -> bool:
        """Delete a workflow and clean up everything that pointed at it.

        Scheduling-state rows driven by the workflow are removed and boards
        that had it as their default are left unassigned.
        """
        self.execute(
            f"DELETE FROM board_states WHERE current_workflow_id = {self.ph(1)}",
            (workflow_id,),
        )
        self.execute(
            f"UPDATE boards SET default_workflow_id = NULL WHERE default_workflow_id = {self.ph(1)}",
            (workflow_id,),
        )
        cursor = self.execute(f"DELETE FROM {self.TABLE} WHERE id = {self.ph(1)}", (workflow_id,))
        self.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _workflow_to_row(self, workflow: Workflow) -> dict[str, Any]:
        schedule = workflow.schedule
        return {
            "id": workflow.id,
            "name": workflow.name,
            "kind": workflow.kind.value,
            "description": workflow.description,
            "is_default": 1 if workflow.is_default else 0,
            "is_active": 1 if workflow.is_active else 0,
            "steps_json": json.dumps([s.to_dict() for s in workflow.steps]),
            "schedule_type": schedule.type.value,
            "start_time": schedule.start_time,
            "end_time": schedule.end_time,
            "days_of_week_json": json.dumps(schedule.days_of_week) if schedule.days_of_week else None,
            "start_date": schedule.start_date,
            "end_date": schedule.end_date,
            "update_interval_minutes": schedule.update_interval_minutes,
            "created_by": workflow.created_by,
            "created_at": to_iso8601(workflow.created_at),
            "updated_at": to_iso8601(workflow.updated_at),
        }

    def _row_to_workflow(self, row: dict[str, Any]) -> Workflow:
        days = row.get("days_of_week_json")
        schedule = WorkflowSchedule(
            type=ScheduleType(row["schedule_type"]),
            start_time=row.get("start_time"),
            end_time=row.get("end_time"),
            days_of_week=json.loads(days) if days else None,
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            update_interval_minutes=row["update_interval_minutes"],
        )
        return Workflow(
            id=row["id"],
            name=row["name"],
            kind=WorkflowKind(row["kind"]),
            description=row.get("description"),
            is_default=bool(row["is_default"]),
            is_active=bool(row["is_active"]),
            steps=[WorkflowStep.from_dict(s) for s in json.loads(row["steps_json"] or "[]")],
            schedule=schedule,
            created_by=row.get("created_by"),
            created_at=from_iso8601(row.get("created_at")),
            updated_at=from_iso8601(row.get("updated_at")),
        )
