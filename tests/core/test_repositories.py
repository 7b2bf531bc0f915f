"""Tests for the board, workflow and scheduling-state repositories."""

from datetime import timedelta

import pytest

from conftest import FIXED_NOW, matrix_of
from flapboard.core.dialect import Dialect
from flapboard.core.errors import ValidationError
from flapboard.core.models import ScheduleType, WorkflowKind, WorkflowSchedule
from flapboard.core.schema import CORE_TABLES, create_core_tables


class TestSchema:
    def test_tables_created(self, conn):
        conn.execute("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
        names = {row[0] for row in conn.fetchall()}
        assert set(CORE_TABLES) <= names

    def test_idempotent(self, conn):
        create_core_tables(conn)
        create_core_tables(conn)


class TestWorkflowRepository:
    def test_round_trip(self, workflows, make_workflow):
        schedule = WorkflowSchedule(
            type=ScheduleType.DAILY_WINDOW,
            start_time="09:00",
            end_time="17:00",
            days_of_week=[1, 2, 3, 4, 5],
            update_interval_minutes=15,
        )
        created = make_workflow("Weekdays", steps=2, schedule=schedule, disabled=(1,))

        loaded = workflows.get(created.id)
        assert loaded.id.startswith("wf_")
        assert loaded.name == "Weekdays"
        assert loaded.schedule == schedule
        assert [s.is_enabled for s in loaded.steps] == [True, False]
        assert loaded.steps[0].screen_config == {"code": 1}
        assert loaded.created_at is not None

    @pytest.mark.parametrize("interval", [0, -5, 1441])
    def test_schedule_rejects_out_of_range_interval(self, interval):
        with pytest.raises(ValidationError) as exc_info:
            WorkflowSchedule(update_interval_minutes=interval)
        assert exc_info.value.field == "update_interval_minutes"

    def test_missing(self, workflows):
        assert workflows.get("wf_missing") is None

    def test_list_by_kind(self, workflows, make_workflow):
        normal = make_workflow("Normal")
        pin = make_workflow("Pin", kind=WorkflowKind.PINNED)
        make_workflow("Off", is_active=False)

        assert [w.id for w in workflows.list_workflows(kind=WorkflowKind.PINNED)] == [pin.id]
        active = workflows.list_workflows(active_only=True)
        assert {w.id for w in active} == {normal.id, pin.id}

    def test_active_pins_newest_first(self, workflows, make_workflow):
        old = make_workflow("Old", kind=WorkflowKind.PINNED, created_at=FIXED_NOW - timedelta(hours=2))
        new = make_workflow("New", kind=WorkflowKind.PINNED, created_at=FIXED_NOW - timedelta(hours=1))
        make_workflow("Gone", kind=WorkflowKind.PINNED, is_active=False)

        assert [w.id for w in workflows.list_active_pins()] == [new.id, old.id]

    def test_deactivate_many(self, workflows, make_workflow):
        first, second = make_workflow("A"), make_workflow("B")
        assert workflows.deactivate_many([first.id, second.id]) == 2
        assert workflows.deactivate_many([]) == 0
        assert workflows.get(first.id).is_active is False

    def test_delete_cleans_up_boards_and_states(self, workflows, boards, states, make_workflow, make_board):
        workflow = make_workflow()
        board = make_board(workflow=workflow)
        states.get_or_create(board.id)
        states.record_success(
            board.id, workflow_id=workflow.id, step_index=1, matrix=matrix_of(1), at=FIXED_NOW, next_trigger=None
        )

        assert workflows.delete(workflow.id) is True
        assert workflows.get(workflow.id) is None
        assert boards.get(board.id).default_workflow_id is None
        assert states.get(board.id) is None
        assert workflows.delete(workflow.id) is False


class TestBoardRepository:
    def test_list_active_in_creation_order(self, boards, make_board):
        second = make_board("B", created_at=FIXED_NOW - timedelta(hours=1))
        first = make_board("A", created_at=FIXED_NOW - timedelta(hours=2))
        make_board("Off", is_active=False)

        assert [b.id for b in boards.list_active()] == [first.id, second.id]

    def test_list_by_workflow(self, boards, make_workflow, make_board):
        workflow = make_workflow()
        active = make_board("On", workflow=workflow)
        inactive = make_board("Off", workflow=workflow, is_active=False)
        make_board("Other")

        assert [b.id for b in boards.list_by_workflow(workflow.id)] == [active.id]
        assert {b.id for b in boards.list_by_workflow(workflow.id, active_only=False)} == {active.id, inactive.id}

    def test_assign_and_deactivate(self, boards, make_workflow, make_board):
        board = make_board()
        workflow = make_workflow()

        assert boards.assign_workflow(board.id, workflow.id) is True
        assert boards.get(board.id).default_workflow_id == workflow.id
        assert boards.set_active(board.id, False) is True
        assert boards.list_active() == []

    def test_delete_removes_state(self, boards, states, make_board):
        board = make_board()
        states.get_or_create(board.id)

        assert boards.delete(board.id) is True
        assert states.get(board.id) is None


class TestBoardStateRepository:
    def test_get_or_create_is_lazy_and_stable(self, states, make_board):
        board = make_board()
        assert states.get(board.id) is None

        created = states.get_or_create(board.id)
        assert created.current_step_index == 0
        assert created.cycle_count == 0
        assert created.workflow_running is False
        assert created.last_update_success is None
        assert created.is_due(FIXED_NOW) is True

        again = states.get_or_create(board.id)
        assert again.created_at == created.created_at

    def test_record_success(self, states, make_workflow, make_board):
        workflow = make_workflow()
        board = make_board(workflow=workflow)
        states.get_or_create(board.id)
        trigger = FIXED_NOW + timedelta(minutes=25)

        states.record_success(
            board.id, workflow_id=workflow.id, step_index=2, matrix=matrix_of(5), at=FIXED_NOW, next_trigger=trigger
        )
        states.record_success(
            board.id, workflow_id=workflow.id, step_index=0, matrix=matrix_of(6), at=FIXED_NOW, next_trigger=trigger
        )

        state = states.get(board.id)
        assert state.current_step_index == 0
        assert state.cycle_count == 2
        assert state.last_matrix == matrix_of(6)
        assert state.last_update_success is True
        assert state.next_scheduled_trigger == trigger
        assert state.is_due(FIXED_NOW) is False
        assert state.is_due(trigger) is True

    def test_record_failure_keeps_cursor(self, states, make_workflow, make_board):
        workflow = make_workflow()
        board = make_board(workflow=workflow)
        states.get_or_create(board.id)
        states.record_success(
            board.id, workflow_id=workflow.id, step_index=2, matrix=matrix_of(1), at=FIXED_NOW, next_trigger=None
        )

        states.record_failure(board.id, error="Vestaboard API timeout", at=FIXED_NOW)

        state = states.get(board.id)
        assert state.current_step_index == 2
        assert state.cycle_count == 1
        assert state.last_update_success is False
        assert state.last_error == "Vestaboard API timeout"
        assert state.last_matrix == matrix_of(1)

    def test_success_clears_error(self, states, make_workflow, make_board):
        workflow = make_workflow()
        board = make_board(workflow=workflow)
        states.get_or_create(board.id)
        states.record_failure(board.id, error="boom", at=FIXED_NOW, workflow_id=workflow.id)
        states.record_success(
            board.id, workflow_id=workflow.id, step_index=1, matrix=matrix_of(1), at=FIXED_NOW, next_trigger=None
        )
        assert states.get(board.id).last_error is None

    def test_resync(self, states, make_board):
        first, second = make_board("A"), make_board("B")
        states.get_or_create(first.id)

        assert states.resync([first.id, second.id], FIXED_NOW) == 2
        assert states.resync([], FIXED_NOW) == 0
        for board_id in (first.id, second.id):
            state = states.get(board_id)
            assert state.current_step_index == 0
            assert state.next_scheduled_trigger == FIXED_NOW

    def test_list_all(self, states, make_board):
        for name in ("A", "B"):
            states.get_or_create(make_board(name).id)
        assert len(states.list_all()) == 2


class TestSQLiteDialect:
    def test_fragments(self, workflows):
        dialect = workflows.dialect
        assert isinstance(dialect, Dialect)
        assert dialect.placeholders(3) == "?, ?, ?"
        assert dialect.insert_or_ignore("board_states", ["board_id"]) == (
            "INSERT OR IGNORE INTO board_states (board_id) VALUES (?)"
        )
        assert (dialect.boolean_true(), dialect.boolean_false()) == ("1", "0")
