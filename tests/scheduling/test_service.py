"""Tests for SchedulerService - the board orchestrator."""

import asyncio
from datetime import timedelta

import pytest

from conftest import FIXED_NOW, civil, matrix_of
from flapboard.core.errors import (
    BoardBusyError,
    BoardNotFoundError,
    ConfigError,
    EmptyMatrixError,
    ErrorCategory,
    NotFoundError,
    NotScheduledError,
    RenderError,
    TransportError,
    ValidationError,
    WorkflowNotAssignedError,
    WorkflowNotFoundError,
)
from flapboard.core.models import ScheduleType, WorkflowSchedule
from flapboard.core.protocols import PushOutcome
from flapboard.scheduling.pins import PinRequest, PinStepConfig
from flapboard.scheduling.results import RunStatus
from flapboard.scheduling.service import NO_ENABLED_STEPS, WAITING_FOR_INTERVAL

EVENING = WorkflowSchedule(type=ScheduleType.DAILY_WINDOW, start_time="18:00", end_time="20:00")


def pin_request(code: int, end_time: str | None = None, start_time: str | None = None) -> PinRequest:
    return PinRequest(
        steps=[PinStepConfig(screen_type="MESSAGE", screen_config={"code": code})],
        start_date="2026-01-12",
        end_date="2026-01-12",
        start_time=start_time,
        end_time=end_time,
    )


@pytest.fixture
def board(make_workflow, make_board):
    return make_board("Lobby", workflow=make_workflow())


# =============================================================================
# Single board
# =============================================================================


class TestProcessBoardSuccess:
    @pytest.mark.asyncio
    async def test_success_persists_state(self, service, board, states, transport, renderer):
        result = await service.process_board(board)

        assert result.status == RunStatus.SUCCESS
        assert result.step_index == 0
        assert result.screen_type == "MESSAGE"
        assert civil(result.next_trigger) == "2026-01-12 09:30"
        assert renderer.calls == [("MESSAGE", {"code": 1})]
        assert transport.pushes == [("key", matrix_of(1))]

        state = states.get(board.id)
        assert state.current_workflow_id == board.default_workflow_id
        assert state.current_step_index == 1
        assert state.cycle_count == 1
        assert state.last_update_success is True
        assert state.last_error is None
        assert state.last_matrix == matrix_of(1)
        assert state.last_update_at == FIXED_NOW
        assert state.next_scheduled_trigger == result.next_trigger
        assert state.workflow_running is False

    @pytest.mark.asyncio
    async def test_rotation_wraps(self, service, board, transport):
        for _ in range(4):
            await service.process_board(board, force=True)
        assert [matrix[0][0] for _, matrix in transport.pushes] == [1, 2, 3, 1]

    @pytest.mark.asyncio
    async def test_fallback_credential(self, service, make_workflow, make_board, transport):
        board = make_board(workflow=make_workflow(), write_key=None)
        service.fallback_credential = "shared-key"

        await service.process_board(board)
        assert transport.pushes[0][0] == "shared-key"


class TestGating:
    @pytest.mark.asyncio
    async def test_waits_for_next_interval(self, service, board, transport):
        await service.process_board(board)
        result = await service.process_board(board)

        assert result.status == RunStatus.SKIPPED
        assert result.reason == WAITING_FOR_INTERVAL
        assert civil(result.next_trigger) == "2026-01-12 09:30"
        assert len(transport.pushes) == 1

    @pytest.mark.asyncio
    async def test_runs_once_due(self, service, board, clock, transport):
        await service.process_board(board)
        clock.advance(minutes=25)

        result = await service.process_board(board)
        assert result.status == RunStatus.SUCCESS
        assert result.step_index == 1
        assert civil(result.next_trigger) == "2026-01-12 10:00"

    @pytest.mark.asyncio
    async def test_manual_trigger_bypasses_gate(self, service, board, transport):
        await service.process_board(board)
        result = await service.trigger_board(board.id)

        assert result.status == RunStatus.SUCCESS
        assert result.step_index == 1
        assert len(transport.pushes) == 2

    @pytest.mark.asyncio
    async def test_workflow_switch_runs_immediately_from_step_zero(self, service, board, pins, states, transport):
        await service.process_board(board)
        await service.process_board(board, force=True)
        assert states.get(board.id).current_step_index == 2

        pin = pins.create_pin(board.id, pin_request(code=9))
        result = await service.process_board(board)

        assert result.status == RunStatus.SUCCESS
        assert result.workflow_id == pin.id
        assert result.step_index == 0
        assert transport.pushes[-1][1] == matrix_of(9)
        assert states.get(board.id).current_workflow_id == pin.id

    @pytest.mark.asyncio
    async def test_no_enabled_steps(self, service, make_workflow, make_board, transport):
        board = make_board(workflow=make_workflow(steps=2, disabled=(0, 1)))
        result = await service.process_board(board)

        assert result.status == RunStatus.SKIPPED
        assert result.reason == NO_ENABLED_STEPS
        assert transport.pushes == []


class TestProcessBoardFailures:
    @pytest.mark.asyncio
    async def test_no_workflow_assigned(self, service, make_board, states):
        board = make_board(workflow=None)
        with pytest.raises(WorkflowNotAssignedError):
            await service.process_board(board)

        state = states.get(board.id)
        assert state.last_update_success is False
        assert state.last_error == "No workflow assigned to this board"

    @pytest.mark.asyncio
    async def test_not_scheduled(self, service, make_workflow, make_board, states, transport):
        board = make_board(workflow=make_workflow(schedule=EVENING))
        with pytest.raises(NotScheduledError):
            await service.process_board(board)

        state = states.get(board.id)
        assert state.last_update_success is False
        assert state.last_error == "Workflow is not scheduled to run at this time"
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_render_failure_keeps_cursor(self, service, board, states, renderer, transport, lock_manager):
        renderer.error = RuntimeError("font missing")

        with pytest.raises(RenderError) as exc_info:
            await service.process_board(board)

        assert exc_info.value.context.screen_type == "MESSAGE"
        state = states.get(board.id)
        assert state.last_update_success is False
        assert "font missing" in state.last_error
        assert state.current_step_index == 0
        assert state.cycle_count == 0
        assert civil(state.next_scheduled_trigger) == "2026-01-12 09:30"
        assert lock_manager.is_locked(board.id) is False
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_empty_matrix(self, service, board, renderer):
        renderer.result = []
        with pytest.raises(EmptyMatrixError):
            await service.process_board(board)

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_cursor(self, service, board, states, transport, lock_manager):
        transport.error = TransportError("Vestaboard API error: 503")

        with pytest.raises(TransportError):
            await service.process_board(board)

        state = states.get(board.id)
        assert state.current_step_index == 0
        assert state.last_error == "Vestaboard API error: 503"
        assert lock_manager.is_locked(board.id) is False

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_is_wrapped(self, service, board, transport):
        transport.error = ConnectionError("refused")
        with pytest.raises(TransportError) as exc_info:
            await service.process_board(board)
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_rejected_push(self, service, board, transport, states):
        transport.outcome = PushOutcome(success=False, status=400)
        with pytest.raises(TransportError) as exc_info:
            await service.process_board(board)

        assert exc_info.value.context.http_status == 400
        assert states.get(board.id).last_update_success is False

    @pytest.mark.asyncio
    async def test_missing_credential(self, service, make_workflow, make_board, states, transport):
        board = make_board(workflow=make_workflow(), write_key=None)
        with pytest.raises(ConfigError):
            await service.process_board(board)

        assert states.get(board.id).last_error == "No device credential configured for this board"
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_busy_board_persists_nothing(self, service, board, states, lock_manager, transport):
        states.get_or_create(board.id)
        lock_manager.acquire(board.id, FIXED_NOW)

        with pytest.raises(BoardBusyError):
            await service.process_board(board)

        state = states.get(board.id)
        assert state.last_update_at is None
        assert state.last_error is None
        assert state.workflow_running is True
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_lock_released_when_next_trigger_fails(self, service, board, states, lock_manager, monkeypatch):
        def broken(workflow, now=None):
            raise ValidationError("Interval must be between 1 and 1440 minutes, got 0")

        monkeypatch.setattr(service.resolver, "next_trigger_for", broken)
        with pytest.raises(ValidationError):
            await service.process_board(board)

        assert lock_manager.is_locked(board.id) is False
        state = states.get(board.id)
        assert state.last_update_success is False
        assert state.last_error.startswith("Interval must be between")

        monkeypatch.undo()
        result = await service.process_board(board, force=True)
        assert result.status == RunStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_failed_switch_restarts_new_workflow_at_step_zero(self, service, board, pins, states, transport):
        await service.process_board(board)
        assert states.get(board.id).current_step_index == 1

        pin = pins.create_pin(board.id, pin_request(code=9))
        transport.error = TransportError("Vestaboard API error: 503")
        with pytest.raises(TransportError):
            await service.process_board(board)

        state = states.get(board.id)
        assert state.current_workflow_id == pin.id
        assert state.current_step_index == 0

        transport.error = None
        result = await service.process_board(board, force=True)
        assert result.workflow_id == pin.id
        assert result.step_index == 0
        assert transport.pushes[-1][1] == matrix_of(9)

    @pytest.mark.asyncio
    async def test_concurrent_runs_push_once(self, service, board, transport):
        transport.delay = 0.05
        results = await asyncio.gather(
            service.trigger_board(board.id),
            service.trigger_board(board.id),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, BoardBusyError)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception) and r.status == RunStatus.SUCCESS) == 1
        assert len(transport.pushes) == 1

    @pytest.mark.asyncio
    async def test_trigger_unknown_or_inactive_board(self, service, make_workflow, make_board):
        with pytest.raises(BoardNotFoundError):
            await service.trigger_board("brd_missing")

        inactive = make_board(workflow=make_workflow(), is_active=False)
        with pytest.raises(BoardNotFoundError):
            await service.trigger_board(inactive.id)


# =============================================================================
# Batch
# =============================================================================


class TestRunAllBoards:
    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, service, make_workflow, make_board, transport):
        workflow = make_workflow()
        good = make_board("Good", workflow=workflow)
        broken = make_board("Broken", workflow=workflow, write_key="broken-key")
        unassigned = make_board("Unassigned")
        transport.failing.add("broken-key")

        batch = await service.run_all_boards()

        assert batch.boards_processed == 3
        assert batch.success_count == 1
        assert batch.failed_count == 2
        assert batch.for_board(good.id).status == RunStatus.SUCCESS
        assert batch.for_board(broken.id).error_category == ErrorCategory.TRANSPORT
        assert batch.for_board(unassigned.id).error_category == ErrorCategory.CONFIG
        assert batch.finished_at is not None

    @pytest.mark.asyncio
    async def test_not_scheduled_is_skipped(self, service, make_workflow, make_board):
        board = make_board(workflow=make_workflow(schedule=EVENING))
        batch = await service.run_all_boards()

        result = batch.for_board(board.id)
        assert result.status == RunStatus.SKIPPED
        assert result.reason == "Workflow is not scheduled to run at this time"

    @pytest.mark.asyncio
    async def test_inactive_boards_are_ignored(self, service, make_workflow, make_board):
        make_board(workflow=make_workflow(), is_active=False)
        batch = await service.run_all_boards()
        assert batch.boards_processed == 0

    @pytest.mark.asyncio
    async def test_expired_pin_is_swept_first(self, service, board, pins, workflows, transport):
        pin = pins.create_pin(board.id, pin_request(code=9, start_time="08:00", end_time="09:00"))

        batch = await service.run_all_boards()

        assert batch.pins_expired == 1
        assert workflows.get(pin.id).is_active is False
        assert batch.for_board(board.id).workflow_id == board.default_workflow_id
        assert transport.pushes[0][1] == matrix_of(1)

    @pytest.mark.asyncio
    async def test_stale_locks_released_each_tick(self, service, board, states, lock_manager):
        states.get_or_create(board.id)
        lock_manager.acquire(board.id, FIXED_NOW - timedelta(minutes=20))
        service.stale_lock_seconds = 600

        batch = await service.run_all_boards()
        assert batch.for_board(board.id).status == RunStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, service, board, make_board):
        make_board("Unassigned")
        await service.run_all_boards()
        await service.run_all_boards()

        stats = service.get_stats()
        assert stats.tick_count == 2
        assert stats.boards_processed == 4
        assert stats.boards_succeeded == 1
        assert stats.boards_skipped == 1
        assert stats.boards_failed == 2
        assert stats.last_tick == FIXED_NOW

        service.reset_stats()
        assert service.get_stats().tick_count == 0


# =============================================================================
# Synchronized multi-board
# =============================================================================


class TestSynchronizedTrigger:
    @pytest.fixture
    def pair(self, make_workflow, make_board):
        workflow = make_workflow()
        primary = make_board("Primary", workflow=workflow, write_key="k1", created_at=FIXED_NOW - timedelta(days=2))
        secondary = make_board("Secondary", workflow=workflow, write_key="k2", created_at=FIXED_NOW - timedelta(days=1))
        return workflow, primary, secondary

    @pytest.mark.asyncio
    async def test_primary_decides_step_and_render_happens_once(self, service, pair, states, renderer, transport):
        workflow, primary, secondary = pair
        await service.process_board(primary, force=True)
        await service.process_board(primary, force=True)
        renderer.calls.clear()
        transport.pushes.clear()

        results = await service.trigger_boards_for_workflow([primary, secondary])

        assert [r.status for r in results] == [RunStatus.SUCCESS, RunStatus.SUCCESS]
        assert [r.step_index for r in results] == [2, 2]
        assert len(renderer.calls) == 1
        assert sorted(transport.pushes) == [("k1", matrix_of(3)), ("k2", matrix_of(3))]

        first, second = states.get(primary.id), states.get(secondary.id)
        assert first.current_step_index == second.current_step_index == 0
        assert first.next_scheduled_trigger == second.next_scheduled_trigger
        assert second.current_workflow_id == workflow.id

    @pytest.mark.asyncio
    async def test_one_board_failing_does_not_block_others(self, service, pair, states, transport):
        workflow, primary, secondary = pair
        transport.failing.add("k2")

        results = await service.trigger_boards_for_workflow([primary, secondary])

        assert results[0].status == RunStatus.SUCCESS
        assert results[1].status == RunStatus.FAILED
        assert results[1].workflow_id == workflow.id
        assert states.get(primary.id).last_update_success is True
        assert states.get(secondary.id).last_update_success is False
        assert states.get(secondary.id).current_step_index == 0

    @pytest.mark.asyncio
    async def test_busy_board_is_skipped(self, service, pair, states, lock_manager):
        _, primary, secondary = pair
        states.get_or_create(secondary.id)
        lock_manager.acquire(secondary.id, FIXED_NOW)

        results = await service.trigger_boards_for_workflow([primary, secondary])
        assert [r.status for r in results] == [RunStatus.SUCCESS, RunStatus.SKIPPED]

    @pytest.mark.asyncio
    async def test_all_boards_busy_skips_render(self, service, pair, states, lock_manager, renderer, transport):
        _, primary, secondary = pair
        for board in (primary, secondary):
            states.get_or_create(board.id)
            lock_manager.acquire(board.id, FIXED_NOW)

        results = await service.trigger_boards_for_workflow([primary, secondary])

        assert [r.status for r in results] == [RunStatus.SKIPPED, RunStatus.SKIPPED]
        assert [r.error_category for r in results] == [ErrorCategory.SCHEDULE, ErrorCategory.SCHEDULE]
        assert renderer.calls == []
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_render_failure_recorded_for_all(self, service, pair, states, renderer, transport):
        _, primary, secondary = pair
        renderer.error = RenderError("layout overflow")

        results = await service.trigger_boards_for_workflow([primary, secondary])

        assert all(r.status == RunStatus.FAILED for r in results)
        assert states.get(primary.id).last_error == "layout overflow"
        assert states.get(secondary.id).last_error == "layout overflow"
        assert transport.pushes == []

    @pytest.mark.asyncio
    async def test_not_scheduled_skips_all(self, service, make_workflow, make_board):
        workflow = make_workflow(schedule=EVENING)
        boards = [make_board("A", workflow=workflow), make_board("B", workflow=workflow)]

        results = await service.trigger_boards_for_workflow(boards)
        assert all(r.status == RunStatus.SKIPPED for r in results)

    @pytest.mark.asyncio
    async def test_requires_boards(self, service):
        with pytest.raises(ValidationError):
            await service.trigger_boards_for_workflow([])

    @pytest.mark.asyncio
    async def test_trigger_workflow(self, service, pair, transport):
        workflow, _, _ = pair
        results = await service.trigger_workflow(workflow.id)
        assert len(results) == 2
        assert len(transport.pushes) == 2

    @pytest.mark.asyncio
    async def test_trigger_workflow_errors(self, service, make_workflow):
        with pytest.raises(WorkflowNotFoundError):
            await service.trigger_workflow("wf_missing")

        lonely = make_workflow("Lonely")
        with pytest.raises(NotFoundError, match="No active boards found for this workflow"):
            await service.trigger_workflow(lonely.id)


# =============================================================================
# Operator primitives and lifecycle
# =============================================================================


class TestResync:
    @pytest.mark.asyncio
    async def test_resync_resets_cursor_and_trigger(self, service, make_workflow, make_board, states):
        workflow = make_workflow()
        active = make_board("Active", workflow=workflow)
        inactive = make_board("Inactive", workflow=workflow, is_active=False)
        await service.process_board(active, force=True)

        assert service.resync_workflow(workflow.id) == 2
        for board_id in (active.id, inactive.id):
            state = states.get(board_id)
            assert state.current_step_index == 0
            assert state.next_scheduled_trigger == FIXED_NOW

        result = await service.process_board(active)
        assert result.status == RunStatus.SUCCESS
        assert result.step_index == 0

    def test_resync_unknown_workflow(self, service):
        with pytest.raises(WorkflowNotFoundError):
            service.resync_workflow("wf_missing")


class TestLifecycle:
    def test_start_registers_tick_and_clears_locks(self, service, board, states, lock_manager, backend):
        states.get_or_create(board.id)
        lock_manager.acquire(board.id, FIXED_NOW)

        service.start()

        assert service.is_running is True
        assert backend.started is True
        assert backend.interval == 1.0
        assert lock_manager.is_locked(board.id) is False

    def test_start_twice_is_noop(self, service, backend):
        service.start()
        service.start()
        assert backend.started is True

    def test_stop(self, service, backend):
        service.start()
        service.stop()
        assert service.is_running is False
        assert backend.started is False
        service.stop()

    def test_start_requires_backend(self, service):
        service.backend = None
        with pytest.raises(ConfigError):
            service.start()

    @pytest.mark.asyncio
    async def test_tick_runs_a_pass(self, service, board, backend, transport):
        service.start()
        await backend.callback()
        assert service.get_stats().tick_count == 1
        assert len(transport.pushes) == 1

    @pytest.mark.asyncio
    async def test_tick_records_errors_and_continues(self, service, backend, boards, monkeypatch):
        def explode():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(boards, "list_active", explode)
        service.start()
        await backend.callback()
        assert service.get_stats().last_error == "database is locked"

    def test_health(self, service, board, backend):
        assert service.health().healthy is False

        service.start()
        health = service.health()
        assert health.healthy is True
        assert health.active_boards == 1
        assert health.locked_boards == 0
        assert health.to_dict()["backend"]["backend"] == "fake"


class TestCreateScheduler:
    def test_wires_settings(self, conn, renderer, transport, clock):
        from flapboard.core.settings import FlapboardSettings
        from flapboard.scheduling import ThreadSchedulerBackend, create_scheduler

        settings = FlapboardSettings(
            timezone="Europe/Berlin",
            tick_interval_seconds=5,
            vestaboard_api_key="shared",
            stale_lock_seconds=120,
        )
        service = create_scheduler(conn, renderer, transport, settings=settings, clock=clock)

        assert isinstance(service.backend, ThreadSchedulerBackend)
        assert service.interval == 5
        assert service.fallback_credential == "shared"
        assert service.stale_lock_seconds == 120
        assert service.calculator.timezone == "Europe/Berlin"
        assert service.calculator.now() == FIXED_NOW
        assert service.pins.resolver is service.resolver
