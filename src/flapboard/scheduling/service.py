"""Scheduler service - board orchestrator.

Manifesto:
    The SchedulerService is the tick entry point.  It combines the
    resolver (which workflow, which step), the lock manager (no double
    runs), the renderer and transport (device I/O) and the state
    repository (durable bookkeeping) into the per-board state machine.
    The service never loops on its own; a tick backend or an operator
    calls it.

Tags:
    scheduling, orchestrator, beat-as-poller, service, boards

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE                                                            │
│                                                                               │
│  run_all_boards()                                                             │
│    1. pins.sweep_expired()                                                    │
│    2. for each active board: process_board(board)   (failures isolated)       │
│                                                                               │
│  process_board(board, force)                                                  │
│    1. state = get_or_create(board)                                            │
│    2. no default workflow      ──► WorkflowNotAssignedError (recorded)        │
│    3. resolver → None          ──► NotScheduledError        (recorded)        │
│    4. tick mode, not yet due   ──► skipped "waiting for next interval"        │
│    5. no enabled step          ──► skipped                                    │
│    6. lock held                ──► BoardBusyError (nothing persisted)         │
│    7. render ─► push                                                          │
│         ok   ─► cursor + 1, matrix, success, cycle + 1, next trigger          │
│         fail ─► failure flag, error, next trigger; cursor unchanged; raise    │
│    8. finally: release lock                                                   │
│                                                                               │
│  trigger_boards_for_workflow(boards)                                          │
│    resolve + select step on the primary board, render ONCE,                   │
│    push to all boards concurrently, same cursor + next trigger for all        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flapboard.core.errors import (
    BoardBusyError,
    BoardNotFoundError,
    ConfigError,
    EmptyMatrixError,
    ErrorContext,
    FlapboardError,
    NotFoundError,
    NotScheduledError,
    RenderError,
    TransportError,
    ValidationError,
    WorkflowNotAssignedError,
    WorkflowNotFoundError,
)
from flapboard.core.logging import LogContext, get_logger
from flapboard.core.models.board import Board
from flapboard.core.models.workflow import Workflow
from flapboard.core.protocols import Matrix, Renderer, Transport
from flapboard.core.repositories.board_states import BoardStateRepository
from flapboard.core.repositories.boards import BoardRepository
from flapboard.core.repositories.workflows import WorkflowRepository
from flapboard.scheduling.lock_manager import BoardLockManager
from flapboard.scheduling.pins import PinManager
from flapboard.scheduling.protocol import SchedulerBackend
from flapboard.scheduling.resolver import StepSelection, WorkflowResolver
from flapboard.scheduling.results import BatchResult, BoardRunResult, RunStatus

logger = get_logger(__name__)

WAITING_FOR_INTERVAL = "Waiting for next interval"
NO_ENABLED_STEPS = "Workflow has no enabled steps"


@dataclass
class SchedulerStats:
    """Statistics for the scheduler service."""

    tick_count: int = 0
    boards_processed: int = 0
    boards_succeeded: int = 0
    boards_skipped: int = 0
    boards_failed: int = 0
    pins_expired: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "boards_processed": self.boards_processed,
            "boards_succeeded": self.boards_succeeded,
            "boards_skipped": self.boards_skipped,
            "boards_failed": self.boards_failed,
            "pins_expired": self.pins_expired,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    backend: dict[str, Any]
    active_boards: int = 0
    locked_boards: int = 0
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "active_boards": self.active_boards,
            "locked_boards": self.locked_boards,
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Board orchestrator.

    Example:
        >>> service = create_scheduler(conn, renderer=TextRenderer(), transport=client)
        >>> batch = await service.run_all_boards()
        >>> batch.success_count, batch.failed_count
        (3, 0)
    """

    def __init__(
        self,
        boards: BoardRepository,
        workflows: WorkflowRepository,
        states: BoardStateRepository,
        resolver: WorkflowResolver,
        pins: PinManager,
        lock_manager: BoardLockManager,
        renderer: Renderer,
        transport: Transport,
        *,
        backend: SchedulerBackend | None = None,
        interval_seconds: float = 60.0,
        fallback_credential: str | None = None,
        stale_lock_seconds: int | None = None,
    ) -> None:
        """Initialize scheduler service.

        Args:
            boards: Board store (read-only here)
            workflows: Workflow store
            states: Scheduling-state store
            resolver: Workflow and step selection
            pins: Pin overlay (swept every tick)
            lock_manager: Per-board re-entrancy lock
            renderer: Produces the display matrix for a step
            transport: Pushes the matrix to the device
            backend: Tick backend used by ``start()`` (optional)
            interval_seconds: Tick interval for ``start()``
            fallback_credential: Used for boards without their own write key
            stale_lock_seconds: When set, each tick releases older locks
        """
        self.boards = boards
        self.workflows = workflows
        self.states = states
        self.resolver = resolver
        self.pins = pins
        self.lock_manager = lock_manager
        self.renderer = renderer
        self.transport = transport
        self.calculator = resolver.calculator
        self.backend = backend
        self.interval = interval_seconds
        self.fallback_credential = fallback_credential
        self.stale_lock_seconds = stale_lock_seconds

        self._stats = SchedulerStats()
        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        """Clear stale locks from a previous process and start ticking."""
        if self._running:
            logger.warning("scheduler_already_running")
            return
        if self.backend is None:
            raise ConfigError("SchedulerService.start() requires a tick backend")

        cleared = self.clear_all_locks()
        logger.info(
            "scheduler_starting",
            backend=self.backend.name,
            interval_seconds=self.interval,
            locks_cleared=cleared,
        )
        self.backend.start(self._tick, self.interval)
        self._running = True

    def stop(self) -> None:
        if not self._running or self.backend is None:
            return
        logger.info("scheduler_stopping")
        self.backend.stop()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def _tick(self) -> None:
        """Backend callback; a failing pass is recorded and the loop continues."""
        try:
            await self.run_all_boards()
        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception("tick_failed", error=str(e))

    # === Batch ===

    async def run_all_boards(self) -> BatchResult:
        """One scheduling pass over every active board.

        Expired pins are swept first so that expiry unblocks normal
        workflows in the same pass.  A board's failure never aborts the
        batch; it becomes that board's result.
        """
        started = self.calculator.now()
        self._stats.tick_count += 1
        self._stats.last_tick = started

        batch = BatchResult(started_at=started)
        batch.pins_expired = self.pins.sweep_expired(started)
        if self.stale_lock_seconds:
            self.lock_manager.release_stale_locks(self.stale_lock_seconds, started)

        boards = self.boards.list_active()
        logger.info("batch_started", boards=len(boards), pins_expired=batch.pins_expired)

        for board in boards:
            try:
                result = await self.process_board(board)
            except Exception as exc:
                result = BoardRunResult.from_error(board.id, exc)
            batch.results.append(result)

        batch.finished_at = self.calculator.now()
        self._record_batch(batch)
        logger.info(
            "batch_finished",
            boards_processed=batch.boards_processed,
            success=batch.success_count,
            skipped=batch.skipped_count,
            failed=batch.failed_count,
        )
        return batch

    # === Single board ===

    async def process_board(self, board: Board, *, force: bool = False) -> BoardRunResult:
        """Run the single-board state machine.

        Args:
            board: Board to update.
            force: Manual trigger; bypasses the interval gate.

        Returns:
            A success or skipped result.

        Raises:
            WorkflowNotAssignedError: Board has no default workflow.
            NotScheduledError: No workflow may run on the board now.
            BoardBusyError: Another run holds the board lock.
            FlapboardError: Render or push failed (state already recorded).
        """
        now = self.calculator.now()
        state = self.states.get_or_create(board.id)

        with LogContext(board_id=board.id):
            if not board.default_workflow_id:
                error = WorkflowNotAssignedError(context=ErrorContext(board_id=board.id))
                self._record_failure(board, error, now)
                raise error

            workflow = self.resolver.active_workflow(board, now)
            if workflow is None:
                error = NotScheduledError(
                    context=ErrorContext(board_id=board.id, workflow_id=board.default_workflow_id)
                )
                self._record_failure(board, error, now)
                raise error

            # A workflow switch (pin started or ended) is due immediately
            switched = state.current_workflow_id is not None and state.current_workflow_id != workflow.id
            if not force and not switched and not state.is_due(now):
                logger.debug("board_waiting", next_trigger=str(state.next_scheduled_trigger))
                return BoardRunResult(
                    board_id=board.id,
                    status=RunStatus.SKIPPED,
                    workflow_id=workflow.id,
                    reason=WAITING_FOR_INTERVAL,
                    next_trigger=state.next_scheduled_trigger,
                )

            cursor = 0 if switched else state.current_step_index
            selection = self.resolver.next_step(workflow, cursor)
            if selection is None:
                logger.info("board_skipped_no_steps", workflow_id=workflow.id)
                return BoardRunResult(
                    board_id=board.id,
                    status=RunStatus.SKIPPED,
                    workflow_id=workflow.id,
                    reason=NO_ENABLED_STEPS,
                )

            if not self.lock_manager.acquire(board.id, now):
                raise BoardBusyError(context=ErrorContext(board_id=board.id, workflow_id=workflow.id))

            next_trigger: datetime | None = None
            try:
                next_trigger = self.resolver.next_trigger_for(workflow, now)
                matrix = await self._render(workflow, selection)
                await self._push(board, matrix)
                self.states.record_success(
                    board.id,
                    workflow_id=workflow.id,
                    step_index=selection.next_index,
                    matrix=matrix,
                    at=now,
                    next_trigger=next_trigger,
                )
            except Exception as exc:
                self._record_failure(
                    board, exc, now, workflow=workflow, next_trigger=next_trigger, reset_cursor=switched
                )
                raise
            finally:
                self.lock_manager.release(board.id)

            logger.info(
                "board_updated",
                workflow_id=workflow.id,
                step_index=selection.index,
                step_count=selection.count,
                screen_type=selection.step.screen_type,
                next_trigger=next_trigger.isoformat(),
            )
            return BoardRunResult(
                board_id=board.id,
                status=RunStatus.SUCCESS,
                workflow_id=workflow.id,
                step_index=selection.index,
                screen_type=selection.step.screen_type,
                next_trigger=next_trigger,
            )

    async def trigger_board(self, board_id: str) -> BoardRunResult:
        """Manual run of one board outside the tick cadence.

        Raises:
            BoardNotFoundError: Unknown or inactive board.
        """
        board = self.boards.get(board_id)
        if board is None or not board.is_active:
            raise BoardNotFoundError(board_id)
        logger.info("manual_trigger", board_id=board_id)
        return await self.process_board(board, force=True)

    # === Synchronized multi-board ===

    async def trigger_boards_for_workflow(self, boards: list[Board]) -> list[BoardRunResult]:
        """Update a set of boards so they show the same content at once.

        The first board is the primary: it decides the workflow and the
        step.  The step is rendered once and the same matrix is pushed to
        every board concurrently; each board keeps its own lock and state,
        and one board's failure does not block the others.  Boards already
        locked by another run are reported busy before anything is rendered.

        Raises:
            ValidationError: If ``boards`` is empty.
        """
        if not boards:
            raise ValidationError("At least one board is required", field="boards")

        now = self.calculator.now()
        primary = boards[0]
        primary_state = self.states.get_or_create(primary.id)

        workflow = self.resolver.active_workflow(primary, now)
        if workflow is None:
            error = NotScheduledError(context=ErrorContext(board_id=primary.id))
            return [BoardRunResult.from_error(board.id, error) for board in boards]

        cursor = primary_state.current_step_index if primary_state.current_workflow_id == workflow.id else 0
        selection = self.resolver.next_step(workflow, cursor)
        if selection is None:
            return [
                BoardRunResult(
                    board_id=board.id,
                    status=RunStatus.SKIPPED,
                    workflow_id=workflow.id,
                    reason=NO_ENABLED_STEPS,
                )
                for board in boards
            ]

        next_trigger = self.resolver.next_trigger_for(workflow, now)
        busy = {board.id for board in boards if self.lock_manager.is_locked(board.id)}
        ready = [board for board in boards if board.id not in busy]
        logger.info(
            "synchronized_trigger",
            workflow_id=workflow.id,
            boards=[b.id for b in ready],
            busy=sorted(busy),
            step_index=selection.index,
        )

        results: dict[str, BoardRunResult] = {
            board_id: BoardRunResult.from_error(
                board_id, BoardBusyError(context=ErrorContext(board_id=board_id, workflow_id=workflow.id))
            )
            for board_id in busy
        }
        if ready:
            try:
                matrix = await self._render(workflow, selection)
            except FlapboardError as exc:
                for board in ready:
                    state = self.states.get_or_create(board.id)
                    self._record_failure(
                        board,
                        exc,
                        now,
                        workflow=workflow,
                        next_trigger=next_trigger,
                        reset_cursor=state.current_workflow_id not in (None, workflow.id),
                    )
                    results[board.id] = BoardRunResult.from_error(board.id, exc)
            else:
                delivered = await asyncio.gather(
                    *(self._deliver(board, workflow, selection, matrix, now, next_trigger) for board in ready)
                )
                results.update((result.board_id, result) for result in delivered)

        return [results[board.id] for board in boards]

    async def trigger_workflow(self, workflow_id: str) -> list[BoardRunResult]:
        """Synchronized trigger of every active board assigned to a workflow."""
        if self.workflows.get(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        boards = self.boards.list_by_workflow(workflow_id)
        if not boards:
            raise NotFoundError(
                "No active boards found for this workflow",
                context=ErrorContext(workflow_id=workflow_id),
            )
        return await self.trigger_boards_for_workflow(boards)

    async def _deliver(
        self,
        board: Board,
        workflow: Workflow,
        selection: StepSelection,
        matrix: Matrix,
        now: datetime,
        next_trigger: datetime,
    ) -> BoardRunResult:
        with LogContext(board_id=board.id, workflow_id=workflow.id):
            state = self.states.get_or_create(board.id)
            switched = state.current_workflow_id is not None and state.current_workflow_id != workflow.id
            if not self.lock_manager.acquire(board.id, now):
                return BoardRunResult.from_error(
                    board.id, BoardBusyError(context=ErrorContext(board_id=board.id, workflow_id=workflow.id))
                )
            try:
                await self._push(board, matrix)
                self.states.record_success(
                    board.id,
                    workflow_id=workflow.id,
                    step_index=selection.next_index,
                    matrix=matrix,
                    at=now,
                    next_trigger=next_trigger,
                )
            except Exception as exc:
                self._record_failure(
                    board, exc, now, workflow=workflow, next_trigger=next_trigger, reset_cursor=switched
                )
                result = BoardRunResult.from_error(board.id, exc)
                result.workflow_id = workflow.id
                return result
            finally:
                self.lock_manager.release(board.id)

            return BoardRunResult(
                board_id=board.id,
                status=RunStatus.SUCCESS,
                workflow_id=workflow.id,
                step_index=selection.index,
                screen_type=selection.step.screen_type,
                next_trigger=next_trigger,
            )

    # === Operator primitives ===

    def resync_workflow(self, workflow_id: str) -> int:
        """Put every board on a workflow back in lockstep.

        All assigned boards get the same immediate next trigger and a
        rotation cursor of zero; the next pass updates them together.

        Returns:
            Number of boards resynchronized.
        """
        if self.workflows.get(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        board_ids = [b.id for b in self.boards.list_by_workflow(workflow_id, active_only=False)]
        count = self.states.resync(board_ids, self.calculator.now())
        logger.info("workflow_resynced", workflow_id=workflow_id, boards=count)
        return count

    def clear_all_locks(self) -> int:
        """Force-clear every board lock. Idempotent."""
        return self.lock_manager.clear_all()

    # === Internals ===

    async def _render(self, workflow: Workflow, selection: StepSelection) -> Matrix:
        step = selection.step
        try:
            matrix = await self.renderer.render(step.screen_type, step.screen_config)
        except FlapboardError:
            raise
        except Exception as exc:
            raise RenderError(
                f"Render failed for {step.screen_type}: {exc}",
                cause=exc,
                context=ErrorContext(workflow_id=workflow.id, step_index=selection.index, screen_type=step.screen_type),
            ) from exc
        if not matrix:
            raise EmptyMatrixError(
                f"Renderer produced no content for {step.screen_type}",
                context=ErrorContext(workflow_id=workflow.id, step_index=selection.index, screen_type=step.screen_type),
            )
        return matrix

    async def _push(self, board: Board, matrix: Matrix) -> None:
        credential = board.write_key or self.fallback_credential
        if not credential:
            raise ConfigError(
                "No device credential configured for this board",
                context=ErrorContext(board_id=board.id),
            )
        try:
            outcome = await self.transport.push(credential, matrix)
        except FlapboardError:
            raise
        except Exception as exc:
            raise TransportError(f"Push failed: {exc}", cause=exc, context=ErrorContext(board_id=board.id)) from exc
        if not outcome.success:
            raise TransportError(
                f"Device rejected update (status {outcome.status})",
                context=ErrorContext(board_id=board.id, http_status=outcome.status),
            )

    def _record_failure(
        self,
        board: Board,
        error: Exception,
        now: datetime,
        *,
        workflow: Workflow | None = None,
        next_trigger: datetime | None = None,
        reset_cursor: bool = False,
    ) -> None:
        message = error.message if isinstance(error, FlapboardError) else str(error)
        logger.warning(
            "board_failed",
            error_type=type(error).__name__,
            error=message,
            workflow_id=workflow.id if workflow else None,
        )
        self.states.record_failure(
            board.id,
            error=message,
            at=now,
            workflow_id=workflow.id if workflow else None,
            next_trigger=next_trigger,
            step_index=0 if reset_cursor else None,
        )

    def _record_batch(self, batch: BatchResult) -> None:
        self._stats.boards_processed += batch.boards_processed
        self._stats.boards_succeeded += batch.success_count
        self._stats.boards_skipped += batch.skipped_count
        self._stats.boards_failed += batch.failed_count
        self._stats.pins_expired += batch.pins_expired

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        backend_health = self.backend.health() if self.backend else {"healthy": False, "backend": None}
        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            backend=backend_health,
            active_boards=len(self.boards.list_active()),
            locked_boards=len(self.lock_manager.list_locked()),
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()
