"""
Shared pytest fixtures for flapboard tests.

This module provides:
- An in-memory SQLite database with the flapboard schema
- A settable clock pinned to Monday 2026-01-12 09:05 America/Chicago
- Fake renderer / transport / tick backend doubles
- Factories for boards and workflows

Usage:
    Fixtures are auto-discovered by pytest; take them as test arguments.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from flapboard.core.errors import TransportError
from flapboard.core.models import Board, Workflow, WorkflowKind, WorkflowSchedule, WorkflowStep
from flapboard.core.protocols import PushOutcome
from flapboard.core.repositories import BoardRepository, BoardStateRepository, WorkflowRepository
from flapboard.core.schema import create_core_tables
from flapboard.core.sqlite_conn import SqliteConnection
from flapboard.scheduling.lock_manager import BoardLockManager
from flapboard.scheduling.pins import PinManager
from flapboard.scheduling.resolver import WorkflowResolver
from flapboard.scheduling.service import SchedulerService
from flapboard.scheduling.time_window import TimeWindowCalculator

CHICAGO = ZoneInfo("America/Chicago")


def chicago(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    """A civil Chicago wall-clock time as a UTC instant."""
    return datetime(year, month, day, hour, minute, second, tzinfo=CHICAGO).astimezone(UTC)


def civil(instant: datetime) -> str:
    """Format an instant as Chicago ``YYYY-MM-DD HH:MM``."""
    return instant.astimezone(CHICAGO).strftime("%Y-%m-%d %H:%M")


# Monday 2026-01-12 09:05 CST
FIXED_NOW = chicago(2026, 1, 12, 9, 5)


# =============================================================================
# Doubles
# =============================================================================


class MutableClock:
    """Callable clock whose value tests can move."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def matrix_of(code: int) -> list[list[int]]:
    return [[code] * 22 for _ in range(6)]


class FakeRenderer:
    """Renders a uniform matrix of ``config["code"]`` (default 1)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.error: Exception | None = None
        self.result: list[list[int]] | None = None

    async def render(self, screen_type, config):
        self.calls.append((screen_type, dict(config)))
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return matrix_of(int(config.get("code", 1)))


class FakeTransport:
    """Records pushes; can fail globally or per credential."""

    def __init__(self) -> None:
        self.pushes: list[tuple[str, list[list[int]]]] = []
        self.error: Exception | None = None
        self.failing: set[str] = set()
        self.outcome = PushOutcome(success=True, status=200)
        self.delay = 0.0

    async def push(self, credential, matrix):
        if self.delay:
            await asyncio.sleep(self.delay)
        if credential in self.failing:
            raise TransportError(f"Vestaboard API error: 503 for {credential}")
        if self.error is not None:
            raise self.error
        self.pushes.append((credential, matrix))
        return self.outcome


class FakeBackend:
    """Tick backend that only records what it was asked to do."""

    name = "fake"

    def __init__(self) -> None:
        self.callback = None
        self.interval: float | None = None
        self.started = False

    def start(self, tick_callback, interval_seconds: float = 60.0) -> None:
        self.callback = tick_callback
        self.interval = interval_seconds
        self.started = True

    def stop(self) -> None:
        self.started = False

    def health(self) -> dict[str, Any]:
        return {"healthy": self.started, "backend": self.name, "tick_count": 0, "last_tick": None}


# =============================================================================
# Storage fixtures
# =============================================================================


@pytest.fixture
def conn():
    connection = SqliteConnection(":memory:")
    create_core_tables(connection)
    yield connection
    connection.close()


@pytest.fixture
def boards(conn) -> BoardRepository:
    return BoardRepository(conn)


@pytest.fixture
def workflows(conn) -> WorkflowRepository:
    return WorkflowRepository(conn)


@pytest.fixture
def states(conn) -> BoardStateRepository:
    return BoardStateRepository(conn)


@pytest.fixture
def lock_manager(conn) -> BoardLockManager:
    return BoardLockManager(conn)


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FIXED_NOW)


@pytest.fixture
def calculator(clock) -> TimeWindowCalculator:
    return TimeWindowCalculator("America/Chicago", clock=clock)


@pytest.fixture
def resolver(workflows, calculator) -> WorkflowResolver:
    return WorkflowResolver(workflows, calculator)


@pytest.fixture
def pins(workflows, resolver) -> PinManager:
    return PinManager(workflows, resolver)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def service(boards, workflows, states, resolver, pins, lock_manager, renderer, transport, backend) -> SchedulerService:
    return SchedulerService(
        boards,
        workflows,
        states,
        resolver,
        pins,
        lock_manager,
        renderer,
        transport,
        backend=backend,
        interval_seconds=1.0,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_workflow(workflows):
    """Create a workflow whose step ``i`` renders code ``i + 1``."""

    def _make(
        name: str = "Lobby",
        *,
        steps: int = 3,
        schedule: WorkflowSchedule | None = None,
        kind: WorkflowKind = WorkflowKind.NORMAL,
        is_active: bool = True,
        disabled: tuple[int, ...] = (),
        created_at: datetime | None = None,
    ) -> Workflow:
        workflow = Workflow(
            name=name,
            kind=kind,
            is_active=is_active,
            steps=[
                WorkflowStep(
                    step_id=f"step_{i}",
                    order=i,
                    screen_type="MESSAGE",
                    screen_config={"code": i + 1},
                    is_enabled=i not in disabled,
                )
                for i in range(steps)
            ],
            schedule=schedule or WorkflowSchedule(),
            created_at=created_at,
        )
        return workflows.create(workflow)

    return _make


@pytest.fixture
def make_board(boards):
    def _make(
        name: str = "Board",
        *,
        workflow: Workflow | None = None,
        write_key: str | None = "key",
        is_active: bool = True,
        created_at: datetime | None = None,
    ) -> Board:
        return boards.create(
            Board(
                name=name,
                write_key=write_key,
                default_workflow_id=workflow.id if workflow else None,
                is_active=is_active,
                created_at=created_at,
            )
        )

    return _make
