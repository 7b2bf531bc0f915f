"""Scheduling engine for flapboard.

Manifesto:
    A board update is only correct when four things agree: the workflow
    allowed to run now, the step in its rotation, the next aligned
    trigger, and a lock that guarantees one run per board at a time.
    This package owns those four decisions and keeps device I/O
    (renderer, transport) behind protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  FLAPBOARD SCHEDULER                                                          │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from flapboard.scheduling import create_scheduler                  │   │
│  │                                                                      │   │
│  │   service = create_scheduler(conn, renderer, transport)              │   │
│  │   batch = await service.run_all_boards()    # one tick               │   │
│  │   service.start()                           # background ticking     │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Architecture:                                                                │
│   ┌──────────────┐   tick()   ┌────────────────────────────────────────┐     │
│   │  Backend     │ ─────────► │  SchedulerService                      │     │
│   │  (timing)    │            │   PinManager      (sweep, overlay)     │     │
│   └──────────────┘            │   WorkflowResolver(workflow, step)     │     │
│                               │   TimeWindowCalculator (next trigger)  │     │
│                               │   BoardLockManager (one run per board) │     │
│                               │   Renderer / Transport (device I/O)    │     │
│                               └────────────────────────────────────────┘     │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Rendering or pushing without holding the board lock
    ✅ ``BoardLockManager.acquire()`` before any device I/O
    ❌ Comparing schedule bounds against the server's calendar date
    ✅ ``TimeWindowCalculator.civil_now()`` for every civil comparison
    ❌ Constructing scheduler components individually
    ✅ ``create_scheduler(conn, renderer, transport)`` factory function

Tags:
    flapboard, scheduling, pins, locks, beat-as-poller

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from flapboard.core.protocols import Connection, Renderer, Transport
from flapboard.core.repositories import BoardRepository, BoardStateRepository, WorkflowRepository
from flapboard.core.settings import FlapboardSettings, get_settings
from flapboard.core.timestamps import utc_now

from .lock_manager import BoardLockManager
from .pins import PinManager, PinRequest, PinStepConfig, build_pin_request
from .protocol import BackendHealth, SchedulerBackend
from .resolver import StepSelection, WorkflowResolver
from .results import BatchResult, BoardRunResult, RunStatus
from .service import SchedulerHealth, SchedulerService, SchedulerStats
from .thread_backend import ThreadSchedulerBackend
from .time_window import TimeWindow, TimeWindowCalculator, trigger_times

__all__ = [
    # Protocol
    "SchedulerBackend",
    "BackendHealth",
    # Backends
    "ThreadSchedulerBackend",
    # Time
    "TimeWindow",
    "TimeWindowCalculator",
    "trigger_times",
    # Resolution
    "WorkflowResolver",
    "StepSelection",
    # Pins
    "PinManager",
    "PinRequest",
    "PinStepConfig",
    "build_pin_request",
    # Locks
    "BoardLockManager",
    # Service
    "SchedulerService",
    "SchedulerStats",
    "SchedulerHealth",
    "BatchResult",
    "BoardRunResult",
    "RunStatus",
    "create_scheduler",
]


def create_scheduler(
    conn: Connection,
    renderer: Renderer,
    transport: Transport,
    settings: FlapboardSettings | None = None,
    backend: SchedulerBackend | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> SchedulerService:
    """Factory function to create a complete scheduler service.

    Args:
        conn: Database connection
        renderer: Screen renderer
        transport: Device transport
        settings: Runtime settings (default: ``get_settings()``)
        backend: Tick backend (default: ``ThreadSchedulerBackend``)
        clock: Current-instant source, injected in tests

    Example:
        >>> scheduler = create_scheduler(conn, TextRenderer(), VestaboardClient())
        >>> scheduler.start()
    """
    settings = settings or get_settings()
    workflows = WorkflowRepository(conn)
    calculator = TimeWindowCalculator(settings.timezone, clock=clock)
    resolver = WorkflowResolver(workflows, calculator)

    return SchedulerService(
        boards=BoardRepository(conn),
        workflows=workflows,
        states=BoardStateRepository(conn),
        resolver=resolver,
        pins=PinManager(workflows, resolver),
        lock_manager=BoardLockManager(conn),
        renderer=renderer,
        transport=transport,
        backend=backend or ThreadSchedulerBackend(),
        interval_seconds=settings.tick_interval_seconds,
        fallback_credential=settings.vestaboard_api_key,
        stale_lock_seconds=settings.stale_lock_seconds,
    )
