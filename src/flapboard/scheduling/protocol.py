"""Tick backend protocol.

The scheduling engine has no loop of its own.  A backend is the external
periodic caller: it decides WHEN a tick happens, while
``SchedulerService.run_all_boards`` decides WHAT a tick does.

::

    ┌─────────────────┐   tick()    ┌──────────────────────────────┐
    │  Tick backend   │ ──────────► │  SchedulerService            │
    │  (thread, cron, │             │   sweep pins                 │
    │   external job) │             │   per board: resolve, lock,  │
    └─────────────────┘             │   render, push, persist      │
                                    └──────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[Any]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Pluggable timing backend.

    A backend only calls the tick callback at the requested interval; all
    board evaluation lives in the service.
    """

    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        """Start calling ``tick_callback`` every ``interval_seconds``."""
        ...

    def stop(self) -> None:
        """Stop gracefully, letting the current tick finish."""
        ...

    def health(self) -> dict[str, Any]:
        """At least ``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
