"""Threading-based tick backend.

Default way to run the scheduler as a long-lived process
(``flapboard serve``): a daemon thread waits on a stop event for the tick
interval and runs the async tick callback with ``asyncio.run``.

::

    start()
       │
       ▼
    daemon thread:
        while not stop_event.wait(interval):
            tick_count += 1
            asyncio.run(tick_callback())

    stop()
       │
       ▼
    stop_event.set(); thread.join(timeout)

A failing tick is logged and the loop continues; the next tick is the
retry.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC, datetime
from typing import Any

from .protocol import BackendHealth, TickCallback

logger = logging.getLogger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread tick loop.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(service.run_all_boards, interval_seconds=60.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, join_timeout: float = 30.0) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 60.0
        self._join_timeout = join_timeout
        self._started = False
        self._lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        """Start the tick loop in a daemon thread."""
        if self._started:
            logger.warning("ThreadSchedulerBackend already started")
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info(f"ThreadSchedulerBackend started (interval={interval_seconds}s)")
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)
                try:
                    asyncio.run(tick_callback())
                except Exception as e:
                    logger.exception(f"Tick failed: {e}")
            logger.info("ThreadSchedulerBackend stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="flapboard-scheduler")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop, waiting for the current tick to complete."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly")

        self._started = False

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stopped (or ``timeout``); True if the stop event is set."""
        return self._stop_event.wait(timeout)

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def get_health(self) -> BackendHealth:
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval},
        )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()
