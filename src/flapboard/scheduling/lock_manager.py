"""Per-board re-entrancy lock.

Manifesto:
    A slow manual trigger racing a periodic tick must never run the same
    board's step twice.  The lock is the ``workflow_running`` flag on the
    board's scheduling-state row, taken with a single compare-and-swap
    ``UPDATE … WHERE workflow_running = 0`` whose rowcount decides who
    won.  A crashed process leaves the flag set, so startup clears every
    lock and stale locks can be released by age.

Tags:
    scheduling, locks, compare-and-swap, concurrency, safety

Doc-Types:
    api-reference

    Lock Flow::

        acquire(board) ── UPDATE … SET workflow_running = 1
                          WHERE board_id = ? AND workflow_running = 0
                              │
                   rowcount 1 ┤ rowcount 0
                      won ◄───┴───► BoardBusyError (caller)
                       │
                 try: render + push
                 finally: release(board)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from flapboard.core.dialect import Dialect, SQLiteDialect
from flapboard.core.protocols import Connection
from flapboard.core.timestamps import to_iso8601

logger = logging.getLogger(__name__)


class BoardLockManager:
    """Compare-and-swap lock on ``board_states.workflow_running``.

    Example:
        >>> locks = BoardLockManager(conn)
        >>> if locks.acquire("brd_1"):
        ...     try:
        ...         pass  # render + push
        ...     finally:
        ...         locks.release("brd_1")

    The state row must exist before ``acquire`` is called; the scheduler
    creates it lazily first.
    """

    TABLE = "board_states"

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect = dialect or SQLiteDialect()

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def acquire(self, board_id: str, now: datetime | None = None) -> bool:
        """Take the board lock.

        Returns:
            True if this caller now holds the lock, False if it was held.
        """
        now = now or datetime.now(UTC)
        cursor = self.conn.execute(
            f"UPDATE {self.TABLE} SET workflow_running = {self.dialect.boolean_true()}, "
            f"locked_at = {self._ph()} "
            f"WHERE board_id = {self._ph()} AND workflow_running = {self.dialect.boolean_false()}",
            (to_iso8601(now), board_id),
        )
        self.conn.commit()

        if cursor.rowcount > 0:
            logger.debug(f"Acquired lock for board {board_id}")
            return True

        logger.debug(f"Lock already held for board {board_id}")
        return False

    def release(self, board_id: str) -> bool:
        """Clear the board lock. Idempotent."""
        cursor = self.conn.execute(
            f"UPDATE {self.TABLE} SET workflow_running = {self.dialect.boolean_false()}, locked_at = NULL "
            f"WHERE board_id = {self._ph()} AND workflow_running = {self.dialect.boolean_true()}",
            (board_id,),
        )
        self.conn.commit()
        if cursor.rowcount > 0:
            logger.debug(f"Released lock for board {board_id}")
            return True
        return False

    def is_locked(self, board_id: str) -> bool:
        cursor = self.conn.execute(
            f"SELECT 1 FROM {self.TABLE} "
            f"WHERE board_id = {self._ph()} AND workflow_running = {self.dialect.boolean_true()}",
            (board_id,),
        )
        return cursor.fetchone() is not None

    def list_locked(self) -> list[dict]:
        """Boards whose lock is currently held."""
        cursor = self.conn.execute(
            f"SELECT board_id, locked_at FROM {self.TABLE} "
            f"WHERE workflow_running = {self.dialect.boolean_true()} ORDER BY locked_at"
        )
        return [{"board_id": row[0], "locked_at": row[1]} for row in cursor.fetchall()]

    # === Maintenance ===

    def release_stale_locks(self, max_age_seconds: int, now: datetime | None = None) -> int:
        """Release locks held longer than ``max_age_seconds``.

        Locks without a ``locked_at`` timestamp are treated as stale.
        """
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=max_age_seconds)
        cursor = self.conn.execute(
            f"UPDATE {self.TABLE} SET workflow_running = {self.dialect.boolean_false()}, locked_at = NULL "
            f"WHERE workflow_running = {self.dialect.boolean_true()} "
            f"AND (locked_at IS NULL OR locked_at < {self._ph()})",
            (to_iso8601(cutoff),),
        )
        self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.warning(f"Released {count} stale board locks older than {max_age_seconds}s")
        return count

    def clear_all(self) -> int:
        """Force-clear every board lock (startup recovery, operator unlock)."""
        cursor = self.conn.execute(
            f"UPDATE {self.TABLE} SET workflow_running = {self.dialect.boolean_false()}, locked_at = NULL "
            f"WHERE workflow_running = {self.dialect.boolean_true()}"
        )
        self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.warning(f"Force released {count} board locks")
        return count
