"""
Schema for the flapboard store.

Three tables back the scheduling engine:

- ``boards``: display units and their device credentials (owned by the
  CRUD layer, read by the engine)
- ``workflows``: step rotations with their schedule, including pins
  (``kind = 'pinned'``)
- ``board_states``: one scheduling-state row per board, created lazily

Steps, weekday sets and the cached matrix are stored as JSON text;
timestamps are ISO 8601 strings in UTC.

Tags:
    schema, ddl, sqlite, flapboard

Doc-Types:
    - Data Model
"""

from __future__ import annotations

CORE_TABLES = {
    "boards": "boards",
    "workflows": "workflows",
    "board_states": "board_states",
}


CORE_DDL = {
    # Workflows come first; boards reference them
    "workflows": """
        CREATE TABLE IF NOT EXISTS workflows (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            kind TEXT NOT NULL DEFAULT 'normal',      -- normal | pinned
            description TEXT,
            is_default INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,

            -- Rotation
            steps_json TEXT NOT NULL DEFAULT '[]',

            -- Schedule
            schedule_type TEXT NOT NULL DEFAULT 'always',  -- always | daily_window | date_range
            start_time TEXT,                -- HH:MM civil
            end_time TEXT,                  -- HH:MM civil
            days_of_week_json TEXT,         -- [0..6], 0 = Sunday
            start_date TEXT,                -- YYYY-MM-DD civil
            end_date TEXT,                  -- YYYY-MM-DD civil
            update_interval_minutes INTEGER NOT NULL DEFAULT 30,

            created_by TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "workflows_idx_kind": """
        CREATE INDEX IF NOT EXISTS idx_workflows_kind_active
        ON workflows(kind, is_active)
    """,
    "boards": """
        CREATE TABLE IF NOT EXISTS boards (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            location_label TEXT,
            write_key TEXT,
            default_workflow_id TEXT REFERENCES workflows(id) ON DELETE SET NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "boards_idx_workflow": """
        CREATE INDEX IF NOT EXISTS idx_boards_default_workflow
        ON boards(default_workflow_id)
    """,
    "board_states": """
        CREATE TABLE IF NOT EXISTS board_states (
            board_id TEXT PRIMARY KEY REFERENCES boards(id) ON DELETE CASCADE,
            current_workflow_id TEXT REFERENCES workflows(id) ON DELETE CASCADE,
            current_step_index INTEGER NOT NULL DEFAULT 0,

            -- Re-entrancy lock
            workflow_running INTEGER NOT NULL DEFAULT 0,
            locked_at TEXT,

            -- Last run
            last_matrix_json TEXT,
            last_update_at TEXT,
            last_update_success INTEGER,
            last_error TEXT,
            cycle_count INTEGER NOT NULL DEFAULT 0,

            next_scheduled_trigger TEXT,

            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "board_states_idx_workflow": """
        CREATE INDEX IF NOT EXISTS idx_board_states_workflow
        ON board_states(current_workflow_id)
    """,
}


def create_core_tables(conn) -> None:
    """
    Create all flapboard tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in CORE_DDL.items():
        conn.execute(ddl)
    conn.commit()


__all__ = ["CORE_DDL", "CORE_TABLES", "create_core_tables"]
