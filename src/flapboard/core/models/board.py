"""Board model (``boards`` table)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Board:
    """A physical split-flap display and its device credential.

    Owned by the CRUD layer; the scheduler only reads it.
    """

    id: str = ""
    name: str = ""
    location_label: str | None = None
    write_key: str | None = None
    default_workflow_id: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
