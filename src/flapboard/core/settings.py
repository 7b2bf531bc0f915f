"""Runtime settings for flapboard.

All configuration is environment-driven with the ``FLAPBOARD_`` prefix and
optional ``.env`` support, validated by pydantic at startup.

Fields
──────
timezone                 : Civil timezone for all window and trigger math
database_path            : SQLite database file (``:memory:`` for tests)
default_interval_minutes : Cadence used when a workflow has no interval
default_display_seconds  : Step duration used when a pin step omits one
tick_interval_seconds    : How often the tick backend calls ``run_all_boards``
vestaboard_base_url      : Device API base URL
vestaboard_api_key       : Fallback credential for boards without a write key
push_timeout_seconds     : httpx timeout for a single push
min_post_spacing_seconds : Posts to one credential closer than this log a warning
stale_lock_seconds       : Age after which a held board lock counts as stale
log_level / log_json     : structlog configuration

Examples:
    >>> from flapboard.core.settings import get_settings
    >>> get_settings().timezone
    'America/Chicago'

Tags:
    settings, configuration, pydantic, environment, flapboard

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlapboardSettings(BaseSettings):
    """Settings for the scheduling engine and its collaborators."""

    model_config = SettingsConfigDict(
        env_prefix="FLAPBOARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scheduling ───────────────────────────────────────────────
    timezone: str = "America/Chicago"
    default_interval_minutes: int = Field(default=30, ge=1, le=1440)
    default_display_seconds: int = Field(default=20, ge=5, le=300)
    tick_interval_seconds: float = Field(default=60.0, gt=0)
    stale_lock_seconds: int = Field(default=600, ge=1)

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = "flapboard.db"

    # ── Device transport ─────────────────────────────────────────
    vestaboard_base_url: str = "https://rw.vestaboard.com"
    vestaboard_api_key: str | None = None
    push_timeout_seconds: float = 15.0
    min_post_spacing_seconds: float = 15.0

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


@lru_cache(maxsize=1)
def get_settings() -> FlapboardSettings:
    """Return the process-wide settings (read once)."""
    return FlapboardSettings()
