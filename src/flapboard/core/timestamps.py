"""
ULID generation and timestamp utilities (stdlib-only).

Record ids are time-sortable ULID-like strings so that "most recently
created" can be answered by ordering on ``created_at`` or on the id
itself.  Timestamps are timezone-aware UTC and persisted as ISO 8601.

Features:
    - **generate_ulid():** Time-sortable, 26-char, Crockford base32
    - **utc_now():** Timezone-aware UTC datetime
    - **to_iso8601() / from_iso8601():** Serialization round-trip; naive
      values read back from storage are treated as UTC

Tags:
    timestamps, ulid, utc, datetime, stdlib-only
"""

import random
import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_ulid() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    timestamp_chars = _encode_base32(int(time.time() * 1000), 10)
    random_part = "".join(random.choices(_ENCODING, k=16))
    return timestamp_chars + random_part


def new_id(prefix: str) -> str:
    """Prefixed record id, e.g. ``wf_01J...``."""
    return f"{prefix}_{generate_ulid()}"


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware datetime."""
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
