"""
Clock-aligned trigger computation in a fixed civil timezone.

Every board update is due on a clock-aligned tick: an interval of 30
minutes fires at :00 and :30 of the civil clock, never "30 minutes after
the last run".  Daily windows and weekday sets narrow the ticks further.
All math runs in one configured timezone (``America/Chicago`` by default)
through ``zoneinfo``, never the host's local zone, so two deployments in
different regions agree on when a board is due.

Manifesto:
    - **Absolute instants:** ``next_trigger`` returns a UTC datetime, not a
      delay, so a restart or a late tick never "owes" missed fires
    - **Minute granularity:** seconds of "now" are discarded before the
      computation
    - **Civil-day arithmetic:** days are advanced on the calendar date and
      localized afterwards, which keeps results correct across DST
    - **Pure:** the calculator reads a clock and nothing else

Architecture:
    ::

        now (UTC) ──► to_civil ──► minute-of-day, civil date, weekday
                                        │
                     weekday not allowed?──yes──► tomorrow @ window start
                                        │no
                     aligned = (minute // interval + 1) * interval
                     aligned >= 1440 ──yes──► tomorrow @ 00:00
                                        │
                     before start         ──► snap to start, same day
                     after end (> end)    ──► next day @ start
                     weekday loop (≤ 7)   ──► next allowed day @ start
                                        │
                                        ▼
                        civil date + minute ──► UTC instant

Edge cases:
    - The window end is inclusive: 16:45 with interval 30 and window
      09:00–17:00 yields 17:00 the same day.
    - The window start is only reached by snapping forward.  A tick that
      rolled over to 00:00 snaps to the start of that new day.
    - An interval that does not divide the day rolls over to 00:00 of the
      next civil day, never to a carried-over minute.

Examples:
    >>> calc = TimeWindowCalculator("America/Chicago")
    >>> window = TimeWindow("09:00", "17:00", days_of_week=[1, 2, 3, 4, 5])
    >>> calc.next_trigger(30, window)  # doctest: +SKIP
    datetime.datetime(2026, 1, 12, 15, 0, tzinfo=datetime.timezone.utc)

Tags:
    scheduling, timezone, zoneinfo, time-window, clock-aligned

Doc-Types:
    - API Reference
    - Algorithm Notes
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from flapboard.core.errors import ValidationError
from flapboard.core.timestamps import utc_now

MINUTES_PER_DAY = 24 * 60
MAX_DAY_STEPS = 7
DEFAULT_TIMEZONE = "America/Chicago"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time_to_minutes(value: str) -> int:
    """Parse ``HH:MM`` into minutes since midnight.

    Raises:
        ValidationError: If the value is not a 24-hour ``HH:MM`` string.
    """
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM)", field="time", value=value)
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def civil_weekday(day: date) -> int:
    """Day of week with 0 = Sunday … 6 = Saturday."""
    return (day.weekday() + 1) % 7


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def trigger_times(start_time: str, end_time: str, interval_minutes: int) -> list[str]:
    """All aligned ticks inside a daily window, as ``HH:MM`` strings.

    Used for operator previews of what a schedule will do in one day.
    """
    _check_interval(interval_minutes)
    start = parse_time_to_minutes(start_time)
    end = parse_time_to_minutes(end_time)
    current = -(-start // interval_minutes) * interval_minutes
    times = []
    while current <= end:
        times.append(format_minutes(current))
        current += interval_minutes
    return times


def _check_interval(interval_minutes: int) -> None:
    if not 1 <= interval_minutes <= MINUTES_PER_DAY:
        raise ValidationError(
            f"Interval must be between 1 and {MINUTES_PER_DAY} minutes, got {interval_minutes}",
            field="interval_minutes",
            value=interval_minutes,
        )


@dataclass(frozen=True)
class TimeWindow:
    """A daily window with an optional set of allowed weekdays.

    ``days_of_week`` uses 0 = Sunday; ``None`` or an empty set means every
    day is allowed.
    """

    start_time: str
    end_time: str
    days_of_week: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        parse_time_to_minutes(self.start_time)
        parse_time_to_minutes(self.end_time)
        days = tuple(sorted(set(self.days_of_week))) if self.days_of_week else None
        if days and any(d < 0 or d > 6 for d in days):
            raise ValidationError(f"Invalid weekday in {list(days)} (expected 0-6)", field="days_of_week")
        object.__setattr__(self, "days_of_week", days)

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)

    def allows_day(self, day: date) -> bool:
        return not self.days_of_week or civil_weekday(day) in self.days_of_week


class TimeWindowCalculator:
    """Next-trigger and window predicates in a single civil timezone.

    Args:
        timezone: IANA zone name used for all civil-time math.
        clock: Returns the current instant; injected for tests.
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE, clock: Callable[[], datetime] = utc_now):
        self.timezone = timezone
        self.tz = ZoneInfo(timezone)
        self._clock = clock

    def now(self) -> datetime:
        """Current instant from the injected clock."""
        return self._clock()

    def to_civil(self, instant: datetime) -> datetime:
        """Convert an instant to the civil timezone (naive values are UTC)."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        return instant.astimezone(self.tz)

    def civil_now(self, now: datetime | None = None) -> datetime:
        return self.to_civil(now or self.now())

    def to_instant(self, day: date, minutes: int) -> datetime:
        """Localize a civil date + minute-of-day and return it in UTC."""
        local = datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=self.tz)
        return local.astimezone(UTC)

    # ------------------------------------------------------------------
    # Trigger computation
    # ------------------------------------------------------------------

    def next_trigger(
        self,
        interval_minutes: int,
        window: TimeWindow | None = None,
        now: datetime | None = None,
    ) -> datetime:
        """Smallest clock-aligned instant after ``now`` that the window allows.

        Args:
            interval_minutes: Tick spacing, measured from civil midnight.
            window: Optional daily window / weekday restriction.
            now: Evaluation instant; defaults to the calculator's clock.

        Returns:
            Absolute UTC instant of the next trigger.

        Raises:
            ValidationError: If the interval is outside 1–1440 minutes.
        """
        _check_interval(interval_minutes)
        civil = self.civil_now(now).replace(second=0, microsecond=0)
        today = civil.date()

        if window is not None and not window.allows_day(today):
            day, minutes = today + timedelta(days=1), window.start_minutes
        else:
            aligned = (minute_of_day(civil) // interval_minutes + 1) * interval_minutes
            if aligned >= MINUTES_PER_DAY:
                day, minutes = today + timedelta(days=1), 0
            else:
                day, minutes = today, aligned

        if window is not None:
            start, end = window.start_minutes, window.end_minutes
            if minutes < start:
                minutes = start
            elif minutes > end:
                day, minutes = day + timedelta(days=1), start
            steps = 0
            while steps < MAX_DAY_STEPS and not window.allows_day(day):
                day, minutes = day + timedelta(days=1), start
                steps += 1

        return self.to_instant(day, minutes)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def is_in_window(
        self,
        start_time: str,
        end_time: str,
        days_of_week: Iterable[int] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """True when ``now`` falls on an allowed weekday inside [start, end]."""
        window = TimeWindow(start_time, end_time, days_of_week)
        civil = self.civil_now(now)
        if not window.allows_day(civil.date()):
            return False
        return window.start_minutes <= minute_of_day(civil) <= window.end_minutes


__all__ = [
    "DEFAULT_TIMEZONE",
    "MINUTES_PER_DAY",
    "TimeWindow",
    "TimeWindowCalculator",
    "civil_weekday",
    "format_minutes",
    "minute_of_day",
    "parse_time_to_minutes",
    "trigger_times",
]
