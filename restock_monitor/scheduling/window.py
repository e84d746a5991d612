"""Daily active monitoring window in a fixed UTC offset.

Monitoring is only permitted inside ``[start_hour, end_hour)`` of each day,
evaluated in a fixed offset from UTC rather than the host's local zone so
the behaviour does not depend on where the monitor is deployed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
DAY_IN_MS = 24 * MS_PER_HOUR


@dataclass(frozen=True)
class ActiveWindow:
    """Half-open hour window ``[start_hour, end_hour)`` at a fixed UTC offset."""

    start_hour: int = 8
    end_hour: int = 19
    utc_offset_minutes: int = 7 * 60

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(minutes=self.utc_offset_minutes))

    @property
    def start_ms(self) -> int:
        return self.start_hour * MS_PER_HOUR

    @property
    def end_ms(self) -> int:
        return self.end_hour * MS_PER_HOUR

    def now(self) -> datetime:
        """Current wall-clock time in the window's offset."""
        return datetime.now(self.tz)

    def ms_since_start_of_day(self, now: datetime) -> int:
        """Milliseconds elapsed since local midnight in the window's offset.

        Naive datetimes are interpreted as UTC.
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self.tz)
        return (
            local.hour * MS_PER_HOUR
            + local.minute * MS_PER_MINUTE
            + local.second * MS_PER_SECOND
            + local.microsecond // 1000
        )

    def is_within_active_window(self, now: datetime | None = None) -> bool:
        """Return ``True`` if *now* falls inside ``[start, end)``."""
        ms = self.ms_since_start_of_day(now if now is not None else self.now())
        return self.start_ms <= ms < self.end_ms

    def ms_until_next_window(self, now: datetime | None = None) -> int:
        """Milliseconds until the window is open; ``0`` while inside it.

        After the window has closed for the day the result wraps through
        midnight to the next day's start.
        """
        ms = self.ms_since_start_of_day(now if now is not None else self.now())

        if ms < self.start_ms:
            return self.start_ms - ms

        if ms < self.end_ms:
            return 0

        return DAY_IN_MS - ms + self.start_ms

    def describe(self) -> str:
        """Human readable form, e.g. ``08:00-19:00 GMT+7``."""
        hours, minutes = divmod(abs(self.utc_offset_minutes), 60)
        sign = "+" if self.utc_offset_minutes >= 0 else "-"
        offset = f"{sign}{hours}" if not minutes else f"{sign}{hours}:{minutes:02d}"
        return f"{self.start_hour:02d}:00-{self.end_hour:02d}:00 GMT{offset}"


def format_duration(ms: float) -> str:
    """Format a millisecond duration for log output.

    Seconds are only shown when the duration is under one hour.
    """
    total_seconds = -(-int(ms) // MS_PER_SECOND) if ms > 0 else 0
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if hours == 0 and seconds > 0:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"
