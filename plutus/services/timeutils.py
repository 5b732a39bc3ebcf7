"""
Time Helpers

Clock type, ISO conversions and time-of-day windows shared by promotion
conditions and pricing rules.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone, tzinfo
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string (or pass a datetime through), assuming UTC when naive."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@lru_cache(maxsize=64)
def get_zone(name: Optional[str]) -> tzinfo:
    """Resolve a timezone name, falling back to UTC for unknown zones."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _parse_clock(value: str) -> time:
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


@dataclass(frozen=True)
class TimeRange:
    """A daily HH:MM window; start after end wraps past midnight."""
    start: str
    end: str

    def __post_init__(self):
        # Raises ValueError on malformed input
        _parse_clock(self.start)
        _parse_clock(self.end)

    def contains(self, moment: time) -> bool:
        start = _parse_clock(self.start)
        end = _parse_clock(self.end)
        if start <= end:
            return start <= moment <= end
        return moment >= start or moment <= end

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeRange":
        return cls(start=data["start"], end=data["end"])


def in_time_ranges(ranges: List[TimeRange], moment: datetime) -> bool:
    """True when no ranges are configured or the local time falls in one."""
    if not ranges:
        return True
    local = moment.time().replace(second=0, microsecond=0)
    return any(r.contains(local) for r in ranges)
