"""Core value types for reminder scheduling.

- Weekday: day of week, Monday first (matches ``datetime.weekday()``)
- ScheduledTime: wall-clock time of day
- Encoding helpers for versioned, field-named stored values
"""
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

# Version tag written into every stored value
ENCODING_VERSION = 1


# ============== Weekday ==============

class Weekday(int, Enum):
    """Day of the week, Monday = 0 ... Sunday = 6."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        """Full English name, e.g. ``Monday``. Also the weekday index key."""
        return self.name.capitalize()

    @property
    def short(self) -> str:
        return _SHORT_LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> "Weekday":
        try:
            return cls[label.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown weekday: {label!r}") from None

    @classmethod
    def of(cls, day: date | datetime) -> "Weekday":
        return cls(day.weekday())


_SHORT_LABELS = {
    Weekday.MONDAY: "Mon",
    Weekday.TUESDAY: "Tue",
    Weekday.WEDNESDAY: "Wed",
    Weekday.THURSDAY: "Thu",
    Weekday.FRIDAY: "Fri",
    Weekday.SATURDAY: "Sat",
    Weekday.SUNDAY: "Sun",
}


def sorted_days(days) -> list[Weekday]:
    """Return weekdays in fixed ascending order (Monday first), deduplicated."""
    return sorted({Weekday(d) for d in days})


# ============== Time of day ==============

@dataclass(frozen=True, order=True)
class ScheduledTime:
    """Time of day a reminder fires."""
    hour: int = 0
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour out of range: {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute out of range: {self.minute}")

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_dict(self) -> dict[str, Any]:
        return {"hour": self.hour, "minute": self.minute}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledTime":
        return cls(hour=int(data.get("hour", 0)), minute=int(data.get("minute", 0)))


# ============== Encoding ==============

def check_version(data: dict[str, Any], kind: str) -> None:
    """Reject values written by a newer, incompatible encoding."""
    version = data.get("v", ENCODING_VERSION)
    if version > ENCODING_VERSION:
        raise ValueError(f"Unsupported {kind} encoding version: {version}")
