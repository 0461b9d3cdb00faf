"""Data model for reminder jobs."""
from dataclasses import dataclass
from typing import Any

from .types import ENCODING_VERSION, ScheduledTime, Weekday, check_version

# (owner_id, stop_id, service_id, hour, minute, weekday)
JobIdentity = tuple[str, str, str, int, int, int]


@dataclass(frozen=True)
class ReminderJob:
    """A recurring weekly reminder to push arrival info for one route/stop.

    There is no surrogate key: a job is identified by ``identity``, the
    full (owner, stop, service, hour, minute, weekday) tuple.
    """
    owner_id: str
    stop_id: str
    service_id: str
    scheduled_time: ScheduledTime
    weekday: Weekday

    @property
    def identity(self) -> JobIdentity:
        return (
            self.owner_id,
            self.stop_id,
            self.service_id,
            self.scheduled_time.hour,
            self.scheduled_time.minute,
            int(self.weekday),
        )

    @property
    def trigger_id(self) -> str:
        """Stable id for the live trigger armed for this job."""
        return "reminder:" + ":".join(str(part) for part in self.identity)

    def describe(self) -> str:
        """One-line listing, e.g. ``Monday - 08:30 - Bus 157 @ 43411``."""
        return (
            f"{self.weekday.label} - {self.scheduled_time} - "
            f"Bus {self.service_id} @ {self.stop_id}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "v": ENCODING_VERSION,
            "owner_id": self.owner_id,
            "stop_id": self.stop_id,
            "service_id": self.service_id,
            "scheduled_time": self.scheduled_time.to_dict(),
            "weekday": self.weekday.label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReminderJob":
        """Create from dictionary. Unknown fields are ignored."""
        check_version(data, "job")
        return cls(
            owner_id=str(data["owner_id"]),
            stop_id=str(data["stop_id"]),
            service_id=str(data["service_id"]),
            scheduled_time=ScheduledTime.from_dict(data.get("scheduled_time", {})),
            weekday=Weekday.from_label(data["weekday"]),
        )
