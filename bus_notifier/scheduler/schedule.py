"""Schedule calculation utilities.

Reminder rules are explicit (weekday, hour, minute) triples evaluated here
rather than cron strings.
"""
import re
from collections.abc import Iterable
from datetime import date, datetime, time

from ..errors import ValidationError
from .types import ScheduledTime, Weekday, sorted_days

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*:\s*(\d{1,2})\s*$")


def fire_time_on(scheduled_time: ScheduledTime, day: date, tz) -> datetime:
    """The instant ``scheduled_time`` occurs on calendar ``day`` in ``tz``."""
    return datetime.combine(day, time(scheduled_time.hour, scheduled_time.minute), tzinfo=tz)


def fires_later_today(scheduled_time: ScheduledTime, now: datetime) -> bool:
    """Whether ``scheduled_time`` is still ahead of ``now`` on the same day.

    Compared to the minute, so a job due this very minute still counts.
    """
    return (scheduled_time.hour, scheduled_time.minute) >= (now.hour, now.minute)


def parse_time(text: str) -> ScheduledTime:
    """Parse an ``hh:mm`` string.

    Raises:
        ValidationError: If the text is not ``hh:mm`` or is out of range
    """
    match = _TIME_RE.match(text or "")
    if not match:
        raise ValidationError("Invalid time specified. In the format of hh:mm please.")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(
            "Invalid time specified. Hours go from 00 to 23 and minutes from 00 to 59."
        )
    return ScheduledTime(hour=hour, minute=minute)


def join_days(days: Iterable[Weekday]) -> str:
    """Human-readable day list in fixed Monday-first order, e.g. ``Monday, Wednesday``."""
    return ", ".join(day.label for day in sorted_days(days))
