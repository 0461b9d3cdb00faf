"""Reminder scheduling.

- types.py: weekday and time-of-day value types
- models.py: reminder job model
- schedule.py: rule evaluation and time parsing
- executor.py: what runs when a trigger fires
- service.py: daily live-trigger scheduler
"""
from .models import ReminderJob
from .types import ScheduledTime, Weekday

__all__ = ["ReminderJob", "ScheduledTime", "Weekday"]
