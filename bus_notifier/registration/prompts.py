"""Reply texts and the weekday selection keyboard."""
from collections.abc import Iterable

from ..channels.base import Keyboard
from ..scheduler.models import ReminderJob
from ..scheduler.schedule import join_days
from ..scheduler.types import Weekday

DAY_TOGGLE_PREFIX = "days:toggle:"
DAYS_DONE = "days:done"

EXIT_HINT = "\n\nStop me with /exit"

HELP = "Start by sending me /register or if you want to delete an alarm, send me /delete"
FALLBACK = "I don't understand." + EXIT_HINT
APOLOGY = "Sorry, something went wrong on my side. Please try again in a moment."
CANCELLED = "Okay!"
ASK_ROUTE = "Which bus would you like to be alerted for?" + EXIT_HINT
INVALID_ROUTE = "Invalid bus, please try again" + EXIT_HINT
ASK_TIME = "What time? In the format of hh:mm" + EXIT_HINT
NO_DAYS_SELECTED = "Pick at least one day, then press Done."
NO_ALARMS = "You have no registered alarms"
ALL_ALARMS_DELETED = "Deleted! You have no more registered alarms."
INVALID_SELECTION = "Invalid selection" + EXIT_HINT


def ask_stop(service_id: str, route_guide_url: str) -> str:
    url = route_guide_url.format(service=service_id)
    return (
        "Which bus stop do you want to be alerted for? Tell me the bus stop code."
        f"\n\nYou can look for the bus stop code at {url}" + EXIT_HINT
    )


def invalid_stop(service_id: str, route_guide_url: str) -> str:
    url = route_guide_url.format(service=service_id)
    return (
        f"This bus stop is not serviced by the bus {service_id}, please try again."
        f"\n\nYou can look for the bus stop code at {url}" + EXIT_HINT
    )


def ask_days(selected: Iterable[Weekday] = ()) -> str:
    selected = list(selected)
    summary = join_days(selected) if selected else "None"
    return f"Which days?\nSelected: {summary}" + EXIT_HINT


def invalid_time(reason: str) -> str:
    return reason + EXIT_HINT


def weekday_keyboard(selected: Iterable[Weekday] = ()) -> Keyboard:
    """Mon-Fri row, Sat-Sun row, Done row. Selected days carry a check mark."""
    chosen = set(selected)

    def button(day: Weekday) -> tuple[str, str]:
        mark = "✅ " if day in chosen else ""
        return (mark + day.short, f"{DAY_TOGGLE_PREFIX}{int(day)}")

    return [
        [button(day) for day in list(Weekday)[:5]],
        [button(day) for day in list(Weekday)[5:]],
        [("Done", DAYS_DONE)],
    ]


def job_listing(jobs: list[ReminderJob]) -> str:
    lines = ["Which alarm do you want to delete? Tell me the number!"]
    lines += [f"{i}. {job.describe()}" for i, job in enumerate(jobs, start=1)]
    return "\n".join(lines) + EXIT_HINT


def registered(service_id: str, stop_label: str, stop_id: str, jobs: list[ReminderJob]) -> str:
    """Confirmation enumerating every committed (weekday, time) pair."""
    where = f"{stop_label} ({stop_id})" if stop_label != stop_id else stop_id
    lines = [f"You will be reminded for bus {service_id} at {where} every:"]
    lines += [f"- {job.weekday.label} {job.scheduled_time}" for job in jobs]
    return "\n".join(lines)
