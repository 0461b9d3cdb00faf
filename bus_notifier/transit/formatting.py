"""Arrival message formatting."""
from .arrival import ArrivalInfo

UNKNOWN_TEXT = "N/A"
ARRIVED_TEXT = "Arr"


def format_minutes(minutes: float | None) -> str:
    """Render one arrival slot.

    ``None`` is unknown, under a minute is arriving now, anything else is
    rounded to whole minutes.
    """
    if minutes is None:
        return UNKNOWN_TEXT
    if minutes < 1:
        return ARRIVED_TEXT
    rounded = int(minutes + 0.5)
    return "1 min" if rounded == 1 else f"{rounded} mins"


def format_arrival_message(info: ArrivalInfo, stop_label: str | None = None) -> str:
    """e.g. ``157 @ Opp Blk 123 (43411) | Arr | 6 mins | N/A``"""
    label = stop_label or info.stop_label or info.stop_id
    header = f"{info.service_id} @ {label}"
    if label != info.stop_id:
        header += f" ({info.stop_id})"
    slots = [format_minutes(m) for m in info.minutes]
    return " | ".join([header, *slots])
