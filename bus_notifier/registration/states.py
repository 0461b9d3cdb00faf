"""Registration conversation states.

Each stage is its own dataclass carrying exactly the fields that are known
once that stage is reached. "Idle" has no record at all: an owner without a
stored state is not registering.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from ..scheduler.types import ENCODING_VERSION, Weekday, check_version, sorted_days


class Stage(str, Enum):
    """Stage of the registration conversation."""
    AWAIT_ROUTE = "await_route"
    AWAIT_STOP = "await_stop"
    AWAIT_DAYS = "await_days"
    AWAIT_TIME = "await_time"
    AWAIT_DELETE_SELECTION = "await_delete_selection"


@dataclass(frozen=True)
class AwaitRoute:
    """Asked which bus service to be alerted for."""
    stage: Literal["await_route"] = "await_route"

    def to_dict(self) -> dict[str, Any]:
        return {"v": ENCODING_VERSION, "stage": self.stage}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AwaitRoute":  # noqa: ARG003
        return cls()


@dataclass(frozen=True)
class AwaitStop:
    """Service chosen; asked for the bus stop code."""
    service_id: str = ""
    stage: Literal["await_stop"] = "await_stop"

    def to_dict(self) -> dict[str, Any]:
        return {"v": ENCODING_VERSION, "stage": self.stage, "service_id": self.service_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AwaitStop":
        return cls(service_id=data["service_id"])


@dataclass(frozen=True)
class AwaitDays:
    """Service and stop chosen; collecting weekdays via toggles."""
    service_id: str = ""
    stop_id: str = ""
    selected: frozenset[Weekday] = field(default_factory=frozenset)
    stage: Literal["await_days"] = "await_days"

    def toggle(self, day: Weekday) -> "AwaitDays":
        """Flip membership of ``day`` in the selection."""
        return AwaitDays(
            service_id=self.service_id,
            stop_id=self.stop_id,
            selected=self.selected ^ {day},
        )

    @property
    def selected_days(self) -> list[Weekday]:
        return sorted_days(self.selected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "v": ENCODING_VERSION,
            "stage": self.stage,
            "service_id": self.service_id,
            "stop_id": self.stop_id,
            "selected": [d.label for d in self.selected_days],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AwaitDays":
        return cls(
            service_id=data["service_id"],
            stop_id=data["stop_id"],
            selected=frozenset(Weekday.from_label(d) for d in data.get("selected", [])),
        )


@dataclass(frozen=True)
class AwaitTime:
    """Days chosen; asked for the time of day."""
    service_id: str = ""
    stop_id: str = ""
    days: tuple[Weekday, ...] = ()
    stage: Literal["await_time"] = "await_time"

    def to_dict(self) -> dict[str, Any]:
        return {
            "v": ENCODING_VERSION,
            "stage": self.stage,
            "service_id": self.service_id,
            "stop_id": self.stop_id,
            "days": [d.label for d in self.days],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AwaitTime":
        return cls(
            service_id=data["service_id"],
            stop_id=data["stop_id"],
            days=tuple(sorted_days(Weekday.from_label(d) for d in data.get("days", []))),
        )


@dataclass(frozen=True)
class AwaitDeleteSelection:
    """Listed the owner's jobs; asked which number to delete.

    The listing is re-read from the job store every turn, so nothing else
    is kept here.
    """
    stage: Literal["await_delete_selection"] = "await_delete_selection"

    def to_dict(self) -> dict[str, Any]:
        return {"v": ENCODING_VERSION, "stage": self.stage}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AwaitDeleteSelection":  # noqa: ARG003
        return cls()


# Union type for all registration states
RegistrationState = AwaitRoute | AwaitStop | AwaitDays | AwaitTime | AwaitDeleteSelection

_STATE_TYPES: dict[str, type] = {
    Stage.AWAIT_ROUTE.value: AwaitRoute,
    Stage.AWAIT_STOP.value: AwaitStop,
    Stage.AWAIT_DAYS.value: AwaitDays,
    Stage.AWAIT_TIME.value: AwaitTime,
    Stage.AWAIT_DELETE_SELECTION.value: AwaitDeleteSelection,
}


def state_from_dict(data: dict[str, Any]) -> RegistrationState:
    """Create a RegistrationState from a dictionary."""
    check_version(data, "registration state")
    stage = data.get("stage")
    state_type = _STATE_TYPES.get(stage)
    if state_type is None:
        raise ValueError(f"Unknown registration stage: {stage}")
    return state_type.from_dict(data)
