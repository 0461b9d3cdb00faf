"""Inbound event router: turns chat events into registration inputs."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from loguru import logger

from ..channels.base import Message
from ..registration.prompts import DAY_TOGGLE_PREFIX, DAYS_DONE
from ..scheduler.types import Weekday

logger = logger.bind(module="services.router")


class InputKind(Enum):
    START_REGISTER = "start_register"
    START_DELETE = "start_delete"
    CANCEL = "cancel"
    HELP = "help"
    FREE_TEXT = "free_text"
    DAY_TOGGLE = "day_toggle"
    DONE = "done"
    OTHER = "other"     # unknown command or callback


@dataclass(frozen=True)
class Input:
    """One classified inbound event."""
    kind: InputKind
    owner_id: str
    text: str = ""
    weekday: Optional[Weekday] = None


DEFAULT_COMMANDS: Dict[str, InputKind] = {
    "register": InputKind.START_REGISTER,
    "delete": InputKind.START_DELETE,
    "exit": InputKind.CANCEL,
    "cancel": InputKind.CANCEL,
    "start": InputKind.HELP,
    "help": InputKind.HELP,
}


class InputRouter:
    """Classifies inbound events.

    Matching order:
    1. Button callbacks (day toggle / done)
    2. Known commands
    3. Anything else textual is free text
    """

    def __init__(self, commands: Optional[Dict[str, InputKind]] = None):
        self.commands = dict(commands or DEFAULT_COMMANDS)

    def route(self, message: Message) -> Input:
        owner_id = message.channel_id

        if message.is_callback:
            return self._route_callback(owner_id, message.callback_data or "")

        if message.command is not None:
            kind = self.commands.get(message.command)
            if kind is None:
                logger.debug(f"Unknown command /{message.command} from {owner_id}")
                return Input(InputKind.OTHER, owner_id, text=message.content)
            return Input(kind, owner_id, text=message.content)

        return Input(InputKind.FREE_TEXT, owner_id, text=message.content.strip())

    def _route_callback(self, owner_id: str, data: str) -> Input:
        if data == DAYS_DONE:
            return Input(InputKind.DONE, owner_id)
        if data.startswith(DAY_TOGGLE_PREFIX):
            try:
                day = Weekday(int(data[len(DAY_TOGGLE_PREFIX):]))
            except ValueError:
                logger.warning(f"Bad day toggle data {data!r} from {owner_id}")
                return Input(InputKind.OTHER, owner_id, text=data)
            return Input(InputKind.DAY_TOGGLE, owner_id, weekday=day)
        return Input(InputKind.OTHER, owner_id, text=data)
