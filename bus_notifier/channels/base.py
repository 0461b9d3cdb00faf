"""Chat channel abstractions."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Callable, Any, List, Tuple


class ChannelType(Enum):
    """Channel type"""
    TELEGRAM = "telegram"


# Rows of (button label, callback data)
Keyboard = List[List[Tuple[str, str]]]


@dataclass
class Message:
    """Inbound chat event: a text message or a button callback."""
    channel: ChannelType
    channel_id: str          # chat id; also the owner id
    sender_id: str
    content: str = ""
    message_id: str = ""     # for callbacks, the message carrying the keyboard
    command: Optional[str] = None
    callback_id: Optional[str] = None
    callback_data: Optional[str] = None
    timestamp: float = 0
    metadata: dict = field(default_factory=dict)

    @property
    def is_callback(self) -> bool:
        return self.callback_id is not None


class OutboundKind(Enum):
    SEND = "send"
    EDIT = "edit"
    ANSWER_CALLBACK = "answer_callback"


@dataclass
class Outbound:
    """Outbound chat action: send-message, edit-message or acknowledge-callback."""
    kind: OutboundKind
    channel_id: str
    text: str = ""
    message_id: Optional[str] = None
    callback_id: Optional[str] = None
    keyboard: Optional[Keyboard] = None

    @classmethod
    def send(cls, channel_id: str, text: str, keyboard: Optional[Keyboard] = None) -> "Outbound":
        return cls(OutboundKind.SEND, channel_id, text=text, keyboard=keyboard)

    @classmethod
    def edit(
        cls,
        channel_id: str,
        message_id: str,
        text: str,
        keyboard: Optional[Keyboard] = None,
    ) -> "Outbound":
        return cls(OutboundKind.EDIT, channel_id, text=text, message_id=message_id, keyboard=keyboard)

    @classmethod
    def answer_callback(cls, channel_id: str, callback_id: str, text: str = "") -> "Outbound":
        return cls(OutboundKind.ANSWER_CALLBACK, channel_id, text=text, callback_id=callback_id)


class Channel(ABC):
    """Chat channel base class

    Every channel implementation derives from this class.
    """

    def __init__(self):
        self._message_handler: Optional[Callable[[Message], Any]] = None
        self._connected = False

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        pass

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> bool:
        """Connect and start receiving events.

        Returns:
            Whether the connection succeeded
        """
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def deliver(self, action: Outbound) -> bool:
        """Perform one outbound action.

        Returns:
            Whether the action succeeded
        """
        pass

    def set_handler(self, handler: Callable[[Message], Any]):
        """Set the inbound event handler."""
        self._message_handler = handler

    async def _emit_message(self, message: Message):
        if self._message_handler:
            await self._message_handler(message)
