"""Services"""
from .channel_manager import ChannelManager
from .router import Input, InputKind, InputRouter

__all__ = [
    "ChannelManager",
    "Input",
    "InputKind",
    "InputRouter",
]
