"""Chat channels"""
from .base import Channel, ChannelType, Keyboard, Message, Outbound, OutboundKind

__all__ = [
    "Channel",
    "ChannelType",
    "Keyboard",
    "Message",
    "Outbound",
    "OutboundKind",
]
