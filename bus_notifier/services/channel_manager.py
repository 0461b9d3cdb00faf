"""Channel manager and outbound delivery queue."""
import asyncio
from typing import Dict, Optional, Callable, Any, Union

from loguru import logger

from ..channels.base import Channel, ChannelType, Message, Outbound

logger = logger.bind(module="services.channel_manager")


class ChannelManager:
    """Channel manager

    Owns channel lifecycles, fans inbound events into one handler, and
    delivers outbound actions from an unbounded queue drained by a single
    sender loop. Producers never wait on network I/O; actions for one chat
    are delivered in the order they were enqueued.
    """

    def __init__(self, default_channel: ChannelType = ChannelType.TELEGRAM):
        self.channels: Dict[ChannelType, Channel] = {}
        self.default_channel = default_channel
        self._message_handler: Optional[Callable[[Message], Any]] = None
        self._outbox: "asyncio.Queue[tuple[ChannelType, Optional[Outbound]]]" = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task] = None

    def register(self, channel: Channel):
        """Register a channel.

        Args:
            channel: Channel instance
        """
        channel.set_handler(self._on_message)
        self.channels[channel.channel_type] = channel
        logger.info(f"Channel registered: {channel.channel_type.value}")

    def set_handler(self, handler: Callable[[Message], Any]):
        """Set the unified inbound handler."""
        self._message_handler = handler

    async def _on_message(self, message: Message):
        if self._message_handler:
            await self._message_handler(message)

    async def connect_all(self):
        for channel in self.channels.values():
            try:
                await channel.connect()
            except Exception as e:
                logger.error(f"Failed to connect {channel.channel_type.value}: {e}")

    async def disconnect_all(self):
        for channel in self.channels.values():
            try:
                await channel.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect {channel.channel_type.value}: {e}")

    # ============== Outbound queue ==============

    def enqueue(
        self,
        action: Outbound,
        channel_type: Union[ChannelType, str, None] = None,
    ) -> None:
        """Queue an outbound action without waiting for delivery."""
        if isinstance(channel_type, str):
            channel_type = ChannelType(channel_type)
        self._outbox.put_nowait((channel_type or self.default_channel, action))

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def start_sender(self) -> asyncio.Task:
        if self._sender_task is None or self._sender_task.done():
            self._sender_task = asyncio.create_task(self.run_sender())
        return self._sender_task

    async def stop_sender(self) -> None:
        """Drain what is queued, then stop the sender loop."""
        if self._sender_task is None:
            return
        self._outbox.put_nowait((self.default_channel, None))
        await self._sender_task
        self._sender_task = None

    async def run_sender(self) -> None:
        """Deliver queued actions one at a time until a stop marker arrives."""
        while True:
            channel_type, action = await self._outbox.get()
            try:
                if action is None:
                    return
                await self._deliver(channel_type, action)
            finally:
                self._outbox.task_done()

    async def _deliver(self, channel_type: ChannelType, action: Outbound) -> bool:
        channel = self.channels.get(channel_type)
        if not channel:
            logger.warning(f"Channel not registered: {channel_type.value}")
            return False

        if not channel.is_connected:
            logger.warning(f"Channel not connected: {channel_type.value}")
            return False

        try:
            delivered = await channel.deliver(action)
        except Exception as e:
            logger.error(f"Delivery to {action.channel_id} via {channel_type.value} failed: {e}")
            return False
        if not delivered:
            logger.error(f"Delivery to {action.channel_id} via {channel_type.value} failed")
        return delivered
