"""Telegram channel implementation"""
import asyncio
from typing import Optional, List

from loguru import logger
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .base import Channel, ChannelType, Keyboard, Message, Outbound, OutboundKind

logger = logger.bind(module="channels.telegram")


def parse_command(text: str) -> Optional[str]:
    """Command name from ``/register@SomeBot args`` style text, or None for plain text."""
    text = text.strip()
    if not text.startswith("/"):
        return None
    parts = text[1:].split()
    return parts[0].split("@")[0].lower() if parts else ""


def build_markup(keyboard: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    if not keyboard:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(label, callback_data=data) for label, data in row] for row in keyboard]
    )


class TelegramChannel(Channel):
    """Telegram channel

    Built on python-telegram-bot with long polling.
    """

    def __init__(
        self,
        bot_token: Optional[str],
        allowed_users: Optional[List[str]] = None,
    ):
        super().__init__()
        self.bot_token = bot_token
        self.allowed_users = allowed_users or []
        self._app: Optional[Application] = None
        self._bot = None
        self._polling_task: Optional[asyncio.Task] = None

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.TELEGRAM

    async def connect(self) -> bool:
        if not self.bot_token:
            logger.warning("Missing Telegram bot token, skipped")
            return False

        try:
            self._app = Application.builder().token(self.bot_token).build()
            self._bot = self._app.bot

            # Commands arrive as text too; the router tells them apart
            self._app.add_handler(MessageHandler(filters.TEXT, self._on_message))
            self._app.add_handler(CallbackQueryHandler(self._on_callback))

            self._polling_task = asyncio.create_task(self._start_polling())

            self._connected = True
            logger.info("Telegram connected")
            return True

        except Exception as e:
            logger.error(f"Telegram connect failed: {e}")
            return False

    async def _start_polling(self):
        try:
            await self._app.initialize()
            await self._app.start()
            await self._app.updater.start_polling(drop_pending_updates=True)
            me = await self._bot.get_me()
            logger.info(f"Authorized on account {me.username}")
        except Exception as e:
            logger.error(f"Telegram polling error: {e}")
            self._connected = False

    async def disconnect(self):
        if self._app:
            try:
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()
            except Exception as e:
                logger.error(f"Telegram disconnect error: {e}")

        self._connected = False
        logger.info("Telegram disconnected")

    async def deliver(self, action: Outbound) -> bool:
        if not self._bot:
            logger.warning("Telegram not connected")
            return False

        try:
            if action.kind == OutboundKind.SEND:
                await self._bot.send_message(
                    chat_id=int(action.channel_id),
                    text=action.text,
                    reply_markup=build_markup(action.keyboard),
                )
            elif action.kind == OutboundKind.EDIT:
                await self._bot.edit_message_text(
                    chat_id=int(action.channel_id),
                    message_id=int(action.message_id),
                    text=action.text,
                    reply_markup=build_markup(action.keyboard),
                )
            elif action.kind == OutboundKind.ANSWER_CALLBACK:
                await self._bot.answer_callback_query(
                    callback_query_id=action.callback_id,
                    text=action.text or None,
                )
            return True

        except Exception as e:
            logger.error(f"Telegram {action.kind.value} to {action.channel_id} failed: {e}")
            return False

    def _allowed(self, user_id: str) -> bool:
        if self.allowed_users and user_id not in self.allowed_users:
            logger.info(f"User {user_id} not in allowlist")
            return False
        return True

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:  # noqa: ARG002
        msg = update.message
        if not msg or not msg.text:
            return

        user = msg.from_user
        user_id = str(user.id) if user else ""
        if not self._allowed(user_id):
            return

        message = Message(
            channel=ChannelType.TELEGRAM,
            channel_id=str(msg.chat_id),
            sender_id=user_id,
            content=msg.text,
            message_id=str(msg.message_id),
            command=parse_command(msg.text),
            timestamp=msg.date.timestamp() if msg.date else 0,
            metadata={"chat_type": msg.chat.type},
        )
        await self._emit_message(message)

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:  # noqa: ARG002
        query = update.callback_query
        if not query or not query.message:
            return

        user_id = str(query.from_user.id) if query.from_user else ""
        if not self._allowed(user_id):
            await query.answer()
            return

        message = Message(
            channel=ChannelType.TELEGRAM,
            channel_id=str(query.message.chat.id),
            sender_id=user_id,
            message_id=str(query.message.message_id),
            callback_id=query.id,
            callback_data=query.data,
        )
        await self._emit_message(message)
