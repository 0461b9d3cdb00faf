"""Process entry point: bus-notifier."""
import asyncio
import signal
import sys

from loguru import logger

from .channels.telegram import TelegramChannel
from .config import Settings
from .context import build_context


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[module]} | {message}",
    )
    logger.configure(extra={"module": "main"})


async def run(settings: Settings) -> None:
    ctx = build_context(settings)
    ctx.channels.register(
        TelegramChannel(
            bot_token=settings.telegram_bot_token,
            allowed_users=settings.telegram_allowed_users,
        )
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    await ctx.start()
    logger.info("Bus notifier running")
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        await ctx.stop()


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)

    missing = [
        name for name, value in (
            ("TELEGRAM_API_TOKEN", settings.telegram_bot_token),
            ("LTA_API_TOKEN", settings.datamall_account_key),
        ) if not value
    ]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
