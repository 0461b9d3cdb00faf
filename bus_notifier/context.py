"""Application context: every long-lived component, built once and passed explicitly."""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from loguru import logger

from .channels.base import Message
from .config import Settings
from .registration.fsm import RegistrationFSM
from .scheduler.executor import ReminderExecutor
from .scheduler.service import DailyScheduler
from .services.channel_manager import ChannelManager
from .storage.job_store import JobStore
from .storage.state_store import StateStore
from .transit.arrival import ArrivalClient
from .transit.refdata import ReferenceData

logger = logger.bind(module="context")


@dataclass
class AppContext:
    settings: Settings
    clock: Callable[[], datetime]
    refdata: ReferenceData
    job_store: JobStore
    state_store: StateStore
    channels: ChannelManager
    arrivals: ArrivalClient
    scheduler: DailyScheduler
    fsm: RegistrationFSM

    async def on_message(self, message: Message) -> None:
        """Inbound handler: run the conversation turn and queue its replies."""
        for reply in await self.fsm.handle(message):
            self.channels.enqueue(reply)

    async def start(self) -> None:
        await self.job_store.initialize()
        await self.state_store.initialize()

        repaired = await self.job_store.reindex()
        if repaired:
            logger.warning(f"Weekday index repaired for {repaired} day(s)")

        self.channels.set_handler(self.on_message)
        self.channels.start_sender()
        await self.channels.connect_all()
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.shutdown()
        await self.channels.disconnect_all()
        await self.channels.stop_sender()
        await self.arrivals.close()
        await self.state_store.close()
        await self.job_store.close()


def build_context(
    settings: Settings,
    refdata: ReferenceData | None = None,
    clock: Callable[[], datetime] | None = None,
) -> AppContext:
    """Wire up every component from settings."""
    tz = ZoneInfo(settings.timezone)
    clock = clock or (lambda: datetime.now(tz))
    refdata = refdata or ReferenceData.from_yaml(settings.refdata_path)

    job_store = JobStore(settings.jobs_db_path)
    state_store = StateStore(settings.states_db_path)
    channels = ChannelManager()
    arrivals = ArrivalClient(
        url=settings.datamall_url,
        account_key=settings.datamall_account_key,
        clock=clock,
        timeout_seconds=settings.fetch_timeout_seconds,
    )
    executor = ReminderExecutor(arrivals=arrivals, outbox=channels, refdata=refdata)
    scheduler = DailyScheduler(
        job_store=job_store,
        executor=executor,
        timezone=settings.timezone,
        clock=clock,
    )
    fsm = RegistrationFSM(
        job_store=job_store,
        state_store=state_store,
        scheduler=scheduler,
        refdata=refdata,
        route_guide_url=settings.route_guide_url,
        clock=clock,
    )
    return AppContext(
        settings=settings,
        clock=clock,
        refdata=refdata,
        job_store=job_store,
        state_store=state_store,
        channels=channels,
        arrivals=arrivals,
        scheduler=scheduler,
        fsm=fsm,
    )
