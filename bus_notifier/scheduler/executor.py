"""Reminder executor: runs when a live trigger fires.

Fetches live arrivals for the job's (stop, service), formats the message and
queues it for delivery. A failed fetch degrades to an all-unknown message;
it never suppresses the notification or affects other triggers.
"""
from typing import Protocol

from loguru import logger

from ..channels.base import Outbound
from ..errors import UpstreamFault
from ..transit.arrival import ArrivalInfo
from ..transit.formatting import format_arrival_message
from ..transit.refdata import ReferenceData
from .models import ReminderJob

logger = logger.bind(module="scheduler.executor")


# ============== Protocol Definitions ==============

class ArrivalFetcher(Protocol):
    """Protocol for the live arrival query."""

    async def fetch(self, stop_id: str, service_id: str) -> ArrivalInfo:
        ...


class Outbox(Protocol):
    """Protocol for queueing outbound chat actions."""

    def enqueue(self, action: Outbound) -> None:
        ...


class ReminderExecutor:
    """Bridge between fired triggers and outbound delivery."""

    def __init__(
        self,
        arrivals: ArrivalFetcher,
        outbox: Outbox,
        refdata: ReferenceData | None = None,
    ):
        self.arrivals = arrivals
        self.outbox = outbox
        self.refdata = refdata

    async def execute(self, job: ReminderJob) -> str:
        """Fetch, format and enqueue the reminder for ``job``.

        Returns:
            The message text that was queued
        """
        logger.info(f"Firing reminder {job.identity}")
        stop_label = self.refdata.stop_description(job.stop_id) if self.refdata else job.stop_id

        try:
            info = await self.arrivals.fetch(job.stop_id, job.service_id)
        except UpstreamFault as e:
            logger.warning(f"Arrival fetch failed for {job.service_id} @ {job.stop_id}: {e}")
            info = ArrivalInfo.unknown(job.stop_id, job.service_id, stop_label)

        text = format_arrival_message(info, stop_label=stop_label)
        self.outbox.enqueue(Outbound.send(job.owner_id, text))
        return text
