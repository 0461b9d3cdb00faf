"""LTA DataMall bus arrival client.

One query per (stop, service) returning up to three estimated arrivals.
A slot with no estimate is ``None`` ("unknown"), never a numeric zero.
"""
import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import aiohttp
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import UpstreamFault

logger = logger.bind(module="transit.arrival")

ARRIVAL_SLOTS = 3


# ============== Payload models ==============

class NextBus(BaseModel):
    """One estimated arrival. DataMall sends empty strings when unknown."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    estimated_arrival: str = Field(default="", alias="EstimatedArrival")

    def minutes_from(self, now: datetime) -> float | None:
        if not self.estimated_arrival:
            return None
        try:
            arrival = datetime.fromisoformat(self.estimated_arrival)
        except ValueError:
            logger.warning(f"Unparseable arrival estimate: {self.estimated_arrival!r}")
            return None
        if arrival.tzinfo is None:
            arrival = arrival.replace(tzinfo=now.tzinfo)
        return (arrival - now).total_seconds() / 60


class ServiceArrival(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    service_no: str = Field(alias="ServiceNo")
    next_bus: NextBus = Field(default_factory=NextBus, alias="NextBus")
    next_bus_2: NextBus = Field(default_factory=NextBus, alias="NextBus2")
    next_bus_3: NextBus = Field(default_factory=NextBus, alias="NextBus3")


class BusArrivalPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    bus_stop_code: str = Field(default="", alias="BusStopCode")
    services: list[ServiceArrival] = Field(default_factory=list, alias="Services")


# ============== Result ==============

@dataclass(frozen=True)
class ArrivalInfo:
    """Live arrival estimates for one service at one stop."""
    stop_id: str
    service_id: str
    stop_label: str = ""
    minutes: tuple[float | None, ...] = field(default=(None,) * ARRIVAL_SLOTS)

    @classmethod
    def unknown(cls, stop_id: str, service_id: str, stop_label: str = "") -> "ArrivalInfo":
        return cls(stop_id=stop_id, service_id=service_id, stop_label=stop_label or stop_id)


def parse_arrival(
    data: dict[str, Any],
    stop_id: str,
    service_id: str,
    now: datetime,
) -> ArrivalInfo:
    """Extract arrival estimates for ``service_id`` from a DataMall payload.

    Raises:
        UpstreamFault: If the payload does not match the expected shape
    """
    try:
        payload = BusArrivalPayload.model_validate(data)
    except PydanticValidationError as e:
        raise UpstreamFault(f"Invalid arrival payload for {service_id} @ {stop_id}: {e}") from e

    label = payload.bus_stop_code or stop_id
    for service in payload.services:
        if service.service_no.upper() != service_id.upper():
            continue
        minutes = tuple(
            bus.minutes_from(now)
            for bus in (service.next_bus, service.next_bus_2, service.next_bus_3)
        )
        return ArrivalInfo(stop_id=stop_id, service_id=service_id, stop_label=label, minutes=minutes)

    logger.info(f"No arrival data for service {service_id} @ {stop_id}")
    return ArrivalInfo.unknown(stop_id, service_id, label)


class ArrivalClient:
    """Fetches live arrivals from DataMall over a shared aiohttp session."""

    def __init__(
        self,
        url: str,
        account_key: str | None,
        clock: Callable[[], datetime],
        timeout_seconds: float = 10.0,
    ):
        self.url = url
        self.account_key = account_key
        self.clock = clock
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"AccountKey": self.account_key or "", "accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, stop_id: str, service_id: str) -> ArrivalInfo:
        """Fetch arrival estimates for one service at one stop.

        Raises:
            UpstreamFault: On network errors, timeouts, HTTP errors or bad payloads
        """
        session = await self._get_session()
        params = {"BusStopCode": stop_id, "ServiceNo": service_id}
        try:
            async with session.get(self.url, params=params) as resp:
                if resp.status >= 400:
                    raise UpstreamFault(
                        f"Arrival request for {service_id} @ {stop_id} failed with status {resp.status}"
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamFault(f"Arrival request for {service_id} @ {stop_id} failed: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamFault(f"Unexpected arrival payload for {service_id} @ {stop_id}")
        return parse_arrival(data, stop_id, service_id, self.clock())
