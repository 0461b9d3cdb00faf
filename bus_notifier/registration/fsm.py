"""Registration conversation state machine.

Walks an owner through service -> stop -> weekdays -> time, then commits one
reminder job per selected weekday. Also drives the delete flow.

Every turn is a read-modify-write of the owner's stored state, serialized
per owner. Rejected input (ValidationError) re-prompts without touching
stored state; a StorageFault is answered with an apology and leaves the
stored state as it was before the turn.
"""
import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol

from loguru import logger

from ..channels.base import Message, Outbound
from ..errors import StorageFault, ValidationError
from ..scheduler.models import ReminderJob
from ..scheduler.schedule import join_days, parse_time
from ..scheduler.types import Weekday
from ..services.router import Input, InputKind, InputRouter
from ..storage.job_store import JobStore
from ..storage.state_store import StateStore
from ..transit.refdata import ReferenceData
from . import prompts
from .states import (
    AwaitDays,
    AwaitDeleteSelection,
    AwaitRoute,
    AwaitStop,
    AwaitTime,
    RegistrationState,
    Stage,
)

logger = logger.bind(module="registration.fsm")

IDLE = "idle"

Handler = Callable[[Input, RegistrationState | None, Message], Awaitable[list[Outbound]]]


class TodaySchedule(Protocol):
    """The part of the daily scheduler the conversation needs."""

    async def add_to_today(self, job: ReminderJob) -> bool:
        ...

    async def remove_from_today(self, job: ReminderJob) -> bool:
        ...


class RegistrationFSM:
    """Per-owner registration and deletion conversations."""

    def __init__(
        self,
        job_store: JobStore,
        state_store: StateStore,
        scheduler: TodaySchedule,
        refdata: ReferenceData,
        route_guide_url: str,
        clock: Callable[[], datetime] | None = None,
        router: InputRouter | None = None,
    ):
        self.job_store = job_store
        self.state_store = state_store
        self.scheduler = scheduler
        self.refdata = refdata
        self.route_guide_url = route_guide_url
        self.clock = clock or datetime.now
        self.router = router or InputRouter()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._transitions: dict[tuple[str, InputKind], Handler] = {
            (IDLE, InputKind.START_REGISTER): self._start_register,
            (IDLE, InputKind.START_DELETE): self._start_delete,
            (Stage.AWAIT_ROUTE.value, InputKind.FREE_TEXT): self._on_route,
            (Stage.AWAIT_STOP.value, InputKind.FREE_TEXT): self._on_stop,
            (Stage.AWAIT_DAYS.value, InputKind.DAY_TOGGLE): self._on_day_toggle,
            (Stage.AWAIT_DAYS.value, InputKind.DONE): self._on_days_done,
            (Stage.AWAIT_TIME.value, InputKind.FREE_TEXT): self._on_time,
            (Stage.AWAIT_DELETE_SELECTION.value, InputKind.FREE_TEXT): self._on_delete_selection,
        }

    @asynccontextmanager
    async def _owner_turn(self, owner_id: str) -> AsyncIterator[None]:
        """Serialize turns for one owner. The lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        self._lock_users[owner_id] = self._lock_users.get(owner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[owner_id] -= 1
            if not self._lock_users[owner_id]:
                del self._lock_users[owner_id]
                del self._locks[owner_id]

    async def handle(self, message: Message) -> list[Outbound]:
        """Process one inbound event and return the replies to deliver."""
        inp = self.router.route(message)
        owner_id = inp.owner_id

        async with self._owner_turn(owner_id):
            try:
                replies = await self._dispatch(inp, message)
            except ValidationError as e:
                replies = [self._reject(message, str(e))]
            except StorageFault as e:
                logger.exception(f"Storage fault while handling {inp.kind.value} for {owner_id}: {e}")
                replies = [Outbound.send(owner_id, prompts.APOLOGY)]

        if message.is_callback and not any(r.callback_id for r in replies):
            replies.append(Outbound.answer_callback(owner_id, message.callback_id))
        return replies

    async def _dispatch(self, inp: Input, message: Message) -> list[Outbound]:
        owner_id = inp.owner_id

        if inp.kind == InputKind.CANCEL:
            await self.state_store.delete(owner_id)
            return [Outbound.send(owner_id, prompts.CANCELLED)]

        state = await self.state_store.get(owner_id)
        stage = state.stage if state else IDLE

        handler = self._transitions.get((stage, inp.kind))
        if handler is not None:
            return await handler(inp, state, message)

        if state is None:
            return [Outbound.send(owner_id, prompts.HELP)]

        logger.warning(f"Unhandled input {inp.kind.value} at stage {stage} for {owner_id}")
        return [Outbound.send(owner_id, prompts.FALLBACK)]

    @staticmethod
    def _reject(message: Message, prompt: str) -> Outbound:
        # Button presses get the correction as a callback toast
        if message.is_callback:
            return Outbound.answer_callback(message.channel_id, message.callback_id, prompt)
        return Outbound.send(message.channel_id, prompt)

    # ============== Registration ==============

    async def _start_register(self, inp: Input, state, message) -> list[Outbound]:
        await self.state_store.save(inp.owner_id, AwaitRoute())
        return [Outbound.send(inp.owner_id, prompts.ASK_ROUTE)]

    async def _on_route(self, inp: Input, state: AwaitRoute, message) -> list[Outbound]:
        service_id = self.refdata.canonical_service(inp.text)
        if service_id is None:
            raise ValidationError(prompts.INVALID_ROUTE)

        await self.state_store.save(inp.owner_id, AwaitStop(service_id=service_id))
        return [Outbound.send(inp.owner_id, prompts.ask_stop(service_id, self.route_guide_url))]

    async def _on_stop(self, inp: Input, state: AwaitStop, message) -> list[Outbound]:
        stop_id = inp.text.strip()
        if not self.refdata.serves(state.service_id, stop_id):
            raise ValidationError(prompts.invalid_stop(state.service_id, self.route_guide_url))

        await self.state_store.save(
            inp.owner_id, AwaitDays(service_id=state.service_id, stop_id=stop_id)
        )
        return [
            Outbound.send(inp.owner_id, prompts.ask_days(), keyboard=prompts.weekday_keyboard())
        ]

    async def _on_day_toggle(self, inp: Input, state: AwaitDays, message: Message) -> list[Outbound]:
        new_state = state.toggle(inp.weekday)
        await self.state_store.save(inp.owner_id, new_state)

        selected = new_state.selected_days
        return [
            Outbound.edit(
                inp.owner_id,
                message.message_id,
                prompts.ask_days(selected),
                keyboard=prompts.weekday_keyboard(selected),
            ),
            Outbound.answer_callback(inp.owner_id, message.callback_id),
        ]

    async def _on_days_done(self, inp: Input, state: AwaitDays, message: Message) -> list[Outbound]:
        days = state.selected_days
        if not days:
            raise ValidationError(prompts.NO_DAYS_SELECTED)

        await self.state_store.save(
            inp.owner_id,
            AwaitTime(service_id=state.service_id, stop_id=state.stop_id, days=tuple(days)),
        )
        return [
            # Drop the keyboard so stale toggles cannot arrive later
            Outbound.edit(inp.owner_id, message.message_id, f"Days: {join_days(days)}"),
            Outbound.answer_callback(inp.owner_id, message.callback_id),
            Outbound.send(inp.owner_id, prompts.ASK_TIME),
        ]

    async def _on_time(self, inp: Input, state: AwaitTime, message) -> list[Outbound]:
        try:
            scheduled_time = parse_time(inp.text)
        except ValidationError as e:
            raise ValidationError(prompts.invalid_time(str(e))) from e

        jobs = [
            ReminderJob(
                owner_id=inp.owner_id,
                stop_id=state.stop_id,
                service_id=state.service_id,
                scheduled_time=scheduled_time,
                weekday=day,
            )
            for day in state.days
        ]
        await self.job_store.store_jobs(jobs)

        today = Weekday.of(self.clock())
        for job in jobs:
            if job.weekday == today:
                await self.scheduler.add_to_today(job)

        await self.state_store.delete(inp.owner_id)
        logger.info(f"Registered {len(jobs)} reminders for {inp.owner_id}")

        stop_label = self.refdata.stop_description(state.stop_id)
        return [
            Outbound.send(
                inp.owner_id,
                prompts.registered(state.service_id, stop_label, state.stop_id, jobs),
            )
        ]

    # ============== Deletion ==============

    async def _start_delete(self, inp: Input, state, message) -> list[Outbound]:
        jobs = await self.job_store.get_jobs_by_owner(inp.owner_id)
        if not jobs:
            return [Outbound.send(inp.owner_id, prompts.NO_ALARMS)]

        await self.state_store.save(inp.owner_id, AwaitDeleteSelection())
        return [Outbound.send(inp.owner_id, prompts.job_listing(jobs))]

    async def _on_delete_selection(self, inp: Input, state, message) -> list[Outbound]:
        jobs = await self.job_store.get_jobs_by_owner(inp.owner_id)
        try:
            index = int(inp.text.strip())
        except ValueError:
            raise ValidationError(prompts.INVALID_SELECTION) from None
        if not 1 <= index <= len(jobs):
            raise ValidationError(prompts.INVALID_SELECTION)

        job = jobs[index - 1]
        await self.job_store.delete_job(job)
        await self.scheduler.remove_from_today(job)

        remaining = await self.job_store.get_jobs_by_owner(inp.owner_id)
        if not remaining:
            await self.state_store.delete(inp.owner_id)
            return [Outbound.send(inp.owner_id, prompts.ALL_ALARMS_DELETED)]
        return [Outbound.send(inp.owner_id, prompts.job_listing(remaining))]
