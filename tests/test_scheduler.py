"""Tests for the scheduler module."""
import asyncio
import pytest
from datetime import date, datetime
from zoneinfo import ZoneInfo
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from bus_notifier.errors import StorageFault, ValidationError
from bus_notifier.scheduler.models import ReminderJob
from bus_notifier.scheduler.schedule import fire_time_on, fires_later_today, join_days, parse_time
from bus_notifier.scheduler.service import MIDNIGHT_TRIGGER_ID, RETRY_TRIGGER_ID, DailyScheduler
from bus_notifier.scheduler.types import ScheduledTime, Weekday
from bus_notifier.storage.job_store import JobStore

TZ = ZoneInfo("Asia/Singapore")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingExecutor:
    def __init__(self):
        self.fired = []

    async def execute(self, job):
        self.fired.append(job)
        return ""


class FlakyJobSource:
    def __init__(self, store):
        self.store = store
        self.failing = False

    async def get_jobs_by_weekday(self, weekday):
        if self.failing:
            raise StorageFault("database is locked")
        return await self.store.get_jobs_by_weekday(weekday)


class YieldingJobSource:
    """Hands control back to the event loop in the middle of every read."""

    def __init__(self, jobs):
        self.jobs = list(jobs)

    async def get_jobs_by_weekday(self, weekday):
        snapshot = [j for j in self.jobs if j.weekday == weekday]
        for _ in range(3):
            await asyncio.sleep(0)
        return snapshot


def make_job(owner="a", hour=8, minute=0, day=Weekday.TUESDAY, service="157"):
    return ReminderJob(
        owner_id=owner,
        stop_id="43411",
        service_id=service,
        scheduled_time=ScheduledTime(hour, minute),
        weekday=day,
    )


def armed_ids(daily: DailyScheduler) -> set[str]:
    return {job.id for job in daily.scheduler.get_jobs()}


class TestParseTime:
    """Tests for hh:mm parsing."""

    def test_valid_times(self):
        assert parse_time("08:30") == ScheduledTime(8, 30)
        assert parse_time(" 7:05 ") == ScheduledTime(7, 5)
        assert parse_time("23:59") == ScheduledTime(23, 59)
        assert parse_time("0:0") == ScheduledTime(0, 0)

    @pytest.mark.parametrize("text", ["", "8", "8.30", "830", "ab:cd", "08:30pm", "-1:30"])
    def test_malformed(self, text):
        with pytest.raises(ValidationError):
            parse_time(text)

    @pytest.mark.parametrize("text", ["24:00", "12:60", "99:99"])
    def test_out_of_range(self, text):
        with pytest.raises(ValidationError, match="Hours go from 00 to 23"):
            parse_time(text)


class TestScheduleHelpers:
    """Tests for time and weekday helpers."""

    def test_scheduled_time_str(self):
        assert str(ScheduledTime(8, 5)) == "08:05"

    def test_scheduled_time_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            ScheduledTime(24, 0)

    def test_weekday_matches_calendar(self):
        assert Weekday.of(date(2024, 1, 15)) == Weekday.MONDAY
        assert Weekday.of(date(2024, 1, 21)) == Weekday.SUNDAY

    def test_weekday_labels(self):
        assert Weekday.from_label("wednesday") == Weekday.WEDNESDAY
        assert Weekday.SATURDAY.label == "Saturday"
        assert Weekday.SATURDAY.short == "Sat"
        with pytest.raises(ValueError):
            Weekday.from_label("Funday")

    def test_join_days_is_monday_first(self):
        days = [Weekday.SUNDAY, Weekday.WEDNESDAY, Weekday.MONDAY]
        assert join_days(days) == "Monday, Wednesday, Sunday"

    def test_fires_later_today_counts_current_minute(self):
        now = datetime(2024, 1, 15, 8, 30, 45, tzinfo=TZ)
        assert fires_later_today(ScheduledTime(8, 30), now)
        assert fires_later_today(ScheduledTime(9, 0), now)
        assert not fires_later_today(ScheduledTime(8, 29), now)

    def test_fire_time_on(self):
        run_at = fire_time_on(ScheduledTime(17, 20), date(2024, 1, 15), TZ)
        assert run_at == datetime(2024, 1, 15, 17, 20, tzinfo=TZ)


class TestReminderJob:
    """Tests for the ReminderJob model."""

    def test_describe(self):
        job = make_job(day=Weekday.MONDAY, hour=8, minute=30)
        assert job.describe() == "Monday - 08:30 - Bus 157 @ 43411"

    def test_serialization(self):
        job = make_job()
        assert ReminderJob.from_dict(job.to_dict()) == job

    def test_trigger_id_follows_identity(self):
        assert make_job().trigger_id == make_job().trigger_id
        assert make_job().trigger_id != make_job(minute=1).trigger_id


class TestDailyScheduler:
    """Tests for the live trigger set. The APScheduler instance is never started."""

    @pytest.fixture
    def store(self, tmp_path):
        return JobStore(tmp_path / "job.db")

    @pytest.fixture
    def clock(self):
        return FakeClock(datetime(2024, 1, 16, 0, 0, tzinfo=TZ))  # Tuesday midnight

    @pytest.fixture
    def executor(self):
        return RecordingExecutor()

    @pytest.fixture
    def daily(self, store, clock, executor):
        return DailyScheduler(store, executor, timezone="Asia/Singapore", clock=clock)

    @pytest.mark.asyncio
    async def test_midnight_rebuild_replaces_live_set(self, store, clock, daily):
        """After a rebuild the live set is exactly today's stored jobs."""
        monday = make_job(owner="a", hour=9, day=Weekday.MONDAY)
        tue_a = make_job(owner="a", hour=8, day=Weekday.TUESDAY)
        tue_b = make_job(owner="b", hour=0, minute=0, day=Weekday.TUESDAY)
        await store.store_jobs([monday, tue_a, tue_b])

        clock.now = datetime(2024, 1, 15, 7, 0, tzinfo=TZ)
        assert await daily.rebuild() == 1
        assert daily.live_jobs() == [monday]

        clock.now = datetime(2024, 1, 16, 0, 0, tzinfo=TZ)
        assert await daily.rebuild() == 2

        assert daily.today == Weekday.TUESDAY
        assert {j.identity for j in daily.live_jobs()} == {tue_a.identity, tue_b.identity}
        assert armed_ids(daily) == {tue_a.trigger_id, tue_b.trigger_id}

    @pytest.mark.asyncio
    async def test_rebuild_skips_passed_times(self, store, clock, daily):
        early = make_job(hour=6, minute=59)
        late = make_job(hour=7, minute=0)
        await store.store_jobs([early, late])

        clock.now = datetime(2024, 1, 16, 7, 0, 30, tzinfo=TZ)
        assert await daily.rebuild() == 1
        assert daily.live_jobs() == [late]

    @pytest.mark.asyncio
    async def test_trigger_runs_at_local_time(self, store, daily):
        job = make_job(hour=17, minute=20)
        await store.store_job(job)
        await daily.rebuild()

        trigger = daily.scheduler.get_job(job.trigger_id).trigger
        assert trigger.run_date == datetime(2024, 1, 16, 17, 20, tzinfo=TZ)

    @pytest.mark.asyncio
    async def test_add_to_today(self, daily):
        await daily.rebuild()
        job = make_job(hour=18)

        assert await daily.add_to_today(job) is True
        assert daily.live_jobs() == [job]
        assert armed_ids(daily) == {job.trigger_id}

    @pytest.mark.asyncio
    async def test_add_to_today_ignores_other_weekdays(self, daily):
        await daily.rebuild()

        assert await daily.add_to_today(make_job(day=Weekday.WEDNESDAY)) is False
        assert daily.live_jobs() == []

    @pytest.mark.asyncio
    async def test_add_after_rebuild_does_not_duplicate(self, store, daily):
        """A job both stored before the rebuild and added afterwards fires once."""
        job = make_job(hour=12)
        await store.store_job(job)
        await daily.rebuild()

        await daily.add_to_today(job)

        assert daily.live_jobs() == [job]
        assert [j.id for j in daily.scheduler.get_jobs()] == [job.trigger_id]

    @pytest.mark.asyncio
    async def test_remove_from_today(self, store, daily):
        job = make_job(hour=12)
        await store.store_job(job)
        await daily.rebuild()

        assert await daily.remove_from_today(job) is True
        assert daily.live_jobs() == []
        assert daily.scheduler.get_job(job.trigger_id) is None
        assert await daily.remove_from_today(job) is False

    @pytest.mark.asyncio
    async def test_fired_job_leaves_live_set(self, store, daily, executor):
        job = make_job(hour=12)
        await store.store_job(job)
        await daily.rebuild()

        await daily._fire(job)

        assert executor.fired == [job]
        assert daily.live_jobs() == []

    @pytest.mark.asyncio
    async def test_start_arms_midnight_rebuild(self, store, daily, monkeypatch):
        started = []
        monkeypatch.setattr(daily.scheduler, "start", lambda *a, **kw: started.append(True))
        await store.store_job(make_job(hour=8))

        await daily.start()

        trigger = daily.scheduler.get_job(MIDNIGHT_TRIGGER_ID).trigger
        assert str(trigger.fields[trigger.FIELD_NAMES.index("hour")]) == "0"
        assert str(trigger.fields[trigger.FIELD_NAMES.index("minute")]) == "0"
        assert started == [True]
        assert len(daily.live_jobs()) == 1


class TestRebuildFailure:
    """A store failure during rebuild costs one attempt, not the day."""

    @pytest.fixture
    def store(self, tmp_path):
        return JobStore(tmp_path / "job.db")

    @pytest.mark.asyncio
    async def test_failed_midnight_rebuild_rolls_over_and_retries(self, store):
        monday = make_job(hour=9, day=Weekday.MONDAY)
        stored = make_job(hour=8, day=Weekday.TUESDAY)
        await store.store_jobs([monday, stored])
        source = FlakyJobSource(store)
        clock = FakeClock(datetime(2024, 1, 15, 7, 0, tzinfo=TZ))
        daily = DailyScheduler(source, RecordingExecutor(), clock=clock)
        await daily.rebuild()

        clock.now = datetime(2024, 1, 16, 0, 0, tzinfo=TZ)
        source.failing = True
        assert await daily.rebuild() == 0

        assert daily.today == Weekday.TUESDAY
        assert daily.live_jobs() == []
        assert monday.trigger_id not in armed_ids(daily)
        retry = daily.scheduler.get_job(RETRY_TRIGGER_ID)
        assert retry.trigger.run_date == datetime(2024, 1, 16, 0, 1, tzinfo=TZ)

        added = make_job(owner="b", hour=9, day=Weekday.TUESDAY)
        assert await daily.add_to_today(added) is True
        await store.store_job(added)

        source.failing = False
        assert await daily.rebuild() == 2

        assert {j.identity for j in daily.live_jobs()} == {stored.identity, added.identity}
        assert daily.scheduler.get_job(RETRY_TRIGGER_ID) is None

    @pytest.mark.asyncio
    async def test_repeated_failures_keep_one_retry(self, store):
        source = FlakyJobSource(store)
        source.failing = True
        clock = FakeClock(datetime(2024, 1, 16, 0, 0, tzinfo=TZ))
        daily = DailyScheduler(source, RecordingExecutor(), clock=clock)

        await daily.rebuild()
        clock.now = datetime(2024, 1, 16, 0, 1, tzinfo=TZ)
        await daily.rebuild()

        ids = [job.id for job in daily.scheduler.get_jobs()]
        assert ids.count(RETRY_TRIGGER_ID) == 1
        assert daily.scheduler.get_job(RETRY_TRIGGER_ID).trigger.run_date == datetime(
            2024, 1, 16, 0, 2, tzinfo=TZ
        )

    @pytest.mark.asyncio
    async def test_start_survives_unreadable_store(self, store, monkeypatch):
        source = FlakyJobSource(store)
        source.failing = True
        clock = FakeClock(datetime(2024, 1, 16, 6, 0, tzinfo=TZ))
        daily = DailyScheduler(source, RecordingExecutor(), clock=clock)
        monkeypatch.setattr(daily.scheduler, "start", lambda *a, **kw: None)

        await daily.start()

        assert armed_ids(daily) == {MIDNIGHT_TRIGGER_ID, RETRY_TRIGGER_ID}


class TestConcurrentRebuild:
    """Same-day additions racing a rebuild."""

    @pytest.mark.asyncio
    async def test_add_during_rebuild_is_kept_once(self):
        stale = make_job(hour=9, day=Weekday.MONDAY)
        stored = make_job(hour=8)
        fresh = make_job(owner="b", hour=9)
        source = YieldingJobSource([stale, stored])
        clock = FakeClock(datetime(2024, 1, 15, 7, 0, tzinfo=TZ))
        daily = DailyScheduler(source, RecordingExecutor(), clock=clock)
        await daily.rebuild()

        clock.now = datetime(2024, 1, 16, 0, 0, tzinfo=TZ)
        results = await asyncio.gather(
            daily.rebuild(),
            daily.add_to_today(fresh),
            daily.add_to_today(stored),
        )

        assert results == [1, True, True]
        assert {j.identity for j in daily.live_jobs()} == {stored.identity, fresh.identity}
        ids = [job.id for job in daily.scheduler.get_jobs()]
        assert sorted(ids) == sorted({stored.trigger_id, fresh.trigger_id})
