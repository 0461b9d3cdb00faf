"""Tests for arrival parsing, formatting and reference data."""
import pytest
from datetime import datetime
from zoneinfo import ZoneInfo
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from aiohttp import web
from aiohttp import test_utils

from bus_notifier.channels.base import OutboundKind
from bus_notifier.errors import UpstreamFault
from bus_notifier.scheduler.executor import ReminderExecutor
from bus_notifier.scheduler.models import ReminderJob
from bus_notifier.scheduler.types import ScheduledTime, Weekday
from bus_notifier.transit.arrival import ArrivalClient, ArrivalInfo, parse_arrival
from bus_notifier.transit.formatting import format_arrival_message, format_minutes
from bus_notifier.transit.refdata import ReferenceData

TZ = ZoneInfo("Asia/Singapore")
NOW = datetime(2024, 1, 15, 17, 20, tzinfo=TZ)


def payload(*services):
    return {"odata.metadata": "...", "BusStopCode": "43411", "Services": list(services)}


def service(no, *arrivals):
    entry = {"ServiceNo": no, "Operator": "SBST"}
    for key, value in zip(("NextBus", "NextBus2", "NextBus3"), arrivals):
        entry[key] = {"EstimatedArrival": value, "Load": "SEA"}
    return entry


class TestFormatMinutes:
    """Rendering of a single arrival slot."""

    def test_unknown_is_never_zero(self):
        assert format_minutes(None) == "N/A"

    def test_under_a_minute_is_arriving(self):
        assert format_minutes(0.4) == "Arr"
        assert format_minutes(0) == "Arr"
        assert format_minutes(-2.0) == "Arr"

    def test_rounding(self):
        assert format_minutes(5.6) == "6 mins"
        assert format_minutes(5.4) == "5 mins"
        assert format_minutes(1.2) == "1 min"
        assert format_minutes(1.5) == "2 mins"

    def test_message_layout(self):
        info = ArrivalInfo(stop_id="43411", service_id="157", minutes=(0.4, 5.6, None))
        assert format_arrival_message(info, stop_label="Opp Blk 123") == (
            "157 @ Opp Blk 123 (43411) | Arr | 6 mins | N/A"
        )

    def test_message_without_label(self):
        info = ArrivalInfo.unknown("43411", "157")
        assert format_arrival_message(info) == "157 @ 43411 | N/A | N/A | N/A"


class TestParseArrival:
    """Extraction of estimates from DataMall payloads."""

    def test_parses_three_slots(self):
        data = payload(
            service("506", "2024-01-15T17:30:00+08:00"),
            service("157", "2024-01-15T17:20:20+08:00", "2024-01-15T17:25:36+08:00", ""),
        )

        info = parse_arrival(data, "43411", "157", NOW)

        assert info.service_id == "157"
        assert info.minutes[0] == pytest.approx(1 / 3)
        assert info.minutes[1] == pytest.approx(5.6)
        assert info.minutes[2] is None

    def test_missing_slots_are_unknown(self):
        data = payload({"ServiceNo": "157"})
        info = parse_arrival(data, "43411", "157", NOW)
        assert info.minutes == (None, None, None)

    def test_service_not_in_payload(self):
        info = parse_arrival(payload(service("506", "")), "43411", "157", NOW)
        assert info.minutes == (None, None, None)

    def test_unparseable_estimate_is_unknown(self):
        info = parse_arrival(payload(service("157", "soon")), "43411", "157", NOW)
        assert info.minutes[0] is None

    def test_malformed_payload(self):
        with pytest.raises(UpstreamFault):
            parse_arrival({"Services": "nope"}, "43411", "157", NOW)


class TestArrivalClient:
    """HTTP behaviour against a local server."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        seen = {}

        async def handler(request):
            seen["key"] = request.headers.get("AccountKey")
            seen["query"] = dict(request.query)
            return web.json_response(payload(service("157", "2024-01-15T17:26:00+08:00")))

        app = web.Application()
        app.router.add_get("/BusArrival", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        client = ArrivalClient(str(server.make_url("/BusArrival")), "secret", clock=lambda: NOW)
        try:
            info = await client.fetch("43411", "157")
        finally:
            await client.close()
            await server.close()

        assert seen == {"key": "secret", "query": {"BusStopCode": "43411", "ServiceNo": "157"}}
        assert info.minutes[0] == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_http_error_is_upstream_fault(self):
        async def handler(request):
            return web.Response(status=500, text="down")

        app = web.Application()
        app.router.add_get("/BusArrival", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        client = ArrivalClient(str(server.make_url("/BusArrival")), "secret", clock=lambda: NOW)
        try:
            with pytest.raises(UpstreamFault):
                await client.fetch("43411", "157")
        finally:
            await client.close()
            await server.close()


class TestReferenceData:
    """Tests for the route allow-list."""

    @pytest.fixture
    def refdata(self, tmp_path):
        path = tmp_path / "refdata.yaml"
        path.write_text(
            'services: ["157", "NR1"]\n'
            "routes:\n"
            '  "157": ["43411", "43419"]\n'
            "  506: [43411]\n"
            "stops:\n"
            '  "43411": "Opp Blk 123"\n',
            encoding="utf-8",
        )
        return ReferenceData.from_yaml(path)

    def test_canonical_service(self, refdata):
        assert refdata.canonical_service(" 157 ") == "157"
        assert refdata.canonical_service("nr1") == "NR1"
        assert refdata.canonical_service("506") == "506"
        assert refdata.canonical_service("999") is None

    def test_serves(self, refdata):
        assert refdata.serves("157", "43419")
        assert refdata.serves("506", "43411")
        assert not refdata.serves("157", "10009")
        assert not refdata.serves("NR1", "43411")

    def test_stop_description(self, refdata):
        assert refdata.stop_description("43411") == "Opp Blk 123"
        assert refdata.stop_description("43419") == "43419"


class FakeArrivals:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def fetch(self, stop_id, service_id):
        if self.error:
            raise self.error
        return self.result


class FakeOutbox:
    def __init__(self):
        self.queued = []

    def enqueue(self, action):
        self.queued.append(action)


class TestReminderExecutor:
    """A fired reminder always produces a message."""

    job = ReminderJob("12345", "43411", "157", ScheduledTime(17, 20), Weekday.MONDAY)

    @pytest.mark.asyncio
    async def test_sends_arrivals(self):
        outbox = FakeOutbox()
        arrivals = FakeArrivals(ArrivalInfo("43411", "157", minutes=(2.0, 9.0, None)))
        refdata = ReferenceData(["157"], {"157": ["43411"]}, {"43411": "Opp Blk 123"})

        text = await ReminderExecutor(arrivals, outbox, refdata).execute(self.job)

        assert text == "157 @ Opp Blk 123 (43411) | 2 mins | 9 mins | N/A"
        assert len(outbox.queued) == 1
        assert outbox.queued[0].kind == OutboundKind.SEND
        assert outbox.queued[0].channel_id == "12345"

    @pytest.mark.asyncio
    async def test_upstream_fault_degrades_to_unknown(self):
        outbox = FakeOutbox()
        arrivals = FakeArrivals(error=UpstreamFault("timeout"))

        text = await ReminderExecutor(arrivals, outbox).execute(self.job)

        assert text == "157 @ 43411 | N/A | N/A | N/A"
        assert outbox.queued[0].text == text
