from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from adapters.meraki_api import MerakiApi
from adapters.webex import WebexRelay, build_webex_client
from core.config import AppSettings
from core.domain.commands import Command
from core.domain.models import StatusLevel
from core.services.polling import DeviceHealthPoller, RelayPoller, _Poller

from conftest import FakeSleep, RecordingSink, Router

DEVICES = "/organizations/org-1/devices"
STATUSES = "/organizations/org-1/devices/statuses"


class FakeDispatcher:
    """Records what the pollers hand over."""

    def __init__(self) -> None:
        self.busy = False
        self.dispatched: list[Command] = []
        self.conversed: list[tuple[str, str | None]] = []
        self.busy_after_converse = False

    async def dispatch(self, command: Command, *, depth: int = 0) -> Any:
        self.dispatched.append(command)
        return None

    async def converse(self, text: str, *, author: str | None = None, **kwargs: Any) -> Any:
        self.conversed.append((text, author))
        if self.busy_after_converse:
            self.busy = True
        return None


def _devices() -> list[dict]:
    return [
        {"serial": "A", "name": "Core Switch", "model": "MS120-8", "networkId": "N1"},
        {"serial": "B", "name": "Lobby AP", "model": "MR46", "networkId": "N1"},
        {"serial": "C", "name": "Edge", "model": "MX68", "networkId": "N2"},
    ]


def test_poller_without_poll_once_cannot_be_built() -> None:
    class Silent(_Poller):
        name = "silent"

    with pytest.raises(TypeError):
        Silent(FakeDispatcher(), interval=1.0)  # type: ignore[abstract, arg-type]


@pytest.mark.asyncio
async def test_first_device_poll_only_seeds_the_map(api: MerakiApi, router: Router, sink: RecordingSink) -> None:
    router.add("GET", DEVICES, json=_devices())
    router.add("GET", STATUSES, json=[{"serial": "A", "status": "offline"}, {"serial": "B", "status": "online"}])
    dispatcher = FakeDispatcher()
    poller = DeviceHealthPoller(api, dispatcher, sink)

    assert await poller.poll_once() == 0

    assert poller.known_statuses == {"A": "offline", "B": "online", "C": "unknown"}
    assert dispatcher.dispatched == []
    assert sink.messages == []


@pytest.mark.asyncio
async def test_online_to_problematic_starts_a_diagnosis(api: MerakiApi, router: Router, sink: RecordingSink) -> None:
    router.add("GET", DEVICES, json=_devices())
    router.add(
        "GET",
        STATUSES,
        json=[
            {"serial": "A", "status": "online"},
            {"serial": "B", "status": "alerting"},
            {"serial": "C", "status": "offline"},
        ],
    )
    router.add(
        "GET",
        STATUSES,
        json=[
            {"serial": "A", "status": "offline"},
            {"serial": "B", "status": "alerting"},
            {"serial": "C", "status": "online"},
        ],
    )
    dispatcher = FakeDispatcher()
    poller = DeviceHealthPoller(api, dispatcher, sink)

    await poller.poll_once()
    started = await poller.poll_once()

    assert started == 1
    assert dispatcher.dispatched == [
        Command(
            "diagnose_device",
            {"resourceId": "A", "name": "Core Switch", "status": "offline", "networkId": "N1", "model": "MS120-8"},
        )
    ]
    assert [(m.level, m.text) for m in sink.statuses] == [
        (
            StatusLevel.WARNING,
            "Device Core Switch (A) has a new status: 'offline'. Starting Root Cause Analysis...",
        )
    ]
    assert poller.known_statuses["C"] == "online"


@pytest.mark.asyncio
async def test_device_poll_is_skipped_while_busy(api: MerakiApi, router: Router, sink: RecordingSink) -> None:
    dispatcher = FakeDispatcher()
    dispatcher.busy = True
    poller = DeviceHealthPoller(api, dispatcher, sink)

    assert await poller.poll_once() == 0
    assert router.requests == []


@pytest.mark.asyncio
async def test_device_poll_is_skipped_while_blocked(api: MerakiApi, router: Router, sink: RecordingSink) -> None:
    poller = DeviceHealthPoller(api, FakeDispatcher(), sink, blocked=lambda: True)

    assert await poller.poll_once() == 0
    assert router.requests == []


@pytest.mark.asyncio
async def test_run_logs_failures_and_keeps_polling(
    api: MerakiApi, router: Router, sink: RecordingSink, caplog: pytest.LogCaptureFixture
) -> None:
    router.add("GET", DEVICES, status=500, json={"errors": ["Internal error"]})
    router.add("GET", STATUSES, json=[])
    poller = DeviceHealthPoller(api, FakeDispatcher(), sink, interval=0.01)
    stop = asyncio.Event()

    with caplog.at_level(logging.ERROR):
        task = asyncio.create_task(poller.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    assert len(router.calls("GET", DEVICES)) >= 2
    assert "will retry on the next interval" in caplog.text


def _message(mid: str, minute: int, text: str, email: str, person_id: str = "p-user") -> dict:
    return {
        "id": mid,
        "text": text,
        "personId": person_id,
        "personEmail": email,
        "created": f"2026-10-18T10:{minute:02d}:00.000Z",
    }


@pytest.fixture
def relay(settings: AppSettings, router: Router, fake_sleep: FakeSleep) -> WebexRelay:
    client = build_webex_client(settings, transport=httpx.MockTransport(router), sleep=fake_sleep)
    return WebexRelay(client, settings=settings, sleep=fake_sleep)


def _relay_routes(router: Router) -> None:
    router.add("GET", "/people/me", json={"id": "bot-1", "emails": ["netops@webex.bot"]})
    router.add("GET", "/messages", json={"items": [_message("m0", 0, "old question", "ana@example.com")]})
    router.add(
        "GET",
        "/messages",
        json={
            "items": [
                _message("m4", 4, "   ", "ana@example.com"),
                _message("m3", 3, "Bot answer", "netops@webex.bot", person_id="bot-1"),
                _message("m2", 2, "second", "bob@example.com"),
                _message("m1", 1, "first", "ana@example.com"),
                _message("m0", 0, "old question", "ana@example.com"),
            ]
        },
    )


@pytest.mark.asyncio
async def test_relay_poll_processes_new_messages_oldest_first(relay: WebexRelay, router: Router) -> None:
    _relay_routes(router)
    dispatcher = FakeDispatcher()
    poller = RelayPoller(relay, dispatcher)

    assert await poller.poll_once() == 0
    assert poller.marker == datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)

    processed = await poller.poll_once()

    assert processed == 2
    assert dispatcher.conversed == [("first", "ana@example.com"), ("second", "bob@example.com")]
    assert poller.marker == datetime(2026, 10, 18, 10, 4, tzinfo=timezone.utc)
    assert router.calls("GET", "/messages")[-1].url.params["max"] == "10"


@pytest.mark.asyncio
async def test_relay_poll_stops_when_the_dispatcher_becomes_busy(relay: WebexRelay, router: Router) -> None:
    _relay_routes(router)
    dispatcher = FakeDispatcher()
    dispatcher.busy_after_converse = True
    poller = RelayPoller(relay, dispatcher)

    await poller.poll_once()
    processed = await poller.poll_once()

    assert processed == 1
    assert dispatcher.conversed == [("first", "ana@example.com")]
    assert poller.marker == datetime(2026, 10, 18, 10, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_relay_init_on_an_empty_space_starts_now(relay: WebexRelay, router: Router) -> None:
    router.add("GET", "/people/me", json={"id": "bot-1", "emails": []})
    router.add("GET", "/messages", json={"items": []})
    before = datetime.now(timezone.utc)
    poller = RelayPoller(relay, FakeDispatcher())

    await poller.initialize()

    assert poller.marker is not None
    assert poller.marker >= before
