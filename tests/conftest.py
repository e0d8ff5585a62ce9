from __future__ import annotations

import random
from typing import Any, Callable

import httpx
import pytest

from adapters.meraki_api import MerakiApi, build_meraki_client
from core.catalog import build_catalog
from core.catalog.registry import Catalog, OperationContext
from core.config import AppSettings
from core.domain.models import EngineMessage, MessageKind, StatusLevel
from core.services.cancellation import CancellationToken

MERAKI_URL = "https://meraki.test"
WEBEX_URL = "https://webex.test"


def make_settings(**overrides: Any) -> AppSettings:
    values: dict[str, Any] = {
        "meraki_api_key": "test-key",
        "meraki_org_id": "org-1",
        "meraki_base_url": MERAKI_URL,
        "webex_bot_token": "bot-token",
        "webex_space_id": "room-1",
        "webex_base_url": WEBEX_URL,
        "ai_api_key": "ai-key",
        "backoff_jitter_seconds": 0.0,
        "relay_chunk_delay_seconds": 0.5,
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Router:
    """MockTransport handler: (method, path) -> queued responses.

    The last queued response of a route is repeated for further calls.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[httpx.Request] = []
        self.on_request: Callable[[httpx.Request], None] | None = None

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> "Router":
        self.routes.setdefault((method, path), []).append((status, json, headers or {}))
        return self

    def add_error(self, method: str, path: str, exc: Exception) -> "Router":
        self.routes.setdefault((method, path), []).append(exc)
        return self

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"errors": [f"No route for {request.method} {request.url.path}"]})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, Exception):
            raise entry
        status, body, headers = entry
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)


class RecordingSink:
    def __init__(self) -> None:
        self.messages: list[EngineMessage] = []

    async def publish(self, message: EngineMessage) -> None:
        self.messages.append(message)

    def of_kind(self, kind: MessageKind) -> list[EngineMessage]:
        return [m for m in self.messages if m.kind is kind]

    @property
    def statuses(self) -> list[EngineMessage]:
        return self.of_kind(MessageKind.STATUS)

    def levels(self) -> list[StatusLevel]:
        return [m.level for m in self.statuses]


class ScriptedAssistant:
    """Replies from a script, recording every prompt."""

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def respond(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.replies.pop(0) if self.replies else "Done."


@pytest.fixture
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def api(settings: AppSettings, router: Router, fake_sleep: FakeSleep) -> MerakiApi:
    client = build_meraki_client(
        settings, transport=httpx.MockTransport(router), sleep=fake_sleep, rng=random.Random(0)
    )
    return MerakiApi(client, settings=settings)


@pytest.fixture
def catalog() -> Catalog:
    return build_catalog()


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def ctx(api: MerakiApi, token: CancellationToken, settings: AppSettings) -> OperationContext:
    return OperationContext(api=api, token=token, settings=settings)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
