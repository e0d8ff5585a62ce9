from __future__ import annotations

import json
import random
from typing import Any

import httpx
import pytest
from openai import AsyncOpenAI

from adapters.assistant import OpenAIAssistant, build_openai_client, build_system_prompt, describe_actions
from core.catalog.registry import Catalog
from core.domain.errors import AssistantUnavailableError
from core.domain.models import Device

from conftest import FakeSleep, Router, make_settings

COMPLETIONS = "/v1/chat/completions"


def _completion(content: str) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1760781600,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def _assistant(catalog: Catalog, router: Router, sleep: FakeSleep, **overrides: Any) -> OpenAIAssistant:
    settings = make_settings(**overrides)
    client = AsyncOpenAI(
        api_key="ai-key",
        base_url="https://ai.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(router)),
    )
    return OpenAIAssistant(catalog, settings=settings, client=client, sleep=sleep, rng=random.Random(0))


@pytest.mark.asyncio
async def test_reply_is_returned_and_remembered(catalog: Catalog, router: Router, fake_sleep: FakeSleep) -> None:
    router.add("POST", COMPLETIONS, json=_completion("  Port 5 is on VLAN 10.  "))
    assistant = _assistant(catalog, router, fake_sleep)

    reply = await assistant.respond("What is port 5 doing?")

    assert reply == "Port 5 is on VLAN 10."
    body = json.loads(router.requests[0].content)
    assert body["model"] == "gpt-4o-mini"
    assert body["temperature"] == 0.2
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][-1] == {"role": "user", "content": "What is port 5 doing?"}
    assert assistant.history == [
        {"role": "user", "content": "What is port 5 doing?"},
        {"role": "assistant", "content": "Port 5 is on VLAN 10."},
    ]


@pytest.mark.asyncio
async def test_rate_limit_is_retried(catalog: Catalog, router: Router, fake_sleep: FakeSleep) -> None:
    router.add("POST", COMPLETIONS, status=429, json={"error": {"message": "Slow down"}}, headers={"Retry-After": "1"})
    router.add("POST", COMPLETIONS, json=_completion("Done."))
    assistant = _assistant(catalog, router, fake_sleep)

    assert await assistant.respond("hi") == "Done."

    assert len(router.requests) == 2
    assert len(fake_sleep.delays) == 1
    assert 1.0 <= fake_sleep.delays[0] <= 1.35


@pytest.mark.asyncio
async def test_persistent_rate_limit_makes_the_assistant_unavailable(
    catalog: Catalog, router: Router, fake_sleep: FakeSleep
) -> None:
    router.add("POST", COMPLETIONS, status=429, json={"error": {"message": "Slow down"}})
    assistant = _assistant(catalog, router, fake_sleep, ai_max_retries=2)

    with pytest.raises(AssistantUnavailableError) as info:
        await assistant.respond("hi")

    assert len(router.requests) == 3
    assert len(fake_sleep.delays) == 2
    assert "RateLimitError" in info.value.message
    assert assistant.history == []


@pytest.mark.asyncio
async def test_other_provider_errors_are_not_retried(catalog: Catalog, router: Router, fake_sleep: FakeSleep) -> None:
    router.add("POST", COMPLETIONS, status=400, json={"error": {"message": "Unknown model"}})
    assistant = _assistant(catalog, router, fake_sleep)

    with pytest.raises(AssistantUnavailableError) as info:
        await assistant.respond("hi")

    assert len(router.requests) == 1
    assert "status 400" in info.value.message
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_history_is_bounded(catalog: Catalog, router: Router, fake_sleep: FakeSleep) -> None:
    router.add("POST", COMPLETIONS, json=_completion("ok"))
    assistant = _assistant(catalog, router, fake_sleep, ai_max_history_messages=4)

    for prompt in ("one", "two", "three"):
        await assistant.respond(prompt)

    assert [m["content"] for m in assistant.history] == ["two", "ok", "three", "ok"]
    last = json.loads(router.requests[-1].content)["messages"]
    assert [m["content"] for m in last[1:]] == ["one", "ok", "two", "ok", "three"]

    assistant.reset()
    assert assistant.history == []


def test_missing_key_is_reported() -> None:
    with pytest.raises(AssistantUnavailableError):
        build_openai_client(make_settings(ai_api_key="  "))


def test_system_prompt_lists_every_action(catalog: Catalog) -> None:
    prompt = build_system_prompt(catalog)

    for operation in catalog:
        assert f"**{operation.name}**" in prompt
    assert "No Meraki devices have been loaded." in prompt
    assert '<execute_action>{"action": "update_port", "payload": {"resourceId": "Q234-ABCD-5678"' in prompt


def test_system_prompt_includes_devices(catalog: Catalog) -> None:
    devices = [Device(serial="Q2-A", name="Core", model="MS120-8", networkId="N1", status="online")]

    prompt = build_system_prompt(catalog, devices)

    assert '"serial": "Q2-A"' in prompt
    assert '"networkId": "N1"' in prompt


def test_describe_actions_marks_required_fields(catalog: Catalog) -> None:
    text = describe_actions(catalog)

    assert "Required payload fields: resourceId, portId" in text
    assert "Required payload fields: none" in text
