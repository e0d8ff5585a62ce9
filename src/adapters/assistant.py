"""Adapter del asistente (SDK de OpenAI, cualquier proveedor OpenAI-compatible).

Responsabilidad:
- Mantener un historial de conversación acotado.
- Construir el system prompt desde el catálogo de operaciones: el contrato de
  acciones que ve el modelo coincide siempre con lo que el motor ejecuta.
- Reintentar rate limits, timeouts y errores de conexión; el resto sale como
  `AssistantUnavailableError`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, Iterable

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError

from core.catalog.registry import Catalog
from core.config import AppSettings
from core.domain.errors import AssistantUnavailableError
from core.domain.models import Device

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def build_openai_client(settings: AppSettings) -> AsyncOpenAI:
    api_key = (settings.ai_api_key or "").strip()
    if not api_key:
        raise AssistantUnavailableError("No AI API key configured (NETOPS_AI_API_KEY).")
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.ai_base_url,
        timeout=settings.ai_timeout_seconds,
        max_retries=0,
    )


def _safe_retry_after_seconds(exc: Exception) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def describe_actions(catalog: Catalog) -> str:
    """Referencia de acciones para el system prompt, una entrada por operación."""

    lines: list[str] = []
    for index, operation in enumerate(catalog, start=1):
        lines.append(f"{index}. **{operation.name}**")
        lines.append(f"    - Description: {operation.description}")
        required = operation.required_fields()
        lines.append(f"    - Required payload fields: {', '.join(required) if required else 'none'}")
        if operation.example:
            lines.append(
                "    - Example: "
                f"<execute_action>{json.dumps({'action': operation.name, 'payload': dict(operation.example)})}</execute_action>"
            )
    return "\n".join(lines)


def build_system_prompt(catalog: Catalog, devices: Iterable[Device] = ()) -> str:
    device_context = [
        {"serial": d.serial, "name": d.name, "model": d.model, "status": d.status, "networkId": d.network_id}
        for d in devices
    ]
    if device_context:
        device_list = f"Here is the list of Meraki devices discovered: {json.dumps(device_context, indent=2)}"
    else:
        device_list = "No Meraki devices have been loaded."

    return (
        "You are NetOps AI. Your primary goal is to help users manage their Meraki network devices "
        "and diagnose issues.\n"
        f"{device_list}\n\n"
        "**AVAILABLE ACTIONS:**\n"
        "Actions are commands you can issue. To issue an action, respond with a single JSON object "
        'of the form {"action": "<name>", "payload": {...}} inside <execute_action> tags. Issue at '
        "most one action per reply. Device serials go in 'resourceId'. When you receive data "
        "prefixed with CONTEXT:, summarize it for the user instead of issuing another action.\n\n"
        f"{describe_actions(catalog)}\n\n"
        "Your value is in providing specific, actionable, and data-backed insights. Use headings, "
        "bold text, lists, and code blocks to make your response easy to read and professional. "
        "Do not add any other text inside the action tag itself."
    )


class OpenAIAssistant:
    """`Assistant` sobre un endpoint de chat completions."""

    def __init__(
        self,
        catalog: Catalog,
        *,
        settings: AppSettings | None = None,
        client: AsyncOpenAI | None = None,
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._catalog = catalog
        self._client = client or build_openai_client(self._settings)
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._history: list[dict[str, str]] = []
        self._system_prompt = build_system_prompt(catalog)

    @property
    def history(self) -> list[dict[str, str]]:
        return list(self._history)

    def update_devices(self, devices: Iterable[Device]) -> None:
        self._system_prompt = build_system_prompt(self._catalog, devices)

    def reset(self) -> None:
        self._history.clear()

    def _remember(self, prompt: str, reply: str) -> None:
        self._history.extend(
            [{"role": "user", "content": prompt}, {"role": "assistant", "content": reply}]
        )
        overflow = len(self._history) - self._settings.ai_max_history_messages
        if overflow > 0:
            del self._history[:overflow]

    async def _backoff(self, exc: Exception, attempt: int) -> None:
        retry_after = _safe_retry_after_seconds(exc)
        base = retry_after if retry_after is not None else (1.25 * (2**attempt))
        delay = base + self._rng.uniform(0.0, 0.35)
        logger.warning(
            "AI provider unavailable (%s). Retrying attempt %d/%d in %.1fs",
            type(exc).__name__,
            attempt + 1,
            self._settings.ai_max_retries,
            delay,
        )
        await self._sleep(delay)

    async def respond(self, prompt: str) -> str:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._system_prompt},
            *self._history,
            {"role": "user", "content": prompt},
        ]

        last_error: Exception | None = None
        for attempt in range(self._settings.ai_max_retries + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self._settings.ai_model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=0.2,
                )
                reply = (response.choices[0].message.content or "").strip()
                self._remember(prompt, reply)
                return reply

            except (RateLimitError, APITimeoutError, APIConnectionError) as exc:
                last_error = exc
            except APIStatusError as exc:
                if exc.status_code != 429:
                    raise AssistantUnavailableError(
                        f"AI provider error (status {exc.status_code}): {exc.message}"
                    ) from exc
                last_error = exc

            if attempt >= self._settings.ai_max_retries:
                break
            await self._backoff(last_error, attempt)

        raise AssistantUnavailableError(
            "There was an issue communicating with the AI "
            f"({type(last_error).__name__ if last_error else 'unknown'}). "
            "Please check your API key and network connection."
        ) from last_error
