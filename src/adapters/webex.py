"""Relay de chat Webex.

Responsabilidad:
- Publicar mensajes del motor en un espacio de Webex, partidos al límite de
  tamaño y enviados en orden con una pausa corta entre partes.
- Leer los mensajes recientes del espacio para el poller del relay.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from adapters.http_client import RemoteClient, SleepFn, build_async_client
from core.config import AppSettings
from core.domain.errors import FatalRemoteError, ValidationError
from core.domain.models import RelayMessage
from core.services.chunker import label_chunks, split_message, strip_part_marker

logger = logging.getLogger(__name__)

CONNECTED_NOTICE = "✅ Your NetOps AI Assistant has been successfully connected to this space."


def build_webex_client(
    settings: AppSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn | None = None,
    rng: random.Random | None = None,
) -> RemoteClient:
    if not settings.webex_bot_token:
        raise ValidationError("No Webex bot token configured (NETOPS_WEBEX_BOT_TOKEN).")
    http = build_async_client(settings, base_url=settings.webex_base_url, transport=transport)
    return RemoteClient(
        http,
        auth_headers={"Authorization": f"Bearer {settings.webex_bot_token}"},
        settings=settings,
        service="Webex",
        sleep=sleep,
        rng=rng,
    )


class WebexRelay:
    def __init__(self, client: RemoteClient, *, settings: AppSettings, sleep: SleepFn | None = None) -> None:
        if not settings.webex_space_id:
            raise ValidationError("No Webex space id configured (NETOPS_WEBEX_SPACE_ID).")
        self._client = client
        self._space_id = settings.webex_space_id
        self._max_length = settings.relay_max_message_length
        self._delay = settings.relay_chunk_delay_seconds
        self._sleep: SleepFn = sleep or asyncio.sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        try:
            return await self._client.request(method, endpoint, **kwargs)
        except FatalRemoteError as exc:
            if exc.status_code == 401:
                raise FatalRemoteError("Invalid Bot Token.", endpoint=endpoint, status_code=401) from exc
            if exc.status_code == 404 and endpoint.startswith("/messages"):
                raise FatalRemoteError(
                    "Invalid Space ID or bot is not in the space.", endpoint=endpoint, status_code=404
                ) from exc
            raise

    async def send_markdown(self, markdown: str) -> list[Any]:
        """Publica `markdown` en el espacio, en varias partes etiquetadas si es largo."""

        chunks = label_chunks(split_message(markdown, self._max_length), self._max_length)
        if len(chunks) > 1:
            logger.info("Message is too long. Sending in %d parts.", len(chunks))

        results: list[Any] = []
        for chunk in chunks:
            if not strip_part_marker(chunk).strip():
                continue
            if results:
                await self._sleep(self._delay)
            results.append(
                await self._call("POST", "/messages", json={"roomId": self._space_id, "markdown": chunk})
            )
        return results

    async def list_messages(self, *, max_items: int = 10) -> list[RelayMessage]:
        data = await self._call("GET", "/messages", params={"roomId": self._space_id, "max": max_items})
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return [RelayMessage.model_validate(m) for m in items if isinstance(m, dict) and m.get("created")]

    async def get_me(self) -> dict[str, Any]:
        data = await self._call("GET", "/people/me")
        return data if isinstance(data, dict) else {}

    async def verify(self) -> dict[str, Any]:
        """Verifica el token (who am I) y el espacio (publica un aviso). Lanza si falla."""

        logger.info("Verifying Webex connection")
        me = await self.get_me()
        await self.send_markdown(CONNECTED_NOTICE)
        return me
