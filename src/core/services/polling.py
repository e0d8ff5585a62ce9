"""Disparadores periódicos que alimentan al dispatcher.

Ambos pollers no hacen nada mientras el dispatcher está ocupado (o se cumple
una condición de bloqueo del llamador): un poll omitido espera al siguiente
intervalo, no se encola nada. Cada poller es dueño de su marcador de último
procesado.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable

from adapters.meraki_api import MerakiApi
from adapters.webex import WebexRelay
from core.domain.commands import Command
from core.domain.models import Device, EngineMessage, MessageKind, RelayMessage, StatusLevel
from core.interfaces.collaborators import MessageSink
from core.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

BlockedFn = Callable[[], bool]


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class _Poller(ABC):
    name = "poller"

    def __init__(self, dispatcher: Dispatcher, *, interval: float, blocked: BlockedFn | None = None) -> None:
        self._dispatcher = dispatcher
        self._interval = interval
        self._blocked = blocked

    def _should_skip(self) -> bool:
        if self._dispatcher.busy:
            logger.debug("%s skipped: dispatcher busy", self.name)
            return True
        if self._blocked is not None and self._blocked():
            logger.debug("%s skipped: blocked", self.name)
            return True
        return False

    @abstractmethod
    async def poll_once(self) -> int:
        """Una pasada de sondeo. Devuelve cuántos elementos procesó."""

    async def run(self, stop: asyncio.Event) -> None:
        """Sondea cada `interval` segundos hasta que `stop` se active. Los errores se loguean, no se lanzan."""

        logger.info("%s started (every %ss)", self.name, self._interval)
        while not stop.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s failed, will retry on the next interval", self.name)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info("%s stopped", self.name)


class DeviceHealthPoller(_Poller):
    """Inicia un análisis de causa raíz cuando un device pasa de online a offline/alerting."""

    name = "Device health poll"

    def __init__(
        self,
        api: MerakiApi,
        dispatcher: Dispatcher,
        sink: MessageSink,
        *,
        interval: float = 60,
        blocked: BlockedFn | None = None,
    ) -> None:
        super().__init__(dispatcher, interval=interval, blocked=blocked)
        self._api = api
        self._sink = sink
        self._known: dict[str, str] | None = None

    @property
    def known_statuses(self) -> dict[str, str]:
        return dict(self._known or {})

    async def poll_once(self) -> int:
        """Devuelve la cantidad de diagnósticos iniciados."""

        if self._should_skip():
            return 0

        devices = await self._api.get_org_devices()
        previous = self._known
        self._known = {d.serial: d.status for d in devices}
        if previous is None:
            logger.info("Seeded device status map with %d devices", len(devices))
            return 0

        degraded = [d for d in devices if previous.get(d.serial) == "online" and d.is_problematic]
        started = 0
        for device in degraded:
            if self._dispatcher.busy:
                logger.warning("Skipping diagnosis of %s: dispatcher busy", device.serial)
                continue
            await self._diagnose(device)
            started += 1
        return started

    async def _diagnose(self, device: Device) -> None:
        logger.info("Device %s changed status to %s", device.serial, device.status)
        await self._sink.publish(
            EngineMessage(
                kind=MessageKind.STATUS,
                level=StatusLevel.WARNING,
                text=(
                    f"Device {device.name} ({device.serial}) has a new status: '{device.status}'. "
                    "Starting Root Cause Analysis..."
                ),
            )
        )
        payload = {"resourceId": device.serial, "name": device.name, "status": device.status}
        if device.network_id:
            payload["networkId"] = device.network_id
        if device.model:
            payload["model"] = device.model
        await self._dispatcher.dispatch(Command(name="diagnose_device", payload=payload))


class RelayPoller(_Poller):
    """Lleva los mensajes nuevos del relay de chat (más viejo primero) a la conversación."""

    name = "Relay poll"

    def __init__(
        self,
        relay: WebexRelay,
        dispatcher: Dispatcher,
        *,
        interval: float = 7,
        batch: int = 10,
        blocked: BlockedFn | None = None,
    ) -> None:
        super().__init__(dispatcher, interval=interval, blocked=blocked)
        self._relay = relay
        self._batch = batch
        self._bot_id: str | None = None
        self._bot_email: str | None = None
        self._marker: datetime | None = None

    @property
    def marker(self) -> datetime | None:
        return self._marker

    async def initialize(self) -> None:
        """Resuelve la identidad del bot y arranca después del mensaje más reciente."""

        me = await self._relay.get_me()
        self._bot_id = me.get("id")
        emails = me.get("emails") or []
        self._bot_email = emails[0] if emails else None

        latest = await self._relay.list_messages(max_items=1)
        if latest:
            self._marker = max(_parse_ts(m.created) for m in latest)
        else:
            self._marker = datetime.now(timezone.utc)
        logger.info("Relay poller initialized at %s as %s", self._marker.isoformat(), self._bot_email or self._bot_id)

    def _is_own(self, message: RelayMessage) -> bool:
        if self._bot_id and message.person_id == self._bot_id:
            return True
        return bool(self._bot_email and message.person_email == self._bot_email)

    async def poll_once(self) -> int:
        """Devuelve la cantidad de mensajes procesados."""

        if self._should_skip():
            return 0
        if self._marker is None:
            await self.initialize()
            return 0

        messages = await self._relay.list_messages(max_items=self._batch)
        marker = self._marker
        fresh = sorted(
            (m for m in messages if _parse_ts(m.created) > marker and not self._is_own(m)),
            key=lambda m: _parse_ts(m.created),
        )

        processed = 0
        for message in fresh:
            if self._dispatcher.busy:
                break
            self._marker = _parse_ts(message.created)
            text = message.text.strip()
            if not text:
                continue
            logger.info("Relay message from %s", message.person_email)
            await self._dispatcher.converse(text, author=message.person_email)
            processed += 1
        return processed
