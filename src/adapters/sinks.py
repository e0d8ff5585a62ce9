"""Sinks de mensajes: a dónde van los mensajes del motor.

- `ConsoleSink`: render en terminal (Rich).
- `TranscriptSink`: persiste cada mensaje como una línea JSON.
- `RelaySink`: reenvía los mensajes relayables al espacio de Webex.
- `FanoutSink`: publica en varios sinks, en orden.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from rich.console import Console, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from adapters.webex import WebexRelay
from core.domain.errors import EngineError
from core.domain.models import EngineMessage, MessageKind, StatusLevel
from core.interfaces.collaborators import MessageSink

logger = logging.getLogger(__name__)

_LEVEL_STYLES: dict[StatusLevel, str] = {
    StatusLevel.INFO: "cyan",
    StatusLevel.SUCCESS: "green",
    StatusLevel.WARNING: "yellow",
    StatusLevel.ERROR: "red",
    StatusLevel.CANCELLED: "dim",
}


def render_message(message: EngineMessage) -> RenderableType:
    if message.kind is MessageKind.STATUS:
        return Text(message.text, style=_LEVEL_STYLES.get(message.level, "white"))
    if message.kind is MessageKind.USER:
        title = f"You ({message.author})" if message.author else "You"
        return Panel(Text(message.text), title=title, title_align="left", border_style="blue")
    if message.kind is MessageKind.DATA:
        return Panel(Markdown(message.text), title="Data", title_align="left", border_style="magenta")
    return Panel(Markdown(message.text), title="NetOps AI", title_align="left", border_style="green")


class ConsoleSink:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def publish(self, message: EngineMessage) -> None:
        self._console.print(render_message(message))


class TranscriptSink:
    """Agrega mensajes a un archivo JSONL (UTF-8, orden de claves estable)."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def publish(self, message: EngineMessage) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(message.model_dump(mode="json"), ensure_ascii=False, sort_keys=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


class RelaySink:
    """Reenvía al relay la narración del asistente, los datos y los status.

    Los mensajes del usuario nunca se reenvían. Los fallos del relay se
    loguean: un relay caído no interrumpe al motor.
    """

    def __init__(self, relay: WebexRelay) -> None:
        self._relay = relay

    async def publish(self, message: EngineMessage) -> None:
        if not message.relay or message.kind is MessageKind.USER:
            return
        try:
            await self._relay.send_markdown(message.text)
        except EngineError as exc:
            logger.error("Could not relay message to Webex: %s", exc.message)


class FanoutSink:
    def __init__(self, sinks: Iterable[MessageSink]) -> None:
        self._sinks = list(sinks)

    async def publish(self, message: EngineMessage) -> None:
        for sink in self._sinks:
            await sink.publish(message)
