"""CLI del asistente NetOps (Typer).

Comandos:
- `run`: conversación interactiva con el asistente, con los pollers de salud
  de devices y del relay Webex en segundo plano.
- `exec`: despacha una acción dada como JSON, sin asistente.
- `actions`: lista el catálogo de acciones.
- `relay-verify`: verifica el token del bot y el espacio de Webex.
- `doctor`: chequeos de configuración y conectividad.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from adapters.assistant import OpenAIAssistant
from adapters.meraki_api import MerakiApi, build_meraki_client
from adapters.sinks import ConsoleSink, FanoutSink, RelaySink, TranscriptSink
from adapters.webex import WebexRelay, build_webex_client
from cli import doctor
from cli.ui_components import build_actions_table, print_banner
from core.catalog import build_catalog
from core.config import AppSettings
from core.domain.commands import Command, Err
from core.domain.errors import EngineError, ValidationError
from core.interfaces.collaborators import MessageSink
from core.services.command_parser import extract_command
from core.services.dispatcher import Dispatcher
from core.services.polling import DeviceHealthPoller, RelayPoller

logger = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True, help="AI-driven actions against the Meraki Dashboard API.")
app.add_typer(doctor.app, name="doctor")

_console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass
class Engine:
    dispatcher: Dispatcher
    api: MerakiApi
    assistant: OpenAIAssistant | None = None
    relay: WebexRelay | None = None
    sinks: list[MessageSink] = field(default_factory=list)

    async def aclose(self) -> None:
        await self.api.aclose()
        if self.relay is not None:
            await self.relay.aclose()


def build_engine(settings: AppSettings, *, with_assistant: bool, with_relay: bool) -> Engine:
    catalog = build_catalog()
    api = MerakiApi(build_meraki_client(settings), settings=settings)

    sinks: list[MessageSink] = [ConsoleSink(_console)]
    if settings.transcript_path is not None:
        sinks.append(TranscriptSink(settings.transcript_path))

    relay: WebexRelay | None = None
    if with_relay and settings.webex_bot_token and settings.webex_space_id:
        relay = WebexRelay(build_webex_client(settings), settings=settings)
        sinks.append(RelaySink(relay))

    assistant = OpenAIAssistant(catalog, settings=settings) if with_assistant else None
    dispatcher = Dispatcher(catalog, api, settings, FanoutSink(sinks), assistant=assistant)
    return Engine(dispatcher=dispatcher, api=api, assistant=assistant, relay=relay, sinks=sinks)


def _fail(message: str) -> None:
    _console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


async def _load_device_context(engine: Engine, settings: AppSettings) -> None:
    if engine.assistant is None or not settings.meraki_org_id:
        return
    try:
        devices = await engine.api.get_org_devices()
    except EngineError as exc:
        logger.warning("Could not load devices for the assistant context: %s", exc.message)
        return
    engine.assistant.update_devices(devices)
    _console.print(f"[dim]{len(devices)} devices loaded.[/dim]")


async def _interactive(settings: AppSettings, *, poll_devices: bool, poll_relay: bool) -> None:
    engine = build_engine(settings, with_assistant=True, with_relay=poll_relay)
    dispatcher = engine.dispatcher
    stop = asyncio.Event()
    pollers: list[asyncio.Task[None]] = []
    pending: asyncio.Task | None = None

    try:
        await _load_device_context(engine, settings)

        if poll_devices and settings.meraki_org_id:
            poller = DeviceHealthPoller(
                engine.api,
                dispatcher,
                FanoutSink(engine.sinks),
                interval=settings.device_poll_interval_seconds,
            )
            pollers.append(asyncio.create_task(poller.run(stop)))
        if engine.relay is not None:
            relay_poller = RelayPoller(
                engine.relay,
                dispatcher,
                interval=settings.relay_poll_interval_seconds,
                batch=settings.relay_poll_batch,
            )
            pollers.append(asyncio.create_task(relay_poller.run(stop)))

        while True:
            try:
                line = (await asyncio.to_thread(_console.input, "[bold cyan]> [/bold cyan]")).strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue
            if line == "/quit":
                break
            if line == "/cancel":
                if not dispatcher.cancel():
                    _console.print("[dim]No action is running.[/dim]")
                continue
            if pending is not None and not pending.done():
                _console.print("[yellow]Still working on the previous message. Use /cancel to abort it.[/yellow]")
                continue
            pending = asyncio.create_task(dispatcher.converse(line))
    finally:
        stop.set()
        dispatcher.cancel("Shutting down.")
        if pending is not None:
            await asyncio.gather(pending, return_exceptions=True)
        await asyncio.gather(*pollers, return_exceptions=True)
        await engine.aclose()


@app.command(name="run")
def run_session(
    poll_devices: bool = typer.Option(True, "--poll-devices/--no-poll-devices", help="Watch device health."),
    relay: bool = typer.Option(True, "--relay/--no-relay", help="Relay the conversation to Webex when configured."),
) -> None:
    """Sesión interactiva con el asistente."""

    settings = AppSettings()
    configure_logging(settings.log_level)
    if not settings.ai_api_key:
        _fail("No AI API key configured. Run `netops doctor setup` or use `netops exec`.")

    print_banner(_console)
    try:
        asyncio.run(_interactive(settings, poll_devices=poll_devices, poll_relay=relay))
    except EngineError as exc:
        _fail(exc.message)


def _parse_action(text: str, payload: Optional[str]) -> Command:
    if payload is not None:
        try:
            body = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"--payload is not valid JSON: {exc.msg}.") from exc
        text = json.dumps({"action": text, "payload": body})
    elif not text.lstrip().startswith(("{", "<execute_action>")):
        text = json.dumps({"action": text})

    if "<execute_action>" not in text:
        text = f"<execute_action>{text}</execute_action>"
    command = extract_command(text)
    if command is None:
        raise ValidationError("No action found.")
    return command


async def _exec(settings: AppSettings, action: str, payload: Optional[str], narrate: bool) -> bool:
    command = _parse_action(action, payload)
    engine = build_engine(settings, with_assistant=narrate, with_relay=False)
    try:
        result = await engine.dispatcher.dispatch(command)
    finally:
        await engine.aclose()
    return result is not None and not isinstance(result, Err)


@app.command(name="exec")
def exec_(
    action: str = typer.Argument(..., help='Action name, or a JSON object like {"action": ..., "payload": {...}}.'),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="Payload as a JSON object."),
    narrate: bool = typer.Option(False, "--narrate", help="Let the assistant summarize read results."),
) -> None:
    """Despacha una sola acción."""

    settings = AppSettings()
    configure_logging(settings.log_level)
    try:
        ok = asyncio.run(_exec(settings, action, payload, narrate))
    except EngineError as exc:
        _fail(exc.message)
        return
    if not ok:
        raise typer.Exit(1)


@app.command()
def actions() -> None:
    """Lista las acciones disponibles."""

    _console.print(build_actions_table(build_catalog()))


async def _verify_relay(settings: AppSettings) -> dict:
    relay = WebexRelay(build_webex_client(settings), settings=settings)
    try:
        return await relay.verify()
    finally:
        await relay.aclose()


@app.command(name="relay-verify")
def relay_verify() -> None:
    """Verifica el token del bot de Webex y publica un mensaje de prueba en el espacio."""

    settings = AppSettings()
    configure_logging(settings.log_level)
    try:
        me = asyncio.run(_verify_relay(settings))
    except EngineError as exc:
        _fail(f"Webex verification failed: {exc.message}")
        return
    _console.print(f"[green]Connected as {me.get('displayName') or me.get('id')}.[/green]")


def run() -> None:
    app()
