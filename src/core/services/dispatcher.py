"""Despacho de comandos con guarda single-flight.

Estados: ``Idle -> Executing(token, command) -> Idle``. Un comando que llega
mientras otro se ejecuta se descarta (con log), nunca se encola. La guarda se
libera en toda salida antes de publicar el resultado.

Nota:
- Las operaciones encadenadas (lecturas, agregación, correlación) devuelven
  su resultado al asistente como un prompt nuevo; un comando en esa respuesta
  vuelve a entrar al ciclo, hasta `settings.max_chain_depth` niveles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from adapters.meraki_api import MerakiApi
from core.catalog.registry import Catalog, Operation, OperationContext, to_json
from core.config import AppSettings
from core.domain.commands import Command, CommandResult, Err, ErrorKind, Ok
from core.domain.errors import (
    AssistantUnavailableError,
    CancellationError,
    EngineError,
    FatalRemoteError,
    RemoteError,
    UnknownCommandError,
    ValidationError,
)
from core.domain.models import EngineMessage, MessageKind, StatusLevel
from core.interfaces.collaborators import Assistant, MessageSink
from core.services.cancellation import CancellationToken
from core.services.command_parser import extract_command, strip_command_blocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Executing:
    token: CancellationToken
    command: Command


DispatcherState = Union[Idle, Executing]


def _error_text(exc: EngineError) -> str:
    text = f"❌ Error executing action: {exc.message}"
    if isinstance(exc, FatalRemoteError) and exc.is_credential_problem:
        text += " Please check the configured API key and its permissions."
    if exc.partial_results:
        text += f" ({len(exc.partial_results)} sub-call(s) completed before the failure were not rolled back.)"
    return text


class Dispatcher:
    def __init__(
        self,
        catalog: Catalog,
        api: MerakiApi,
        settings: AppSettings,
        sink: MessageSink,
        assistant: Assistant | None = None,
    ) -> None:
        self._catalog = catalog
        self._api = api
        self._settings = settings
        self._sink = sink
        self._assistant = assistant
        self._state: DispatcherState = Idle()
        self._active_turns = 0

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def busy(self) -> bool:
        """True mientras se ejecuta un comando o hay un turno del asistente (usuario o encadenado) en curso."""

        return isinstance(self._state, Executing) or self._active_turns > 0

    def cancel(self, reason: str | None = None) -> bool:
        """Señala al comando en curso. Devuelve False si no se ejecuta nada."""

        state = self._state
        if not isinstance(state, Executing):
            return False
        logger.info("Cancelling action %s", state.command.name)
        return state.token.cancel(reason or "Operation cancelled by user.")

    async def dispatch(self, command: Command, *, depth: int = 0) -> CommandResult | None:
        """Ejecuta un comando. Devuelve None si la guarda lo descartó."""

        if isinstance(self._state, Executing):
            logger.warning(
                "Dropping action %s: action %s is still executing",
                command.name,
                self._state.command.name,
            )
            return None

        self._active_turns += 1
        try:
            token = CancellationToken()
            self._state = Executing(token=token, command=command)
            try:
                operation, result = await self._run(command, token)
            finally:
                self._state = Idle()

            await self._publish_outcome(command, operation, result)
            if isinstance(result, Ok) and operation is not None and operation.chained and result.data:
                await self._chain(operation, result, depth)
            return result
        finally:
            self._active_turns -= 1

    async def converse(
        self,
        text: str,
        *,
        author: str | None = None,
        depth: int = 0,
        echo: bool = True,
    ) -> CommandResult | None:
        """Un turno del asistente: envía `text`, publica la narración y ejecuta el comando de la respuesta."""

        if echo:
            await self._sink.publish(
                EngineMessage(kind=MessageKind.USER, text=text, author=author, relay=False)
            )
        if self._assistant is None:
            await self._status("⚠️ No assistant is configured; message not answered.", StatusLevel.WARNING)
            return None

        self._active_turns += 1
        try:
            try:
                prompt = text if author is None else f"(Message from Webex user: {author})\n{text}"
                reply = await self._assistant.respond(prompt)
            except AssistantUnavailableError as exc:
                logger.error("Assistant unavailable: %s", exc.message)
                await self._status(f"❌ Assistant error: {exc.message}", StatusLevel.ERROR)
                return None
            return await self.handle_reply(reply, depth=depth)
        finally:
            self._active_turns -= 1

    async def handle_reply(self, reply: str, *, depth: int = 0) -> CommandResult | None:
        """Publica una respuesta del asistente y despacha el comando que traiga, si hay."""

        narration = strip_command_blocks(reply)
        try:
            command = extract_command(reply)
        except ValidationError as exc:
            if narration:
                await self._sink.publish(EngineMessage(kind=MessageKind.ASSISTANT, text=narration))
            text = _error_text(exc)
            await self._status(text, StatusLevel.ERROR)
            return Err(kind=ErrorKind.VALIDATION, message=text)

        if narration:
            await self._sink.publish(EngineMessage(kind=MessageKind.ASSISTANT, text=narration))
        if command is None:
            return None

        if depth > self._settings.max_chain_depth:
            logger.warning(
                "Not executing chained action %s: depth %d exceeds the limit of %d",
                command.name,
                depth,
                self._settings.max_chain_depth,
            )
            await self._status(
                f"⚠️ Chained action '{command.name}' was not executed: the chain depth limit "
                f"({self._settings.max_chain_depth}) was reached.",
                StatusLevel.WARNING,
            )
            return None
        return await self.dispatch(command, depth=depth)

    # Internos

    async def _run(self, command: Command, token: CancellationToken) -> tuple[Operation | None, CommandResult]:
        operation: Operation | None = None
        try:
            operation = self._catalog.get(command.name)
            logger.info("Executing action %s with %s", operation.name, dict(command.payload))
            ctx = OperationContext(api=self._api, token=token, settings=self._settings)
            return operation, await operation.execute(ctx, command.payload)
        except CancellationError as exc:
            logger.info("Action %s cancelled: %s", command.name, exc.message)
            return operation, Err(ErrorKind.CANCELLED, exc.message, tuple(exc.partial_results))
        except UnknownCommandError as exc:
            logger.warning("Assistant requested unknown action %s", command.name)
            return operation, Err(ErrorKind.UNKNOWN_COMMAND, exc.message)
        except ValidationError as exc:
            return operation, Err(ErrorKind.VALIDATION, _error_text(exc), tuple(exc.partial_results))
        except RemoteError as exc:
            logger.warning("Action %s failed on %s: %s", command.name, exc.endpoint, exc.message)
            return operation, Err(ErrorKind.FATAL_REMOTE, _error_text(exc), tuple(exc.partial_results))
        except EngineError as exc:
            return operation, Err(ErrorKind.INTERNAL, _error_text(exc), tuple(exc.partial_results))
        except Exception as exc:
            logger.exception("Unexpected failure in action %s", command.name)
            return operation, Err(ErrorKind.INTERNAL, f"❌ Error executing action: {exc}")

    async def _publish_outcome(self, command: Command, operation: Operation | None, result: CommandResult) -> None:
        if isinstance(result, Ok):
            level = StatusLevel.INFO if operation is not None and operation.chained else StatusLevel.SUCCESS
            await self._status(result.human_summary, level)
        elif result.kind is ErrorKind.CANCELLED:
            await self._status(f"Action '{command.name}' was cancelled.", StatusLevel.CANCELLED)
        elif result.kind is ErrorKind.UNKNOWN_COMMAND:
            await self._status(f"⚠️ {result.message} Nothing was executed.", StatusLevel.WARNING)
        else:
            await self._status(result.message, StatusLevel.ERROR)

    async def _chain(self, operation: Operation, result: Ok, depth: int) -> None:
        if self._assistant is None:
            await self._sink.publish(
                EngineMessage(kind=MessageKind.DATA, text=f"```json\n{to_json(result.data)}\n```")
            )
            return
        prompt = operation.build_prompt(result)
        await self.converse(prompt, depth=depth + 1, echo=False)

    async def _status(self, text: str, level: StatusLevel) -> None:
        await self._sink.publish(EngineMessage(kind=MessageKind.STATUS, text=text, level=level))
