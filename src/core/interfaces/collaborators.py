"""Contratos de los colaboradores del motor.

Por qué Protocol:
- El motor solo necesita *publicar* un mensaje y *preguntar* al asistente;
  cómo se dibuja, guarda o reenvía un mensaje es cosa del adapter.
- Los tests enchufan fakes que graban, sin herencia.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import EngineMessage


@runtime_checkable
class MessageSink(Protocol):
    """Recibe cada mensaje que produce el motor (status, narración, eco)."""

    async def publish(self, message: EngineMessage) -> None:
        ...


@runtime_checkable
class Assistant(Protocol):
    """Modelo conversacional que puede incrustar comandos en sus respuestas."""

    async def respond(self, prompt: str) -> str:
        """Envía `prompt` como siguiente turno del usuario y devuelve el texto de respuesta."""

        ...
