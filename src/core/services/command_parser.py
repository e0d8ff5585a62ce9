"""Extracción de comandos emitidos por el asistente.

Formato en el cable::

    <execute_action>{"action": "<name>", "payload": {...}}</execute_action>

Por qué un parser propio:
- El modelo a veces envuelve el cuerpo en un fence ```json; se tolera.
- Texto sin bloque es narración pura y no produce comando.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from core.domain.commands import Command
from core.domain.errors import ValidationError

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(r"<execute_action>(.*?)</execute_action>", re.DOTALL)
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def _strip_fence(body: str) -> str:
    body = body.strip()
    match = _FENCE_RE.match(body)
    return match.group(1).strip() if match else body


def _name_key(raw: dict[str, Any]) -> str:
    action = raw.get("action")
    if isinstance(action, str) and action.strip():
        return "action"
    return "name"


def extract_command(text: str) -> Command | None:
    """Devuelve el primer comando de `text`, o None si no hay bloque.

    Con payload aplanado solo se descarta la clave que dio el nombre: si
    `action` nombra el comando, `name` sigue siendo un dato del payload.

    Raises:
        ValidationError: el bloque no es un objeto JSON, no trae nombre de
            acción, o su payload no es un objeto.
    """

    blocks = _BLOCK_RE.findall(text or "")
    if not blocks:
        return None
    if len(blocks) > 1:
        logger.warning("Found %d action blocks in one reply, only the first is executed", len(blocks))

    body = _strip_fence(blocks[0])
    try:
        raw = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"The action block is not valid JSON: {exc.msg}.") from exc
    if not isinstance(raw, dict):
        raise ValidationError("The action block must be a JSON object.")

    key = _name_key(raw)
    name = raw.get(key)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("The action block has no action name.")

    payload: Any
    if "payload" in raw:
        payload = raw["payload"]
        if payload is None:
            payload = {}
        elif not isinstance(payload, dict):
            raise ValidationError(f"The payload of action '{name}' must be a JSON object.")
    else:
        payload = {k: v for k, v in raw.items() if k != key}

    return Command(name=name.strip(), payload=payload)


def strip_command_blocks(text: str) -> str:
    """Narración de una respuesta, sin bloques de acción."""

    return _BLOCK_RE.sub("", text or "").strip()
