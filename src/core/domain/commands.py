"""Comandos emitidos por el asistente y sus resultados."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class Command:
    """Pedido parseado e inmutable de ejecutar una operación del catálogo."""

    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    FATAL_REMOTE = "fatal_remote"
    CANCELLED = "cancelled"
    UNKNOWN_COMMAND = "unknown_command"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Ok:
    data: Any
    human_summary: str

    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    partial: tuple[Any, ...] = ()

    ok: bool = field(default=False, init=False)


CommandResult = Union[Ok, Err]
