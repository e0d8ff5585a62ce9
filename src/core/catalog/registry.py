"""Catálogo de operaciones: nombre de comando → handler tipado.

Cada `Operation` declara su schema de payload (un modelo pydantic: campos
obligatorios, aliases aceptados), su familia (terminal o encadenada) y el
handler que compone las llamadas remotas.

Nota:
- Los handlers reciben un `OperationContext` explícito con la fachada de la
  API y el token de cancelación de la ejecución.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping, TypeVar

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.config import ConfigDict

from adapters.meraki_api import MerakiApi
from core.config import AppSettings
from core.domain.commands import Ok
from core.domain.errors import EngineError, UnknownCommandError, ValidationError
from core.services.cancellation import CancellationToken

T = TypeVar("T")


class Family(str, Enum):
    DIRECT = "direct"
    READ = "read"
    AGGREGATION = "aggregation"
    CORRELATION = "correlation"

    @property
    def chained(self) -> bool:
        """Los resultados encadenados vuelven al asistente en vez de mostrarse."""

        return self is not Family.DIRECT


# Schemas de payload


class Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class EmptyPayload(Payload):
    pass


class DevicePayload(Payload):
    serial: str = Field(..., min_length=1, validation_alias=AliasChoices("resourceId", "serial"))


class PortPayload(DevicePayload):
    port_id: str = Field(..., min_length=1, validation_alias=AliasChoices("portId", "port", "ports"))

    @field_validator("port_id", mode="before")
    @classmethod
    def _port_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class NetworkPayload(Payload):
    """Alcance de red: un network id, o un serial de device para resolverlo."""

    network_id: str | None = Field(default=None, validation_alias=AliasChoices("networkId", "network"))
    serial: str | None = Field(default=None, validation_alias=AliasChoices("resourceId", "serial"))

    @model_validator(mode="after")
    def _needs_scope(self) -> "NetworkPayload":
        if not self.network_id and not self.serial:
            raise ValueError("networkId or resourceId (device serial) is required")
        return self


# Contexto de ejecución


@dataclass(frozen=True)
class OperationContext:
    api: MerakiApi
    token: CancellationToken
    settings: AppSettings

    async def network_id_for(self, payload: NetworkPayload) -> str:
        if payload.network_id:
            return payload.network_id
        if not payload.serial:
            raise ValidationError("networkId or resourceId (device serial) is required.")
        return await self.api.resolve_network_id(payload.serial, token=self.token)

    async def run_sequential(self, items: Iterable[T], call: Callable[[T], Awaitable[Any]]) -> list[Any]:
        """Ejecuta `call` por cada item, estrictamente en orden.

        El token se revisa antes de cada sub-llamada. Si algo falla, lo ya
        acumulado viaja en el error y no se deshace nada.
        """

        results: list[Any] = []
        for item in items:
            try:
                self.token.raise_if_cancelled()
                results.append(await call(item))
            except EngineError as exc:
                exc.partial_results = list(results)
                raise
        return results


Handler = Callable[[OperationContext, Any], Awaitable[Ok]]
PromptBuilder = Callable[["Operation", Ok], str]

DEFAULT_INSTRUCTIONS = "Please analyze them and provide a concise, user-friendly summary."


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def default_prompt(operation: "Operation", result: Ok) -> str:
    topic = operation.topic or operation.name.replace("_", " ")
    return (
        f"CONTEXT: Here are the {topic} you requested. {operation.instructions}"
        f"\n\nDATA:\n{to_json(result.data)}"
    )


def found(topic: str, data: Any) -> Ok:
    """Resultado estándar de una lectura: cuenta lo encontrado, o dice que no hubo nada."""

    if not data:
        return Ok(data=data, human_summary=f"No relevant {topic} found.")
    if isinstance(data, list):
        return Ok(data=data, human_summary=f"Found {len(data)} {topic}. Sending to AI for analysis...")
    return Ok(data=data, human_summary=f"Found {topic}. Sending to AI for summary...")


@dataclass(frozen=True)
class Operation:
    name: str
    family: Family
    schema: type[Payload]
    handler: Handler
    description: str
    aliases: tuple[str, ...] = ()
    topic: str | None = None
    instructions: str = DEFAULT_INSTRUCTIONS
    prompt: PromptBuilder | None = None
    range_aware: bool = False
    example: Mapping[str, Any] = field(default_factory=dict)

    @property
    def chained(self) -> bool:
        return self.family.chained

    def validate(self, payload: Mapping[str, Any]) -> Payload:
        try:
            return self.schema.model_validate(dict(payload))
        except PydanticValidationError as exc:
            problems = []
            for error in exc.errors():
                where = ".".join(str(part) for part in error.get("loc", ())) or "payload"
                problems.append(f"{where}: {error.get('msg')}")
            raise ValidationError(
                f"Action '{self.name}' is missing or has invalid payload parameters ({'; '.join(problems)})."
            ) from exc

    async def execute(self, ctx: OperationContext, payload: Mapping[str, Any]) -> Ok:
        validated = self.validate(payload)
        return await self.handler(ctx, validated)

    def build_prompt(self, result: Ok) -> str:
        builder = self.prompt or default_prompt
        return builder(self, result)

    def required_fields(self) -> list[str]:
        names: list[str] = []
        for field_name, info in self.schema.model_fields.items():
            if not info.is_required():
                continue
            alias = info.validation_alias
            if isinstance(alias, AliasChoices) and alias.choices:
                names.append(str(alias.choices[0]))
            else:
                names.append(field_name)
        if issubclass(self.schema, NetworkPayload):
            names.append("networkId|resourceId")
        return names


class Catalog:
    """Registro de operaciones, accesibles por nombre o alias."""

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}
        self._aliases: dict[str, str] = {}

    def add(self, operation: Operation) -> Operation:
        for key in (operation.name, *operation.aliases):
            if key in self._operations or key in self._aliases:
                raise ValueError(f"Duplicate catalog entry: {key}")
        self._operations[operation.name] = operation
        for alias in operation.aliases:
            self._aliases[alias] = operation.name
        return operation

    def register(
        self,
        name: str,
        *,
        family: Family,
        schema: type[Payload] = EmptyPayload,
        description: str,
        **options: Any,
    ) -> Callable[[Handler], Handler]:
        """Versión decorador de `add`."""

        def decorator(handler: Handler) -> Handler:
            self.add(
                Operation(
                    name=name,
                    family=family,
                    schema=schema,
                    handler=handler,
                    description=description,
                    **options,
                )
            )
            return handler

        return decorator

    def get(self, name: str) -> Operation:
        key = (name or "").strip()
        key = self._aliases.get(key, key)
        try:
            return self._operations[key]
        except KeyError:
            raise UnknownCommandError(name) from None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (name in self._operations or name in self._aliases)

    def __iter__(self) -> Iterator[Operation]:
        return iter(sorted(self._operations.values(), key=lambda op: op.name))

    def __len__(self) -> int:
        return len(self._operations)
