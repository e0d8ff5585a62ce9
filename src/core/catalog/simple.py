"""Entradas declarativas del catálogo sobre un único endpoint.

Por qué:
- Casi todo el catálogo es una llamada contra un endpoint; estos helpers
  arman el handler desde la plantilla del endpoint en vez de escribir cada uno.

Las plantillas pueden usar ``{org_id}``, ``{serial}``, ``{network_id}`` y
cualquier otro campo del payload (``{vlan_id}``, ``{number}``...).
"""

from __future__ import annotations

from typing import Any, Callable, Literal, Mapping

from core.catalog.registry import (
    DEFAULT_INSTRUCTIONS,
    Catalog,
    DevicePayload,
    EmptyPayload,
    Family,
    NetworkPayload,
    OperationContext,
    Payload,
    found,
)
from core.domain.commands import Ok
from core.domain.errors import ValidationError

Scope = Literal["org", "network", "device"]
BodyBuilder = Callable[[Any], Any]

_DEFAULT_SCHEMAS: dict[str, type[Payload]] = {
    "org": EmptyPayload,
    "network": NetworkPayload,
    "device": DevicePayload,
}


async def resolve_path(ctx: OperationContext, template: str, scope: Scope, payload: Payload) -> tuple[str, dict[str, Any]]:
    fields = payload.model_dump()
    if scope == "org":
        fields["org_id"] = ctx.api.org_id
    elif scope == "network":
        if not isinstance(payload, NetworkPayload):
            raise ValidationError(
                f"A network-scoped endpoint needs networkId or resourceId, got {type(payload).__name__}."
            )
        fields["network_id"] = await ctx.network_id_for(payload)
    return template.format(**fields), fields


def settings_body(payload: Payload) -> dict[str, Any]:
    """Cuerpo armado con los campos pass-through del payload (schemas con extra="allow")."""

    body = dict(payload.model_extra or {})
    if not body:
        raise ValidationError("No settings to change were provided.")
    return body


def add_read(
    catalog: Catalog,
    name: str,
    endpoint: str,
    *,
    scope: Scope,
    topic: str,
    description: str,
    schema: type[Payload] | None = None,
    params: Mapping[str, Any] | None = None,
    timespan: bool = False,
    paginate: bool = False,
    instructions: str = DEFAULT_INSTRUCTIONS,
    aliases: tuple[str, ...] = (),
    example: Mapping[str, Any] | None = None,
) -> None:
    """Registra una lectura encadenada: se consulta y luego narra el asistente."""

    async def handler(ctx: OperationContext, payload: Payload) -> Ok:
        path, _ = await resolve_path(ctx, endpoint, scope, payload)
        query = dict(params or {})
        if timespan:
            query["timespan"] = ctx.settings.event_timespan_seconds
        if paginate:
            data = await ctx.api.get_pages(path, params=query or None, token=ctx.token)
        else:
            data = await ctx.api.get(path, params=query or None, token=ctx.token)
        return found(topic, data)

    catalog.register(
        name,
        family=Family.READ,
        schema=schema or _DEFAULT_SCHEMAS[scope],
        description=description,
        topic=topic,
        instructions=instructions,
        aliases=aliases,
        example=example or {},
    )(handler)


def add_mutation(
    catalog: Catalog,
    name: str,
    endpoint: str,
    *,
    method: Literal["PUT", "POST", "DELETE"],
    scope: Scope,
    description: str,
    success: str,
    schema: type[Payload] | None = None,
    body: BodyBuilder | None = None,
    aliases: tuple[str, ...] = (),
    example: Mapping[str, Any] | None = None,
) -> None:
    """Registra una mutación terminal; `success` se formatea con los campos del payload."""

    async def handler(ctx: OperationContext, payload: Payload) -> Ok:
        request_body = body(payload) if body is not None else None
        path, fields = await resolve_path(ctx, endpoint, scope, payload)
        if method == "PUT":
            data = await ctx.api.put(path, request_body, token=ctx.token)
        elif method == "POST":
            data = await ctx.api.post(path, request_body, token=ctx.token)
        else:
            data = await ctx.api.delete(path, token=ctx.token)
        return Ok(data=data, human_summary="✅ Success! " + success.format(**fields))

    catalog.register(
        name,
        family=Family.DIRECT,
        schema=schema or _DEFAULT_SCHEMAS[scope],
        description=description,
        aliases=aliases,
        example=example or {},
    )(handler)
