"""Operaciones de puertos de switch (serie MS).

Las entradas entienden rangos: ``portId`` puede ser ``"5"``, ``"5-8"`` o
``"1,3,5-7"``. El rango se expande antes de cualquier llamada remota y las
llamadas por puerto van una tras otra, en orden.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.config import ConfigDict

from core.catalog.registry import (
    Catalog,
    Family,
    NetworkPayload,
    Operation,
    OperationContext,
    PortPayload,
    found,
    to_json,
)
from core.catalog.simple import add_mutation, add_read
from core.domain.commands import Ok
from core.domain.errors import FatalRemoteError, ValidationError
from core.domain.models import PortStatSample, SwitchPortSettings
from core.domain.ranges import expand_port_range, is_range
from core.domain.stats import merge_port_series


class PortSettingsPayload(PortPayload):
    """Id de puerto más cualquier ajuste escribible (name, vlan, type, poeEnabled...)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class AclPayload(NetworkPayload):
    rules: list[dict[str, Any]] = Field(...)


def _port_settings(payload: PortSettingsPayload) -> dict[str, Any]:
    try:
        settings = SwitchPortSettings.model_validate(payload.model_extra or {})
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid switch port settings: {exc.errors()[0].get('msg')}") from exc
    return settings.to_body()


async def update_port(ctx: OperationContext, payload: PortSettingsPayload) -> Ok:
    ports = expand_port_range(payload.port_id)
    body = _port_settings(payload)
    serial = payload.serial

    results = await ctx.run_sequential(
        ports, lambda port: ctx.api.update_switch_port(serial, port, body, token=ctx.token)
    )
    data = results if len(ports) > 1 else results[0]
    return Ok(data=data, human_summary=f"✅ Success! Port(s) {payload.port_id} on {serial} have been updated.")


async def cycle_port(ctx: OperationContext, payload: PortPayload) -> Ok:
    ports = expand_port_range(payload.port_id)
    serial = payload.serial

    results = await ctx.run_sequential(
        ports, lambda port: ctx.api.cycle_switch_ports(serial, [port], token=ctx.token)
    )
    return Ok(
        data=results if len(ports) > 1 else results[0],
        human_summary=f"✅ Success! Port(s) {payload.port_id} on {serial} have been power cycled.",
    )


async def _port_details(ctx: OperationContext, serial: str, port_id: str, ports: list[str]) -> Any:
    all_ports = await ctx.api.get_switch_ports(serial, token=ctx.token)
    if is_range(port_id):
        by_id = {str(p.get("portId")): p for p in all_ports if isinstance(p, dict)}
        return [by_id[p] for p in ports if p in by_id]

    for port in all_ports:
        if isinstance(port, dict) and str(port.get("portId")) == ports[0]:
            return port
    raise FatalRemoteError(
        f"Port {port_id} not found on device {serial}.",
        endpoint=f"/devices/{serial}/switch/ports",
        status_code=404,
    )


async def get_port(ctx: OperationContext, payload: PortPayload) -> Ok:
    ports = expand_port_range(payload.port_id)
    details = await _port_details(ctx, payload.serial, payload.port_id, ports)
    return found(f"port configuration(s) for {payload.port_id} on {payload.serial}", details)


async def get_port_stats(ctx: OperationContext, payload: PortPayload) -> Ok:
    ports = expand_port_range(payload.port_id)
    serial = payload.serial

    details = await _port_details(ctx, serial, payload.port_id, ports)
    series = await ctx.run_sequential(
        ports, lambda port: ctx.api.get_switch_port_stats(serial, port, token=ctx.token)
    )
    stats_by_port: dict[str, list[PortStatSample]] = dict(zip(ports, series))
    aggregate = merge_port_series(stats_by_port)

    data = {
        "serial": serial,
        "portId": payload.port_id,
        "configuration": details,
        "statsByPort": {
            port: [s.model_dump(mode="json") for s in samples] for port, samples in stats_by_port.items()
        },
        "aggregate": [s.model_dump(mode="json") for s in aggregate],
    }
    return Ok(data=data, human_summary="Found data. Sending to AI for summary...")


def port_stats_prompt(operation: Operation, result: Ok) -> str:
    data = result.data
    if is_range(str(data.get("portId", ""))):
        focus = (
            "This is a range of ports. Summarize the configuration (e.g., if VLANs are consistent) "
            "and provide aggregate traffic stats."
        )
    else:
        focus = (
            "Mention the port's name, enabled status, VLAN config, and a summary of the traffic "
            "(e.g., total data transferred)."
        )
    return (
        "CONTEXT: Here is the configuration and recent traffic statistics for the requested switch "
        f"port(s). Please analyze and provide a user-friendly summary. {focus}"
        f"\n\nPORT CONFIGURATION(S): {to_json(data.get('configuration'))}"
        f"\n\nPORT TRAFFIC (bytes sent/received per port): {to_json(data.get('statsByPort'))}"
        f"\n\nAGGREGATED TRAFFIC: {to_json(data.get('aggregate'))}"
    )


def register(catalog: Catalog) -> None:
    catalog.register(
        "update_port",
        family=Family.DIRECT,
        schema=PortSettingsPayload,
        description=(
            "Modify the configuration of one port or a range of ports on a switch. "
            "Parse requests like 'ports 5 through 10' into portId '5-10'. Other settings are optional."
        ),
        aliases=("update_switch_port",),
        range_aware=True,
        example={
            "resourceId": "Q234-ABCD-5678",
            "portId": "5-8",
            "name": "User Ports",
            "type": "access",
            "vlan": 100,
            "poeEnabled": True,
            "stpGuard": "bpdu guard",
        },
    )(update_port)

    catalog.register(
        "cycle_port",
        family=Family.DIRECT,
        schema=PortPayload,
        description="Power cycle (PoE) one port or a range of ports on a switch.",
        aliases=("cycle_switch_port", "cycle_switch_ports"),
        range_aware=True,
        example={"resourceId": "Q234-ABCD-5678", "portId": "3"},
    )(cycle_port)

    catalog.register(
        "get_port",
        family=Family.READ,
        schema=PortPayload,
        description="Fetch the configuration of one port or a range of ports on a switch.",
        aliases=("get_switch_port",),
        topic="switch port configurations",
        range_aware=True,
        example={"resourceId": "Q234-ABCD-5678", "portId": "5-8"},
    )(get_port)

    catalog.register(
        "get_port_stats",
        family=Family.AGGREGATION,
        schema=PortPayload,
        description=(
            "Fetch recent traffic statistics (bytes sent/received) and configuration for a single "
            "switch port or a range of ports. Use this for port status, traffic or details."
        ),
        aliases=("get_switch_port_stats",),
        topic="switch port statistics",
        prompt=port_stats_prompt,
        range_aware=True,
        example={"resourceId": "Q234-ABCD-5678", "portId": "5-8"},
    )(get_port_stats)

    add_read(
        catalog,
        "get_switch_ports",
        "/devices/{serial}/switch/ports",
        scope="device",
        topic="switch ports",
        description="List every port of a switch with its configuration.",
    )
    add_read(
        catalog,
        "get_switch_port_statuses",
        "/devices/{serial}/switch/ports/statuses",
        scope="device",
        topic="switch port statuses",
        description="Link status, speed, errors and PoE usage of every port of a switch.",
        instructions="Point out ports that are down, have errors or warnings, and summarize the rest.",
    )
    add_read(
        catalog,
        "get_routing_interfaces",
        "/devices/{serial}/switch/routing/interfaces",
        scope="device",
        topic="layer 3 routing interfaces",
        description="List the layer 3 interfaces of a switch.",
    )
    add_read(
        catalog,
        "get_stp_settings",
        "/networks/{network_id}/switch/stp",
        scope="network",
        topic="spanning tree settings",
        description="Spanning tree (RSTP) settings of a switch network.",
    )
    add_read(
        catalog,
        "get_switch_acl",
        "/networks/{network_id}/switch/accessControlLists",
        scope="network",
        topic="switch access control list rules",
        description="Access control list rules of a switch network.",
    )
    add_mutation(
        catalog,
        "update_switch_acl",
        "/networks/{network_id}/switch/accessControlLists",
        method="PUT",
        scope="network",
        schema=AclPayload,
        body=lambda p: {"rules": p.rules},
        description=(
            "REPLACES all access control list rules of a switch network. Fetch the current rules "
            "first with get_switch_acl and submit the complete new list."
        ),
        success="Switch ACL rules have been updated for network {network_id}.",
    )
