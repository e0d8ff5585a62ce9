"""Operaciones de devices: detalle, live tools, claim, logs de eventos y diagnóstico."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from core.catalog.registry import (
    Catalog,
    DevicePayload,
    Family,
    NetworkPayload,
    Operation,
    OperationContext,
    Payload,
    found,
    to_json,
)
from core.catalog.simple import add_mutation, add_read, settings_body
from core.domain.commands import Ok
from core.domain.errors import ValidationError
from core.domain.models import product_type_for_model

logger = logging.getLogger(__name__)

ROOT_CAUSE_INSTRUCTIONS = (
    "Please analyze them, provide a summary, and determine the probable root cause of the issue discussed."
)


class DeviceSettingsPayload(DevicePayload):
    """Serial más los atributos del device a cambiar (name, tags, address, notes...)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class BlinkPayload(DevicePayload):
    duration: int | None = Field(default=None, ge=5, le=120)


class PingPayload(DevicePayload):
    target: str | None = None
    count: int | None = Field(default=None, ge=1, le=5)


class RemoveDevicePayload(NetworkPayload):
    @model_validator(mode="after")
    def _needs_serial(self) -> "RemoveDevicePayload":
        if not self.serial:
            raise ValueError("resourceId (serial of the device to remove) is required")
        return self


class ClaimPayload(Payload):
    network_name: str = Field(..., min_length=1, validation_alias=AliasChoices("containerName", "networkName"))
    serials: list[str] = Field(..., min_length=1, validation_alias=AliasChoices("ids", "serials"))

    @field_validator("serials", mode="before")
    @classmethod
    def _single_serial(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [s.strip() for s in value.split(",") if s.strip()]
        return value


class EventsPayload(DevicePayload):
    """Serial, opcionalmente con network id y modelo para evitar buscar el device."""

    network_id: str | None = Field(default=None, validation_alias=AliasChoices("networkId", "network"))
    model: str | None = None


class DiagnosePayload(EventsPayload):
    name: str | None = None
    status: str | None = None


def product_type_or_default(model: str | None, serial: str) -> str:
    product_type = product_type_for_model(model or "")
    if product_type is None:
        logger.warning(
            "Unknown product type for device %s (model %r), querying appliance events", serial, model
        )
        return "appliance"
    return product_type


async def _device_facts(ctx: OperationContext, payload: EventsPayload) -> dict[str, Any]:
    """Network id, modelo y nombre del device; se consultan solo si faltan."""

    facts: dict[str, Any] = {
        "serial": payload.serial,
        "networkId": payload.network_id,
        "model": payload.model,
        "name": getattr(payload, "name", None),
    }
    if facts["networkId"] and facts["model"]:
        return facts

    device = await ctx.api.get_device(payload.serial, token=ctx.token)
    for key in ("networkId", "model", "name"):
        facts[key] = facts[key] or device.get(key)
    if not facts["networkId"]:
        raise ValidationError(f"Device {payload.serial} is not assigned to a network.")
    return facts


async def get_events(ctx: OperationContext, payload: EventsPayload) -> Ok:
    facts = await _device_facts(ctx, payload)
    product_type = product_type_or_default(facts["model"], payload.serial)
    events = await ctx.api.get_network_events(
        facts["networkId"], serial=payload.serial, product_type=product_type, token=ctx.token
    )
    records = [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in events]
    return found(f"event logs for device {facts['name'] or payload.serial}", records)


async def diagnose_device(ctx: OperationContext, payload: DiagnosePayload) -> Ok:
    """Análisis de causa raíz: eventos del device y cambios de config de la red, pedidos a la vez."""

    facts = await _device_facts(ctx, payload)
    name = facts["name"] or payload.serial
    product_type = product_type_or_default(facts["model"], payload.serial)

    # Ambas lecturas terminan antes de propagar el primer error.
    results = await asyncio.gather(
        ctx.api.get_network_events(
            facts["networkId"], serial=payload.serial, product_type=product_type, token=ctx.token
        ),
        ctx.api.get_config_changes(network_id=facts["networkId"], token=ctx.token),
        return_exceptions=True,
    )
    for outcome in results:
        if isinstance(outcome, BaseException):
            raise outcome
    events, changes = results

    if not events and not changes:
        return Ok(
            data=None,
            human_summary=(
                f"No recent events or configuration changes found for {name}. Unable to determine cause."
            ),
        )

    data = {
        "device": {"name": name, "serial": payload.serial, "model": facts["model"], "networkId": facts["networkId"]},
        "status": payload.status,
        "events": [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in events],
        "configChanges": [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in changes],
    }
    return Ok(
        data=data,
        human_summary=(
            f"Found {len(events)} relevant events and {len(changes)} configuration changes. "
            "Sending to AI for analysis..."
        ),
    )


def diagnose_prompt(operation: Operation, result: Ok) -> str:
    data = result.data
    device = data["device"]
    if data.get("status"):
        situation = f'has just entered a problematic state: "{data["status"]}"'
    else:
        situation = "was reported as having a problem"
    return (
        f'CONTEXT: The device "{device["name"]}" ({device["serial"]}) {situation}. I have automatically '
        "retrieved its recent event logs and the network's recent configuration changes for you to "
        "analyze. Please provide a summary of these findings and determine the probable root cause "
        "for this status change."
        f"\n\nDEVICE EVENT LOGS:\n{to_json(data['events'])}"
        f"\n\nNETWORK CONFIGURATION CHANGES:\n{to_json(data['configChanges'])}\n"
    )


async def claim_resources(ctx: OperationContext, payload: ClaimPayload) -> Ok:
    networks = await ctx.api.get_org_networks(token=ctx.token)
    wanted = payload.network_name.strip().lower()
    target = next((n for n in networks if n.name.lower() == wanted), None)
    if target is None:
        available = ", ".join(n.name for n in networks) or "none"
        raise ValidationError(
            f'Could not find a network named "{payload.network_name}". Please check the name and try '
            f"again. Available networks: {available}"
        )

    data = await ctx.api.claim_devices(target.id, list(payload.serials), token=ctx.token)
    return Ok(
        data=data,
        human_summary=(
            f"✅ Success! Claimed {len(payload.serials)} device(s) into network {target.name}: "
            f"{', '.join(payload.serials)}."
        ),
    )


def register(catalog: Catalog) -> None:
    catalog.register(
        "get_events",
        family=Family.READ,
        schema=EventsPayload,
        description="Fetch the recent event log of a device, for troubleshooting and root cause analysis.",
        aliases=("get_device_events",),
        topic="device event logs",
        instructions=ROOT_CAUSE_INSTRUCTIONS,
        example={"resourceId": "Q234-ABCD-5678"},
    )(get_events)

    catalog.register(
        "diagnose_device",
        family=Family.CORRELATION,
        schema=DiagnosePayload,
        description=(
            "Full root cause analysis of a device: its event logs together with the recent "
            "configuration changes of its network."
        ),
        topic="device diagnostics",
        prompt=diagnose_prompt,
        example={"resourceId": "Q234-ABCD-5678"},
    )(diagnose_device)

    catalog.register(
        "claim_resources",
        family=Family.DIRECT,
        schema=ClaimPayload,
        description="Claim one or more devices (by serial) into a network, identified by its name.",
        aliases=("claim_devices",),
        example={"containerName": "Branch Office", "ids": ["Q234-ABCD-5678"]},
    )(claim_resources)

    add_read(
        catalog,
        "get_device",
        "/devices/{serial}",
        scope="device",
        topic="device details",
        description="Details of a single device: name, model, network, addresses, firmware.",
    )
    add_mutation(
        catalog,
        "update_device",
        "/devices/{serial}",
        method="PUT",
        scope="device",
        schema=DeviceSettingsPayload,
        body=settings_body,
        description="Update device attributes such as name, tags, address or notes.",
        success="Device {serial} has been updated.",
        example={"resourceId": "Q234-ABCD-5678", "name": "Lobby Switch"},
    )
    add_mutation(
        catalog,
        "reboot_device",
        "/devices/{serial}/reboot",
        method="POST",
        scope="device",
        description="Reboot a device.",
        success="Reboot of device {serial} has been requested.",
    )
    add_mutation(
        catalog,
        "blink_leds",
        "/devices/{serial}/blinkLeds",
        method="POST",
        scope="device",
        schema=BlinkPayload,
        body=lambda p: p.model_dump(exclude_none=True, exclude={"serial"}),
        description="Blink the LEDs of a device so it can be found on site. Optional duration in seconds.",
        success="LEDs of device {serial} are blinking.",
    )
    add_mutation(
        catalog,
        "ping_device",
        "/devices/{serial}/liveTools/ping",
        method="POST",
        scope="device",
        schema=PingPayload,
        body=lambda p: p.model_dump(exclude_none=True, exclude={"serial"}),
        description="Start a live ping from a device to a target (defaults to the device's own gateway).",
        success="Ping started from device {serial}.",
        example={"resourceId": "Q234-ABCD-5678", "target": "8.8.8.8", "count": 5},
    )
    add_read(
        catalog,
        "get_device_clients",
        "/devices/{serial}/clients",
        scope="device",
        timespan=True,
        topic="clients of the device",
        description="Clients seen by a device recently.",
    )
    add_read(
        catalog,
        "get_lldp_cdp",
        "/devices/{serial}/lldpCdp",
        scope="device",
        topic="LLDP/CDP neighbors",
        description="LLDP and CDP neighbor information of a device's ports.",
    )
    add_read(
        catalog,
        "get_management_interface",
        "/devices/{serial}/managementInterface",
        scope="device",
        topic="management interface settings",
        description="Management interface (WAN/IP) settings of a device.",
    )
    add_read(
        catalog,
        "get_wireless_status",
        "/devices/{serial}/wireless/status",
        scope="device",
        topic="wireless radio status",
        description="SSID and radio status of a wireless access point.",
    )
    add_mutation(
        catalog,
        "remove_device",
        "/networks/{network_id}/devices/remove",
        method="POST",
        scope="network",
        schema=RemoveDevicePayload,
        body=lambda p: {"serial": p.serial},
        description="Remove a device from its network. The device stays in the organization inventory.",
        success="Device {serial} has been removed from network {network_id}.",
        example={"resourceId": "Q234-ABCD-5678"},
    )
