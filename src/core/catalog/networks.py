"""Operaciones a nivel de red: ajustes, clientes, VLANs y SSIDs.

Toda entrada acepta ``networkId`` o un serial de device (``resourceId``) que
primero se resuelve a su red.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic.config import ConfigDict

from core.catalog.registry import Catalog, NetworkPayload
from core.catalog.simple import add_mutation, add_read, settings_body

_PASS_THROUGH = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class NetworkSettingsPayload(NetworkPayload):
    model_config = _PASS_THROUGH


class VlanPayload(NetworkPayload):
    vlan_id: str = Field(..., min_length=1, validation_alias=AliasChoices("vlanId", "vlan", "id"))

    @field_validator("vlan_id", mode="before")
    @classmethod
    def _vlan_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class VlanSettingsPayload(VlanPayload):
    model_config = _PASS_THROUGH


class CreateVlanPayload(VlanPayload):
    """Id y nombre de la VLAN, más subnet, applianceIp y otros ajustes opcionales."""

    model_config = _PASS_THROUGH

    name: str = Field(..., min_length=1)


class SsidPayload(NetworkPayload):
    model_config = _PASS_THROUGH

    number: int = Field(..., ge=0, le=14, validation_alias=AliasChoices("number", "ssidNumber", "ssid"))


def _new_vlan_body(payload: CreateVlanPayload) -> dict[str, Any]:
    body: dict[str, Any] = {"id": payload.vlan_id, "name": payload.name}
    body.update(payload.model_extra or {})
    return body


def register(catalog: Catalog) -> None:
    add_read(
        catalog,
        "get_network",
        "/networks/{network_id}",
        scope="network",
        topic="network details",
        description="Details of a network: name, product types, time zone, tags.",
    )
    add_mutation(
        catalog,
        "update_network",
        "/networks/{network_id}",
        method="PUT",
        scope="network",
        schema=NetworkSettingsPayload,
        body=settings_body,
        description="Update network attributes such as name, timeZone, tags or notes.",
        success="Network {network_id} has been updated.",
        example={"networkId": "N_1234", "name": "Branch Office"},
    )
    add_read(
        catalog,
        "get_network_devices",
        "/networks/{network_id}/devices",
        scope="network",
        topic="devices in the network",
        description="Devices assigned to a network.",
    )
    add_read(
        catalog,
        "get_network_clients",
        "/networks/{network_id}/clients",
        scope="network",
        timespan=True,
        paginate=True,
        topic="network clients",
        description="Clients that used a network recently, with their usage.",
    )
    add_read(
        catalog,
        "get_network_traffic",
        "/networks/{network_id}/traffic",
        scope="network",
        params={"timespan": 86400},
        topic="network traffic by application",
        description="Traffic analysis of a network over the last day, by application and destination.",
        instructions="Summarize the top applications and destinations by usage.",
    )
    add_read(
        catalog,
        "get_alert_settings",
        "/networks/{network_id}/alerts/settings",
        scope="network",
        topic="alert settings",
        description="Alert destinations and enabled alerts of a network.",
    )
    add_read(
        catalog,
        "get_network_firmware",
        "/networks/{network_id}/firmwareUpgrades",
        scope="network",
        topic="firmware upgrade settings",
        description="Firmware versions and upgrade windows of a network.",
    )
    add_read(
        catalog,
        "get_syslog_servers",
        "/networks/{network_id}/syslogServers",
        scope="network",
        topic="syslog servers",
        description="Syslog servers configured for a network.",
    )
    add_read(
        catalog,
        "get_snmp_settings",
        "/networks/{network_id}/snmp",
        scope="network",
        topic="SNMP settings",
        description="SNMP access settings of a network.",
    )

    add_read(
        catalog,
        "get_vlans",
        "/networks/{network_id}/appliance/vlans",
        scope="network",
        topic="VLANs",
        description="VLANs of a network's security appliance.",
    )
    add_read(
        catalog,
        "get_vlan",
        "/networks/{network_id}/appliance/vlans/{vlan_id}",
        scope="network",
        schema=VlanPayload,
        topic="VLAN settings",
        description="Settings of a single appliance VLAN.",
        example={"networkId": "N_1234", "vlanId": "100"},
    )
    add_mutation(
        catalog,
        "create_vlan",
        "/networks/{network_id}/appliance/vlans",
        method="POST",
        scope="network",
        schema=CreateVlanPayload,
        body=_new_vlan_body,
        description="Create an appliance VLAN. Optional subnet and applianceIp.",
        success="VLAN {vlan_id} ({name}) has been created in network {network_id}.",
        example={
            "networkId": "N_1234",
            "vlanId": "100",
            "name": "Voice",
            "subnet": "192.168.100.0/24",
            "applianceIp": "192.168.100.1",
        },
    )
    add_mutation(
        catalog,
        "update_vlan",
        "/networks/{network_id}/appliance/vlans/{vlan_id}",
        method="PUT",
        scope="network",
        schema=VlanSettingsPayload,
        body=settings_body,
        description="Update the settings of an appliance VLAN (name, subnet, applianceIp, DHCP...).",
        success="VLAN {vlan_id} has been updated in network {network_id}.",
        example={"networkId": "N_1234", "vlanId": "100", "name": "Voice"},
    )
    add_mutation(
        catalog,
        "delete_vlan",
        "/networks/{network_id}/appliance/vlans/{vlan_id}",
        method="DELETE",
        scope="network",
        schema=VlanPayload,
        description="Delete an appliance VLAN.",
        success="VLAN {vlan_id} has been deleted from network {network_id}.",
    )

    add_read(
        catalog,
        "get_ssids",
        "/networks/{network_id}/wireless/ssids",
        scope="network",
        topic="SSIDs",
        description="Wireless SSIDs of a network with their authentication and state.",
    )
    add_mutation(
        catalog,
        "update_ssid",
        "/networks/{network_id}/wireless/ssids/{number}",
        method="PUT",
        scope="network",
        schema=SsidPayload,
        body=settings_body,
        description="Update a wireless SSID by number (0-14): name, enabled, authMode, psk...",
        success="SSID {number} has been updated in network {network_id}.",
        example={"networkId": "N_1234", "number": 0, "name": "Guest", "enabled": True},
    )
    add_read(
        catalog,
        "get_wireless_connection_stats",
        "/networks/{network_id}/wireless/connectionStats",
        scope="network",
        timespan=True,
        topic="wireless connection statistics",
        description="Aggregated wireless connection statistics (assoc, auth, DHCP, DNS failures).",
    )
