"""Lecturas a nivel de organización."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from core.catalog.registry import Catalog, Family, OperationContext, Payload, found
from core.catalog.simple import add_read
from core.domain.commands import Ok
from core.domain.models import VpnStatus


class ConfigChangesPayload(Payload):
    """Alcance opcional: un network id, o un serial de device para resolverlo."""

    network_id: str | None = Field(default=None, validation_alias=AliasChoices("networkId", "network"))
    serial: str | None = Field(default=None, validation_alias=AliasChoices("resourceId", "serial"))


async def list_devices(ctx: OperationContext, payload: Payload) -> Ok:
    devices = await ctx.api.get_org_devices(token=ctx.token)
    return found("devices", [d.model_dump(mode="json", by_alias=True) for d in devices])


async def get_vpn_status(ctx: OperationContext, payload: Payload) -> Ok:
    raw = await ctx.api.get_pages(
        f"/organizations/{ctx.api.org_id}/appliance/vpn/statuses", token=ctx.token
    )
    statuses = [
        VpnStatus.model_validate(s).model_dump(mode="json", by_alias=True) for s in raw if isinstance(s, dict)
    ]
    if not statuses:
        return found("site-to-site VPN statuses", statuses)
    return Ok(
        data=statuses,
        human_summary=f"Found VPN status for {len(statuses)} networks. Sending to AI for summary...",
    )


async def get_config_changes(ctx: OperationContext, payload: ConfigChangesPayload) -> Ok:
    network_id = payload.network_id
    if not network_id and payload.serial:
        network_id = await ctx.api.resolve_network_id(payload.serial, token=ctx.token)
    changes = await ctx.api.get_config_changes(network_id=network_id, token=ctx.token)
    return found(
        "configuration changes",
        [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in changes],
    )


def register(catalog: Catalog) -> None:
    add_read(
        catalog,
        "list_networks",
        "/organizations/{org_id}/networks",
        scope="org",
        paginate=True,
        topic="networks",
        description="List the networks of the organization.",
    )

    catalog.register(
        "list_devices",
        family=Family.READ,
        description="List every device of the organization with its current status.",
        topic="devices",
    )(list_devices)

    add_read(
        catalog,
        "get_device_statuses",
        "/organizations/{org_id}/devices/statuses",
        scope="org",
        paginate=True,
        topic="device statuses",
        description="Online/offline/alerting status of every device of the organization.",
        instructions="Summarize how many devices are in each state and list the ones that are not online.",
    )
    add_read(
        catalog,
        "get_inventory",
        "/organizations/{org_id}/inventory/devices",
        scope="org",
        paginate=True,
        topic="inventory devices",
        description="Devices in the organization inventory, claimed or not assigned to a network.",
    )
    add_read(
        catalog,
        "get_license_overview",
        "/organizations/{org_id}/licenses/overview",
        scope="org",
        topic="license overview",
        description="License status and expiration of the organization.",
    )
    add_read(
        catalog,
        "get_admins",
        "/organizations/{org_id}/admins",
        scope="org",
        topic="dashboard administrators",
        description="Dashboard administrators of the organization and their privileges.",
    )
    add_read(
        catalog,
        "get_uplink_statuses",
        "/organizations/{org_id}/uplinks/statuses",
        scope="org",
        paginate=True,
        topic="uplink statuses",
        description="Uplink status of every uplink-capable device of the organization.",
    )
    add_read(
        catalog,
        "get_appliance_uplink_statuses",
        "/organizations/{org_id}/appliance/uplink/statuses",
        scope="org",
        paginate=True,
        topic="security appliance uplink statuses",
        description="Uplink status of the security appliances (MX) of the organization.",
    )
    add_read(
        catalog,
        "get_firmware_upgrades",
        "/organizations/{org_id}/firmware/upgrades",
        scope="org",
        topic="firmware upgrades",
        description="Scheduled and past firmware upgrades of the organization.",
    )
    add_read(
        catalog,
        "get_device_availabilities",
        "/organizations/{org_id}/devices/availabilities",
        scope="org",
        paginate=True,
        topic="device availabilities",
        description="Availability of every device of the organization.",
    )
    add_read(
        catalog,
        "get_api_requests",
        "/organizations/{org_id}/apiRequests/overview",
        scope="org",
        timespan=True,
        topic="API request statistics",
        description="Overview of API requests made against the organization, by response code.",
    )

    catalog.register(
        "get_vpn_status",
        family=Family.READ,
        description="Site-to-site VPN status of every network of the organization.",
        aliases=("get_site_to_site_vpn_status",),
        topic="site-to-site VPN statuses",
        instructions=(
            "Please analyze this data and provide a concise, user-friendly summary. Mention how many "
            "networks are participating in the VPN and a high-level overview of their connection status."
        ),
    )(get_vpn_status)

    catalog.register(
        "get_config_changes",
        family=Family.READ,
        schema=ConfigChangesPayload,
        description=(
            "Recent configuration changes made by administrators, organization-wide or for one network "
            "(networkId or a device serial)."
        ),
        topic="configuration changes",
        instructions=(
            "Please analyze them, provide a summary, and determine the probable root cause of the issue discussed."
        ),
    )(get_config_changes)
