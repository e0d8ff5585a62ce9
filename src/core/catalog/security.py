"""Operaciones del security appliance (MX)."""

from __future__ import annotations

from pydantic import Field

from core.catalog.registry import Catalog, Family, NetworkPayload, OperationContext, found
from core.catalog.simple import add_read
from core.domain.commands import Ok
from core.domain.models import FirewallRule


class FirewallRulesPayload(NetworkPayload):
    """La lista completa de reglas nueva. La regla allow por defecto es implícita."""

    rules: list[FirewallRule] = Field(...)


async def get_firewall_rules(ctx: OperationContext, payload: NetworkPayload) -> Ok:
    network_id = await ctx.network_id_for(payload)
    rules = await ctx.api.get_l3_firewall_rules(network_id, token=ctx.token)
    return found("L3 firewall rules", rules)


async def update_firewall_rules(ctx: OperationContext, payload: FirewallRulesPayload) -> Ok:
    rules = [rule.model_dump(by_alias=True) for rule in payload.rules]
    network_id = await ctx.network_id_for(payload)
    data = await ctx.api.update_l3_firewall_rules(network_id, rules, token=ctx.token)
    return Ok(
        data=data,
        human_summary=f"✅ Success! L3 firewall rules have been updated for network {network_id}.",
    )


def register(catalog: Catalog) -> None:
    catalog.register(
        "get_firewall_rules",
        family=Family.READ,
        schema=NetworkPayload,
        description="Layer 3 firewall rules of the network of a security appliance.",
        aliases=("get_l3_firewall_rules",),
        topic="L3 firewall rules",
        instructions="Please summarize them for the user.",
        example={"resourceId": "Q234-ABCD-5678"},
    )(get_firewall_rules)

    catalog.register(
        "update_firewall_rules",
        family=Family.DIRECT,
        schema=FirewallRulesPayload,
        description=(
            "REPLACES the entire L3 firewall rule list of a network. To add, change or delete a rule, "
            "first fetch the current rules with get_firewall_rules, modify the list, and send the "
            "complete new list. Each rule needs at least a policy ('allow' or 'deny')."
        ),
        aliases=("update_l3_firewall_rules",),
        example={
            "resourceId": "Q234-ABCD-5678",
            "rules": [
                {
                    "comment": "Block guest to servers",
                    "policy": "deny",
                    "protocol": "any",
                    "srcCidr": "10.0.50.0/24",
                    "destCidr": "10.0.10.0/24",
                }
            ],
        },
    )(update_firewall_rules)

    add_read(
        catalog,
        "get_l7_firewall_rules",
        "/networks/{network_id}/appliance/firewall/l7FirewallRules",
        scope="network",
        topic="L7 firewall rules",
        description="Layer 7 (application) firewall rules of a network.",
    )
    add_read(
        catalog,
        "get_port_forwarding_rules",
        "/networks/{network_id}/appliance/firewall/portForwardingRules",
        scope="network",
        topic="port forwarding rules",
        description="Port forwarding rules of a network's security appliance.",
    )
    add_read(
        catalog,
        "get_site_to_site_vpn",
        "/networks/{network_id}/appliance/vpn/siteToSiteVpn",
        scope="network",
        topic="site-to-site VPN settings",
        description="Site-to-site VPN mode, hubs and subnets of a network.",
    )
    add_read(
        catalog,
        "get_content_filtering",
        "/networks/{network_id}/appliance/contentFiltering",
        scope="network",
        topic="content filtering settings",
        description="Blocked URL categories and patterns of a network.",
    )
    add_read(
        catalog,
        "get_traffic_shaping_rules",
        "/networks/{network_id}/appliance/trafficShaping/rules",
        scope="network",
        topic="traffic shaping rules",
        description="Traffic shaping rules of a network's security appliance.",
    )
