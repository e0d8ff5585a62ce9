from __future__ import annotations

import json

import httpx
import pytest

from core.catalog.registry import Catalog, OperationContext
from core.domain.errors import CancellationError, FatalRemoteError, ValidationError
from core.services.cancellation import CancellationToken
from core.services.command_parser import extract_command

from conftest import Router

PORTS_PATH = "/devices/Q2/switch/ports"


def _port(port_id: str, **extra) -> dict:
    return {"portId": port_id, "name": f"Port {port_id}", "enabled": True, "vlan": 10, **extra}


@pytest.mark.asyncio
async def test_range_update_issues_one_put_per_port_in_order(
    catalog: Catalog, ctx: OperationContext, router: Router
) -> None:
    for port in ("5", "6", "7", "8"):
        router.add("PUT", f"{PORTS_PATH}/{port}", json=_port(port, vlan=20))

    result = await catalog.get("update_port").execute(
        ctx, {"resourceId": "Q2", "portId": "5-8", "vlan": 20, "type": "access"}
    )

    puts = router.calls("PUT")
    assert [r.url.path for r in puts] == [f"{PORTS_PATH}/{p}" for p in ("5", "6", "7", "8")]
    assert all(json.loads(r.content) == {"type": "access", "vlan": 20} for r in puts)
    assert len(result.data) == 4
    assert result.human_summary == "✅ Success! Port(s) 5-8 on Q2 have been updated."


@pytest.mark.asyncio
async def test_settings_without_a_dedicated_field_reach_the_put_body(
    catalog: Catalog, ctx: OperationContext, router: Router
) -> None:
    router.add("PUT", f"{PORTS_PATH}/5", json=_port("5", isolationEnabled=True))

    await catalog.get("update_port").execute(
        ctx,
        {
            "resourceId": "Q2",
            "portId": "5",
            "isolationEnabled": True,
            "accessPolicyType": "Sticky MAC allow list",
            "udld": "Alert only",
        },
    )

    (put,) = router.calls("PUT")
    assert json.loads(put.content) == {
        "isolationEnabled": True,
        "accessPolicyType": "Sticky MAC allow list",
        "udld": "Alert only",
    }


@pytest.mark.asyncio
async def test_flat_command_with_port_name_renames_the_port(
    catalog: Catalog, ctx: OperationContext, router: Router
) -> None:
    router.add("PUT", f"{PORTS_PATH}/5", json=_port("5", name="Uplink"))
    command = extract_command(
        '<execute_action>{"action": "update_port", "resourceId": "Q2", "portId": "5", "name": "Uplink"}'
        "</execute_action>"
    )
    assert command is not None

    await catalog.get(command.name).execute(ctx, command.payload)

    (put,) = router.calls("PUT")
    assert json.loads(put.content) == {"name": "Uplink"}


@pytest.mark.asyncio
async def test_single_port_update_returns_the_port(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("PUT", f"{PORTS_PATH}/3", json=_port("3", name="Printer"))

    result = await catalog.get("update_switch_port").execute(ctx, {"serial": "Q2", "portId": 3, "name": "Printer"})

    assert result.data["name"] == "Printer"


@pytest.mark.asyncio
@pytest.mark.parametrize("port_id", ["8-5", "a-3", "5-"])
async def test_malformed_range_makes_no_request(
    catalog: Catalog, ctx: OperationContext, router: Router, port_id: str
) -> None:
    with pytest.raises(ValidationError):
        await catalog.get("update_port").execute(ctx, {"resourceId": "Q2", "portId": port_id, "vlan": 20})

    assert router.requests == []


@pytest.mark.asyncio
async def test_invalid_port_setting_makes_no_request(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    with pytest.raises(ValidationError):
        await catalog.get("update_port").execute(ctx, {"resourceId": "Q2", "portId": "5", "type": "hybrid"})

    assert router.requests == []


@pytest.mark.asyncio
async def test_failure_mid_range_keeps_earlier_results(
    catalog: Catalog, ctx: OperationContext, router: Router
) -> None:
    router.add("PUT", f"{PORTS_PATH}/5", json=_port("5"))
    router.add("PUT", f"{PORTS_PATH}/6", json=_port("6"))
    router.add("PUT", f"{PORTS_PATH}/7", status=400, json={"errors": ["Port 7 is a stack port"]})
    router.add("PUT", f"{PORTS_PATH}/8", json=_port("8"))

    with pytest.raises(FatalRemoteError) as info:
        await catalog.get("update_port").execute(ctx, {"resourceId": "Q2", "portId": "5-8", "vlan": 10})

    assert info.value.message == "Port 7 is a stack port"
    assert [p["portId"] for p in info.value.partial_results] == ["5", "6"]
    assert router.calls("PUT", f"{PORTS_PATH}/8") == []


@pytest.mark.asyncio
async def test_cancel_mid_range_stops_before_the_next_port(
    catalog: Catalog, ctx: OperationContext, router: Router, token: CancellationToken
) -> None:
    for port in ("5", "6", "7", "8"):
        router.add("PUT", f"{PORTS_PATH}/{port}", json=_port(port))

    def cancel_after_six(request: httpx.Request) -> None:
        if request.url.path.endswith("/6"):
            token.cancel("Operation cancelled by user.")

    router.on_request = cancel_after_six

    with pytest.raises(CancellationError) as info:
        await catalog.get("update_port").execute(ctx, {"resourceId": "Q2", "portId": "5-8", "vlan": 10})

    assert len(router.calls("PUT")) == 2
    assert len(info.value.partial_results) == 2


@pytest.mark.asyncio
async def test_cycle_range_posts_each_port(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("POST", f"{PORTS_PATH}/cycle", json={"ports": ["x"]})

    result = await catalog.get("cycle_switch_ports").execute(ctx, {"resourceId": "Q2", "portId": "1,3"})

    bodies = [json.loads(r.content) for r in router.calls("POST")]
    assert bodies == [{"ports": ["1"]}, {"ports": ["3"]}]
    assert "power cycled" in result.human_summary


@pytest.mark.asyncio
async def test_get_port_missing_single_port(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("GET", PORTS_PATH, json=[_port("1"), _port("2")])

    with pytest.raises(FatalRemoteError) as info:
        await catalog.get("get_port").execute(ctx, {"resourceId": "Q2", "portId": "9"})

    assert info.value.message == "Port 9 not found on device Q2."


@pytest.mark.asyncio
async def test_get_port_range_keeps_requested_order(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("GET", PORTS_PATH, json=[_port(str(i)) for i in range(1, 9)])

    result = await catalog.get("get_switch_port").execute(ctx, {"resourceId": "Q2", "portId": "3-5"})

    assert [p["portId"] for p in result.data] == ["3", "4", "5"]


@pytest.mark.asyncio
async def test_port_stats_aggregates_a_range(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("GET", PORTS_PATH, json=[_port("1"), _port("2")])
    router.add(
        "GET",
        f"{PORTS_PATH}/1/stats",
        json=[{"ts": "a", "sent": 1, "received": 10}, {"ts": "b", "sent": 2, "received": 20}],
    )
    router.add("GET", f"{PORTS_PATH}/2/stats", json=[{"ts": "a", "sent": 100, "received": 1000}])

    operation = catalog.get("get_port_stats")
    result = await operation.execute(ctx, {"resourceId": "Q2", "portId": "1-2"})

    assert result.human_summary == "Found data. Sending to AI for summary..."
    assert result.data["aggregate"] == [
        {"ts": "a", "sent": 101.0, "received": 1010.0},
        {"ts": "b", "sent": 2.0, "received": 20.0},
    ]
    assert router.calls("GET", f"{PORTS_PATH}/1/stats")[0].url.params["timespan"] == "3600"

    prompt = operation.build_prompt(result)
    assert "PORT CONFIGURATION(S)" in prompt
    assert "AGGREGATED TRAFFIC" in prompt
    assert "range of ports" in prompt


@pytest.mark.asyncio
async def test_switch_acl_update_replaces_rules(catalog: Catalog, ctx: OperationContext, router: Router) -> None:
    router.add("PUT", "/networks/N1/switch/accessControlLists", json={"rules": []})

    result = await catalog.get("update_switch_acl").execute(
        ctx, {"networkId": "N1", "rules": [{"policy": "deny", "vlan": "any"}]}
    )

    assert json.loads(router.requests[0].content) == {"rules": [{"policy": "deny", "vlan": "any"}]}
    assert result.human_summary == "✅ Success! Switch ACL rules have been updated for network N1."
