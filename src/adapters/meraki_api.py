"""Fachada de la Meraki Dashboard API v1.

Responsabilidad:
- Ser dueña del `RemoteClient` autenticado para la API de Meraki.
- Ofrecer las llamadas que comparten varias entradas del catálogo (devices,
  puertos, eventos, cambios de configuración, firewall) con resultados
  normalizados.

Las entradas del catálogo con un endpoint puntual usan `get`/`put`/`post`/
`delete`/`get_pages` directamente.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Mapping

import httpx

from adapters.http_client import RemoteClient, SleepFn, build_async_client
from core.config import AppSettings
from core.domain.errors import CancellationError, EngineError, FatalRemoteError, ValidationError
from core.domain.models import ConfigChange, Device, Network, NetworkEvent, PortStatSample
from core.services.cancellation import CancellationToken

logger = logging.getLogger(__name__)

MERAKI_AUTH_HEADER = "X-Cisco-Meraki-API-Key"


def build_meraki_client(
    settings: AppSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn | None = None,
    rng: random.Random | None = None,
) -> RemoteClient:
    if not settings.meraki_api_key:
        raise ValidationError("No Meraki API key configured (NETOPS_MERAKI_API_KEY).")
    http = build_async_client(settings, base_url=settings.meraki_base_url, transport=transport)
    return RemoteClient(
        http,
        auth_headers={MERAKI_AUTH_HEADER: settings.meraki_api_key},
        settings=settings,
        service="Meraki",
        sleep=sleep,
        rng=rng,
    )


class MerakiApi:
    def __init__(self, client: RemoteClient, *, settings: AppSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def client(self) -> RemoteClient:
        return self._client

    @property
    def org_id(self) -> str:
        if not self._settings.meraki_org_id:
            raise ValidationError("No Meraki organization id configured (NETOPS_MERAKI_ORG_ID).")
        return self._settings.meraki_org_id

    async def aclose(self) -> None:
        await self._client.aclose()

    # Verbos genéricos

    async def get(
        self,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> Any:
        return await self._client.request("GET", endpoint, params=params, token=token)

    async def put(self, endpoint: str, body: Any, *, token: CancellationToken | None = None) -> Any:
        return await self._client.request("PUT", endpoint, json=body, token=token)

    async def post(self, endpoint: str, body: Any = None, *, token: CancellationToken | None = None) -> Any:
        return await self._client.request("POST", endpoint, json=body, token=token)

    async def delete(self, endpoint: str, *, token: CancellationToken | None = None) -> Any:
        return await self._client.request("DELETE", endpoint, token=token)

    async def get_pages(
        self,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> list[Any]:
        return await self._client.paginate(
            endpoint, params=params, token=token, max_pages=self._settings.max_pages
        )

    # Organización

    async def get_org_networks(self, *, token: CancellationToken | None = None) -> list[Network]:
        logger.info("Fetching networks for organization %s", self.org_id)
        data = await self.get_pages(f"/organizations/{self.org_id}/networks", token=token)
        return [Network.model_validate(n) for n in data if isinstance(n, dict)]

    async def get_org_devices(self, *, token: CancellationToken | None = None) -> list[Device]:
        """Todos los devices de la organización, con su status.

        Los devices son obligatorios; los status son best-effort (si faltan → 'unknown').
        """

        org_id = self.org_id
        logger.info("Fetching organization devices and statuses for %s", org_id)

        async def _statuses() -> list[Any]:
            try:
                return await self.get_pages(f"/organizations/{org_id}/devices/statuses", token=token)
            except CancellationError:
                raise
            except EngineError as exc:
                logger.warning("Could not fetch device statuses, proceeding without them: %s", exc)
                return []

        devices, statuses = await asyncio.gather(
            self.get_pages(f"/organizations/{org_id}/devices", token=token),
            _statuses(),
        )
        status_by_serial = {
            s.get("serial"): s.get("status") for s in statuses if isinstance(s, dict)
        }
        out: list[Device] = []
        for raw in devices:
            if not isinstance(raw, dict) or not raw.get("serial"):
                continue
            record = dict(raw)
            record["status"] = status_by_serial.get(raw["serial"]) or "unknown"
            if not record.get("name"):
                record["name"] = "Unnamed Device"
            out.append(Device.model_validate(record))
        logger.info("Total devices found: %d", len(out))
        return out

    async def claim_devices(
        self, network_id: str, serials: list[str], *, token: CancellationToken | None = None
    ) -> Any:
        logger.info("Claiming devices %s into network %s", ", ".join(serials), network_id)
        return await self.post(f"/networks/{network_id}/devices/claim", {"serials": serials}, token=token)

    # Devices

    async def get_device(self, serial: str, *, token: CancellationToken | None = None) -> dict[str, Any]:
        data = await self.get(f"/devices/{serial}", token=token)
        return data if isinstance(data, dict) else {}

    async def resolve_network_id(self, serial: str, *, token: CancellationToken | None = None) -> str:
        device = await self.get_device(serial, token=token)
        network_id = device.get("networkId")
        if not network_id:
            raise FatalRemoteError(
                f"Device {serial} is not assigned to a network.",
                endpoint=f"/devices/{serial}",
            )
        return str(network_id)

    # Puertos de switch

    async def get_switch_ports(self, serial: str, *, token: CancellationToken | None = None) -> list[dict[str, Any]]:
        data = await self.get(f"/devices/{serial}/switch/ports", token=token)
        if not isinstance(data, list):
            raise FatalRemoteError(
                "Failed to fetch switch ports or unexpected API response format.",
                endpoint=f"/devices/{serial}/switch/ports",
            )
        return data

    async def update_switch_port(
        self,
        serial: str,
        port_id: str,
        body: Mapping[str, Any],
        *,
        token: CancellationToken | None = None,
    ) -> Any:
        logger.info("Updating port %s on device %s with %s", port_id, serial, dict(body))
        return await self.put(f"/devices/{serial}/switch/ports/{port_id}", dict(body), token=token)

    async def cycle_switch_ports(
        self, serial: str, ports: list[str], *, token: CancellationToken | None = None
    ) -> Any:
        logger.info("Cycling ports %s on device %s", ", ".join(ports), serial)
        return await self.post(f"/devices/{serial}/switch/ports/cycle", {"ports": ports}, token=token)

    async def get_switch_port_stats(
        self, serial: str, port_id: str, *, token: CancellationToken | None = None
    ) -> list[PortStatSample]:
        data = await self.get(
            f"/devices/{serial}/switch/ports/{port_id}/stats",
            params={"timespan": self._settings.event_timespan_seconds},
            token=token,
        )
        if not isinstance(data, list):
            return []
        return [PortStatSample.model_validate(s) for s in data if isinstance(s, dict)]

    # Logs

    async def get_network_events(
        self,
        network_id: str,
        *,
        serial: str,
        product_type: str,
        token: CancellationToken | None = None,
    ) -> list[NetworkEvent]:
        logger.info(
            "Fetching up to 100 events for device %s (type: %s) in network %s",
            serial,
            product_type,
            network_id,
        )
        data = await self.get(
            f"/networks/{network_id}/events",
            params={"productType": product_type, "deviceSerial": serial, "perPage": 100},
            token=token,
        )
        events = data.get("events") if isinstance(data, dict) else None
        if not isinstance(events, list):
            return []
        return [NetworkEvent.model_validate(e) for e in events if isinstance(e, dict)]

    async def get_config_changes(
        self,
        *,
        network_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> list[ConfigChange]:
        logger.info(
            "Fetching config changes for %s",
            f"network {network_id}" if network_id else f"organization {self.org_id}",
        )
        params: dict[str, Any] = {"timespan": self._settings.event_timespan_seconds}
        if network_id:
            params["networkId"] = network_id
        data = await self.get_pages(f"/organizations/{self.org_id}/configurationChanges", params=params, token=token)
        return [ConfigChange.model_validate(c) for c in data if isinstance(c, dict)]

    # Security appliance (MX)

    async def get_l3_firewall_rules(
        self, network_id: str, *, token: CancellationToken | None = None
    ) -> list[dict[str, Any]]:
        data = await self.get(f"/networks/{network_id}/appliance/firewall/l3FirewallRules", token=token)
        rules = data.get("rules") if isinstance(data, dict) else None
        return rules if isinstance(rules, list) else []

    async def update_l3_firewall_rules(
        self,
        network_id: str,
        rules: list[dict[str, Any]],
        *,
        token: CancellationToken | None = None,
    ) -> Any:
        logger.info("Replacing %d L3 firewall rules for network %s", len(rules), network_id)
        return await self.put(
            f"/networks/{network_id}/appliance/firewall/l3FirewallRules",
            {"rules": rules},
            token=token,
        )
