"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta y campos autodocumentados (Field) sin acoplar el core a
  librerías de I/O.
- Los payloads remotos usan camelCase; los aliases dejan los nombres Python en
  snake_case y `model_dump(by_alias=True)` reproduce la forma del cable para
  los prompts.

Nota:
- Estos modelos describen *qué* es el dato, no *cómo* se obtiene.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class _RemoteRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Device(_RemoteRecord):
    """Un device de la organización, con su status actual."""

    serial: str = Field(..., min_length=1, description="Serial del device (id opaco).")
    name: str = Field(default="Unnamed Device", description="Nombre visible.")
    model: str = Field(default="", description="Modelo de hardware, p.ej. 'MS120-8'.")
    network_id: str | None = Field(default=None, alias="networkId")
    status: str = Field(default="unknown", description="online, offline, alerting, dormant...")

    @property
    def is_problematic(self) -> bool:
        return self.status in ("offline", "alerting")


class DeviceDetails(_RemoteRecord):
    lan_ip: str | None = Field(default=None, alias="lanIp")
    firmware: str | None = None


class Network(_RemoteRecord):
    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    organization_id: str | None = Field(default=None, alias="organizationId")


class NetworkEvent(_RemoteRecord):
    """Una entrada del log de eventos de una red."""

    occurred_at: str | None = Field(default=None, alias="occurredAt")
    type: str | None = None
    description: str | None = None
    client_description: str | None = Field(default=None, alias="clientDescription")
    device_serial: str | None = Field(default=None, alias="deviceSerial")
    device_name: str | None = Field(default=None, alias="deviceName")


class ConfigChange(_RemoteRecord):
    """Un cambio de configuración hecho por un administrador."""

    ts: str | None = None
    admin_name: str | None = Field(default=None, alias="adminName")
    page: str | None = None
    label: str | None = None
    old_value: Any = Field(default=None, alias="oldValue")
    new_value: Any = Field(default=None, alias="newValue")


class PortStatSample(_RemoteRecord):
    """Contadores de tráfico de un puerto de switch en un instante (bytes)."""

    ts: str | None = None
    sent: float = 0
    received: float = 0


class VpnUplink(_RemoteRecord):
    interface: str | None = None
    public_ip: str | None = Field(default=None, alias="publicIp")
    status: str | None = None


class VpnPeer(_RemoteRecord):
    network_name: str | None = Field(default=None, alias="networkName")
    network_id: str | None = Field(default=None, alias="networkId")
    reachability: str | None = None


class VpnStatus(_RemoteRecord):
    network_name: str | None = Field(default=None, alias="networkName")
    network_id: str | None = Field(default=None, alias="networkId")
    device_status: str | None = Field(default=None, alias="deviceStatus")
    vpn_mode: str | None = Field(default=None, alias="vpnMode")
    uplinks: list[VpnUplink] = Field(default_factory=list)
    meraki_vpn_peers: list[VpnPeer] = Field(default_factory=list, alias="merakiVpnPeers")


class FirewallRule(_RemoteRecord):
    """Regla de firewall L3. Al actualizar se reemplaza la lista completa."""

    comment: str = ""
    policy: Literal["allow", "deny"]
    protocol: Literal["tcp", "udp", "icmp", "icmp6", "any"] = "any"
    dest_port: str | None = Field(default="Any", alias="destPort")
    dest_cidr: str = Field(default="Any", alias="destCidr")
    src_port: str | None = Field(default="Any", alias="srcPort")
    src_cidr: str = Field(default="Any", alias="srcCidr")
    syslog_enabled: bool = Field(default=False, alias="syslogEnabled")


class SwitchPortSettings(_RemoteRecord):
    """Ajustes escribibles de un puerto de switch.

    Solo se envían los campos presentes. Los ajustes sin campo propio
    (isolationEnabled, accessPolicyType, udld...) pasan tal cual al cuerpo.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    enabled: bool | None = None
    type: Literal["access", "trunk"] | None = None
    vlan: int | None = None
    voice_vlan: int | None = Field(default=None, alias="voiceVlan")
    native_vlan: int | None = Field(default=None, alias="nativeVlan")
    allowed_vlans: str | None = Field(default=None, alias="allowedVlans")
    poe_enabled: bool | None = Field(default=None, alias="poeEnabled")
    stp_guard: Literal["disabled", "root guard", "bpdu guard", "loop guard"] | None = Field(
        default=None, alias="stpGuard"
    )
    link_negotiation: str | None = Field(default=None, alias="linkNegotiation")
    tags: list[str] | None = None

    def to_body(self) -> dict[str, Any]:
        body = self.model_dump(by_alias=True, exclude_unset=True)
        body.update(self.model_extra or {})
        return body


class RelayMessage(_RemoteRecord):
    """Un mensaje leído del relay de chat (Webex)."""

    id: str
    text: str = ""
    person_id: str | None = Field(default=None, alias="personId")
    person_email: str | None = Field(default=None, alias="personEmail")
    created: str = Field(..., description="Timestamp de creación ISO-8601.")


class MessageKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    STATUS = "status"
    DATA = "data"


class StatusLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    CANCELLED = "cancelled"


class EngineMessage(BaseModel):
    """Todo lo que el motor entrega a un sink (render, persistencia, relay)."""

    kind: MessageKind
    text: str
    level: StatusLevel = StatusLevel.INFO
    author: str | None = Field(
        default=None,
        description="Origen de un mensaje de usuario (p.ej. el email de un participante del relay).",
    )
    relay: bool = Field(
        default=True,
        description="Indica si los sinks de relay deben reenviar este mensaje.",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def product_type_for_model(model: str) -> str | None:
    """Mapea un modelo de hardware al `productType` de las consultas de eventos.

    Devuelve None para prefijos desconocidos; el llamador elige el default.
    """

    upper = (model or "").upper()
    if upper.startswith("MS"):
        return "switch"
    if upper.startswith(("MR", "CW")):
        return "wireless"
    if upper.startswith(("MX", "Z")):
        return "appliance"
    if upper.startswith("MV"):
        return "camera"
    if upper.startswith("MG"):
        return "cellularGateway"
    if upper.startswith("MT"):
        return "sensor"
    return None
