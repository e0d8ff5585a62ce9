"""Configuración del core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) fuera de la CLI.
- Permite que adapters (Meraki/Webex/IA) lean configuración de forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (multiplataforma, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "netops-assistant"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "netops-assistant"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "netops-assistant"
    return Path.home() / ".config" / "netops-assistant"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Escribe o actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# NetOps assistant user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Un contrato tipado compartido por la CLI, el motor y los adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="NETOPS_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Meraki Dashboard API
    meraki_api_key: str | None = Field(
        default=None,
        description="API key de la Meraki Dashboard API (X-Cisco-Meraki-API-Key).",
    )
    meraki_org_id: str | None = Field(
        default=None,
        description="Id de la organización para las operaciones a nivel org.",
    )
    meraki_base_url: str = Field(
        default="https://api.meraki.com/api/v1",
        min_length=8,
        description="Base URL de la Meraki Dashboard API.",
    )

    # Webex relay
    webex_bot_token: str | None = Field(
        default=None,
        description="Token del bot de Webex para el relay de chat.",
    )
    webex_space_id: str | None = Field(
        default=None,
        description="Id del espacio (room) de Webex donde el relay lee y publica.",
    )
    webex_base_url: str = Field(
        default="https://webexapis.com/v1",
        min_length=8,
        description="Base URL de la API REST de Webex.",
    )

    # Proveedor del asistente (OpenAI-compatible)
    ai_api_key: str | None = Field(
        default=None,
        description="API key para el proveedor del asistente.",
    )
    ai_base_url: str = Field(
        default="https://api.openai.com/v1",
        min_length=8,
        description="Base URL compatible OpenAI.",
    )
    ai_model: str = Field(
        default="gpt-4o-mini",
        min_length=1,
        description="Modelo para los turnos del asistente.",
    )
    ai_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout de las llamadas al proveedor del asistente (segundos).",
    )
    ai_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Reintentos máximos ante fallos transitorios del proveedor (rate limit, red).",
    )
    ai_max_history_messages: int = Field(
        default=40,
        ge=2,
        le=500,
        description="Mensajes de conversación que se guardan en el contexto del asistente.",
    )

    # Cliente remoto resiliente
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    user_agent: str = Field(
        default="netops-assistant/0.1",
        min_length=1,
        description="User-Agent para las APIs remotas.",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Reintentos tras el primer intento ante rate limit (HTTP 429).",
    )
    backoff_base_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Base del backoff exponencial cuando no viene Retry-After.",
    )
    backoff_jitter_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Cota superior del jitter aleatorio sumado a cada backoff.",
    )
    max_pages: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Páginas máximas a seguir en endpoints de lista paginados.",
    )
    event_timespan_seconds: int = Field(
        default=3600,
        ge=60,
        description="Ventana hacia atrás para eventos, cambios y estadísticas.",
    )

    # Motor
    max_chain_depth: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Turnos encadenados anidados máximos por turno visible del usuario.",
    )

    # Relay saliente
    relay_max_message_length: int = Field(
        default=7400,
        ge=64,
        description="Caracteres máximos por mensaje reenviado (el límite de Webex es 7439).",
    )
    relay_chunk_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pausa entre chunks consecutivos de un mensaje reenviado.",
    )

    # Polling
    device_poll_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Intervalo del poll de salud de devices.",
    )
    relay_poll_interval_seconds: float = Field(
        default=7.0,
        gt=0,
        description="Intervalo del poll del relay de chat.",
    )
    relay_poll_batch: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Mensajes pedidos por cada poll del relay de chat.",
    )

    # Ambiente
    log_level: str = Field(
        default="INFO",
        description="Nivel de logging para la CLI (DEBUG, INFO, WARNING, ...).",
    )
    transcript_path: Path | None = Field(
        default=None,
        description="Archivo JSONL opcional donde se persiste cada mensaje publicado.",
    )
