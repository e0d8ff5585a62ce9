"""Comando doctor para diagnóstico del entorno."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from adapters.meraki_api import MerakiApi, build_meraki_client
from adapters.webex import WebexRelay, build_webex_client
from cli.ui_components import build_check_table
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import EngineError

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_meraki(settings: AppSettings) -> tuple[bool, str]:
    try:
        api = MerakiApi(build_meraki_client(settings), settings=settings)
    except EngineError as exc:
        return False, exc.message
    try:
        if settings.meraki_org_id:
            networks = await api.get_org_networks()
            return True, f"{len(networks)} networks in organization {settings.meraki_org_id}"
        orgs = await api.get("/organizations")
        return True, f"Key valid, {len(orgs)} organizations visible (set NETOPS_MERAKI_ORG_ID)"
    except EngineError as exc:
        return False, exc.message
    finally:
        await api.aclose()


async def _check_webex(settings: AppSettings) -> tuple[bool, str]:
    try:
        relay = WebexRelay(build_webex_client(settings), settings=settings)
    except EngineError as exc:
        return False, exc.message
    try:
        me = await relay.get_me()
        return True, f"Bot {me.get('displayName') or me.get('id')}"
    except EngineError as exc:
        return False, exc.message
    finally:
        await relay.aclose()


@app.command()
def run() -> None:
    """Ejecuta diagnósticos base y muestra arreglos recomendados."""

    settings = AppSettings()

    table = build_check_table("NetOps Doctor")

    # Config
    table.add_row("Meraki key", "OK" if settings.meraki_api_key else "MISSING", "NETOPS_MERAKI_API_KEY")
    table.add_row(
        "Meraki org",
        "OK" if settings.meraki_org_id else "MISSING",
        settings.meraki_org_id or "NETOPS_MERAKI_ORG_ID (org-wide actions disabled)",
    )
    if settings.ai_api_key:
        table.add_row("AI key", "OK", f"{settings.ai_model} @ {settings.ai_base_url}")
    else:
        table.add_row("AI key", "OPTIONAL", "No key set -> only `netops exec` is available")
    relay_configured = bool(settings.webex_bot_token and settings.webex_space_id)
    table.add_row(
        "Webex relay",
        "OK" if relay_configured else "OPTIONAL",
        "Bot token and space id set" if relay_configured else "Relay disabled",
    )
    table.add_row("Max chain depth", "OK", str(settings.max_chain_depth))

    # Connectivity (best-effort)
    ok_meraki, detail_meraki = asyncio.run(_check_meraki(settings))
    table.add_row("Meraki API", "OK" if ok_meraki else "FAIL", detail_meraki)
    if relay_configured:
        ok_webex, detail_webex = asyncio.run(_check_webex(settings))
        table.add_row("Webex API", "OK" if ok_webex else "FAIL", detail_webex)

    _console.print(table)

    if not ok_meraki:
        _console.print("\n[yellow]Note:[/yellow] Run `netops doctor setup` to store the Meraki credentials.")


@app.command()
def setup() -> None:
    """Setup interactivo (guarda config en el .env del usuario)."""

    meraki_key = typer.prompt("Meraki API key", hide_input=True).strip()
    org_id = typer.prompt("Meraki organization id", default="", show_default=False).strip()

    presets: dict[str, dict[str, str]] = {
        "openai": {"NETOPS_AI_BASE_URL": "https://api.openai.com/v1", "NETOPS_AI_MODEL": "gpt-4o-mini"},
        "groq": {"NETOPS_AI_BASE_URL": "https://api.groq.com/openai/v1", "NETOPS_AI_MODEL": "llama-3.1-70b-versatile"},
        "openrouter": {"NETOPS_AI_BASE_URL": "https://openrouter.ai/api/v1", "NETOPS_AI_MODEL": "openai/gpt-4o-mini"},
        "ollama": {"NETOPS_AI_BASE_URL": "http://localhost:11434/v1", "NETOPS_AI_MODEL": "llama3"},
    }
    provider = typer.prompt("AI provider", default="openai", show_default=True).strip().lower()
    values = presets.get(provider, {}).copy()
    if not values:
        _console.print("[yellow]Unknown provider preset. You can still enter custom values.[/yellow]")

    base_url = typer.prompt("AI base URL", default=values.get("NETOPS_AI_BASE_URL", ""), show_default=True).strip()
    model = typer.prompt("AI model", default=values.get("NETOPS_AI_MODEL", ""), show_default=True).strip()
    ai_key = typer.prompt("AI API key", hide_input=True, default="", show_default=False).strip()

    webex_token = typer.prompt("Webex bot token (empty to skip)", hide_input=True, default="", show_default=False).strip()
    webex_space = ""
    if webex_token:
        webex_space = typer.prompt("Webex space id").strip()

    if not meraki_key:
        raise typer.BadParameter("the Meraki API key is required")
    if not base_url or not model:
        raise typer.BadParameter("base_url and model are required")

    updates = {
        "NETOPS_MERAKI_API_KEY": meraki_key,
        "NETOPS_MERAKI_ORG_ID": org_id,
        "NETOPS_AI_BASE_URL": base_url,
        "NETOPS_AI_MODEL": model,
        "NETOPS_AI_API_KEY": ai_key,
        "NETOPS_WEBEX_BOT_TOKEN": webex_token,
        "NETOPS_WEBEX_SPACE_ID": webex_space,
    }
    env_path = write_user_env_vars({k: v for k, v in updates.items() if v})

    _console.print(f"[green]Saved config to:[/green] {env_path}")
