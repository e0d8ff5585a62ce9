"""Componentes de UI para la CLI (Rich).

Por qué componentes separados:
- Mantiene la lógica de comandos lejos de los detalles visuales.
- Tablas y paneles se reutilizan en varios comandos.
"""

from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.catalog.registry import Catalog


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Se omite en modos no interactivos (`exec`, `actions`) para no ensuciar la salida.
    """

    title = Text("NetOps Assistant", style="bold cyan")
    subtitle = Text("Meraki actions • Root cause analysis • Webex relay", style="dim")
    hint = Text("Type /cancel to abort the running action, /quit to exit.", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle, "\n\n", hint), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_actions_table(catalog: Catalog) -> Table:
    table = Table(title=f"Available actions ({len(catalog)})")
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Family", style="magenta")
    table.add_column("Required", style="white")
    table.add_column("Aliases", style="dim")
    table.add_column("Description", style="white")
    for operation in catalog:
        family = operation.family.value + (", range" if operation.range_aware else "")
        table.add_row(
            operation.name,
            family,
            ", ".join(operation.required_fields()) or "-",
            ", ".join(operation.aliases) or "-",
            operation.description,
        )
    return table


def build_check_table(title: str) -> Table:
    table = Table(title=title)
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")
    return table

