"""Identificadores de puerto y expansión de rangos.

Formas aceptadas: un id suelto (``"5"``), un rango numérico inclusivo
(``"5-8"``) o una lista con comas que mezcle ambos (``"1,3,5-7"``). Todo item
con ``-`` se lee como rango.
"""

from __future__ import annotations

from core.domain.errors import ValidationError


def is_range(port_id: str) -> bool:
    return "-" in port_id or "," in port_id


def expand_port_range(port_id: str) -> list[str]:
    """Expande un id de puerto o rango textual a ids sueltos, en orden.

    Lanza `ValidationError` con límites no numéricos, inicio > fin o items
    vacíos. Aquí no se toca nada remoto: un rango inválido falla antes de
    cualquier llamada.
    """

    text = str(port_id).strip()
    if not text:
        raise ValidationError("Port id must not be empty.")

    ports: list[str] = []
    for raw_item in text.split(","):
        item = raw_item.strip()
        if not item:
            raise ValidationError(f"Invalid port range: {port_id}")
        if "-" not in item:
            ports.append(item)
            continue

        start_str, _, end_str = item.partition("-")
        start_str, end_str = start_str.strip(), end_str.strip()
        if not (start_str.isdigit() and end_str.isdigit()):
            raise ValidationError(f"Invalid port range: {port_id}")
        start, end = int(start_str), int(end_str)
        if start > end:
            raise ValidationError(f"Invalid port range: {port_id}")
        ports.extend(str(i) for i in range(start, end + 1))
    return ports
