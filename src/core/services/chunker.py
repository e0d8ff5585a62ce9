"""Partición de mensajes salientes para relays con límite de longitud."""

from __future__ import annotations

import re

DEFAULT_MAX_LENGTH = 7400

_PART_MARKER_RE = re.compile(r"^_\(Part \d+/\d+\)_\n\n")


def split_message(message: str, max_length: int = DEFAULT_MAX_LENGTH) -> list[str]:
    """Parte `message` en chunks de como mucho `max_length` caracteres.

    Las líneas enteras se empaquetan de forma greedy y conservan su salto de
    línea: unir los chunks devuelve el mensaje exacto. Una línea más larga que
    el límite se corta por carácter.
    """

    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if not message:
        return []
    if len(message) <= max_length:
        return [message]

    chunks: list[str] = []
    current = ""
    for line in message.splitlines(keepends=True):
        if len(current) + len(line) <= max_length:
            current += line
            continue
        if current:
            chunks.append(current)
            current = ""
        while len(line) > max_length:
            chunks.append(line[:max_length])
            line = line[max_length:]
        current = line
    if current:
        chunks.append(current)
    return chunks


def part_marker(index: int, total: int) -> str:
    return f"_(Part {index}/{total})_\n\n"


def label_chunks(chunks: list[str], max_length: int = DEFAULT_MAX_LENGTH) -> list[str]:
    """Antepone a cada chunk tras el primero su marcador de parte, si entra."""

    total = len(chunks)
    labeled: list[str] = []
    for index, chunk in enumerate(chunks, start=1):
        if index > 1:
            marker = part_marker(index, total)
            if len(marker) + len(chunk) <= max_length:
                chunk = marker + chunk
        labeled.append(chunk)
    return labeled


def strip_part_marker(text: str) -> str:
    return _PART_MARKER_RE.sub("", text, count=1)
