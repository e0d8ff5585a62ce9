"""Cancelación cooperativa.

Se crea un token por ejecución (un comando, con todas las sub-peticiones que
abra) y se pasa explícitamente hacia abajo. Nada se interrumpe a mitad de
vuelo: el código revisa el token en sus puntos de suspensión y se detiene
antes del siguiente paso.
"""

from __future__ import annotations

import logging
from typing import Callable

from core.domain.errors import CancellationError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag compartido más listeners."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._listeners: list[Callable[[str | None], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Señala la cancelación. Devuelve False si ya estaba cancelado."""

        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:
                logger.exception("Cancellation listener failed")
        return True

    def add_listener(self, listener: Callable[[str | None], None]) -> Callable[[], None]:
        """Registra un callback que se dispara una vez al cancelar. Devuelve un remover."""

        if self._cancelled:
            listener(self._reason)
            return lambda: None
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError(self._reason or "The operation was cancelled.")


def check(token: CancellationToken | None) -> None:
    """`raise_if_cancelled` que tolera ejecuciones sin token (polls, chequeos de CLI)."""

    if token is not None:
        token.raise_if_cancelled()
