"""Taxonomía de errores del motor de acciones.

Los adapters los lanzan; el dispatcher los convierte en un `Err` y en
exactamente un mensaje de status.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Clase base. `partial_results` guarda el trabajo completado antes del fallo."""

    def __init__(self, message: str, *, partial_results: list[Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.partial_results: list[Any] = list(partial_results or [])


class ValidationError(EngineError):
    """Comando malformado o campo obligatorio faltante. Nunca se reintenta."""


class UnknownCommandError(EngineError):
    """El nombre del comando no está registrado en el catálogo."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown action '{name}'.")
        self.name = name


class CancellationError(EngineError):
    """La ejecución se canceló a propósito (abort del usuario); no es un fallo."""

    def __init__(self, message: str = "The operation was cancelled.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class RemoteError(EngineError):
    """Fallo reportado por una API remota (o al intentar alcanzarla)."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        status_code: int | None = None,
        partial_results: list[Any] | None = None,
    ) -> None:
        super().__init__(message, partial_results=partial_results)
        self.endpoint = endpoint
        self.status_code = status_code


class TransientRemoteError(RemoteError):
    """HTTP 429. Lo reintenta el cliente; solo escapa como `RateLimitExceededError`."""

    def __init__(self, *, endpoint: str, retry_after: float | None = None) -> None:
        super().__init__(f"Rate limited on {endpoint}", endpoint=endpoint, status_code=429)
        self.retry_after = retry_after


class FatalRemoteError(RemoteError):
    """Fallo remoto no reintentable (no-429, no-2xx)."""

    @property
    def is_credential_problem(self) -> bool:
        return self.status_code in (401, 403)


class RateLimitExceededError(FatalRemoteError):
    """Sigue con rate limit tras todos los intentos permitidos."""

    def __init__(self, *, endpoint: str, attempts: int) -> None:
        super().__init__(
            f"Rate limit still in effect for {endpoint} after {attempts} attempts.",
            endpoint=endpoint,
            status_code=429,
        )
        self.attempts = attempts


class RemoteConnectionError(FatalRemoteError):
    """No se pudo alcanzar la API remota (DNS, connect, timeout)."""


class AssistantUnavailableError(EngineError):
    """El proveedor del asistente falló tras sus reintentos."""
