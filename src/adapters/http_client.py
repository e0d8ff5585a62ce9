"""Wrapper de httpx con la política de reintentos del motor.

Por qué un wrapper:
- Estandariza timeouts, headers, reintentos y logging para toda API remota.
- Facilita testeo: el `httpx.AsyncClient` subyacente se puede construir sobre
  un `httpx.MockTransport`, y la función de espera es inyectable.

Política de reintentos (una petición lógica):
- 429: esperar `Retry-After` segundos si viene, si no `base * 2**attempt + jitter`.
  `max_retries` reintentos tras el primer intento, luego `RateLimitExceededError`.
- 204: éxito con cuerpo vacío.
- Cualquier otro no-2xx: `FatalRemoteError` de inmediato.
- El token de cancelación se revisa antes de cada intento.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import httpx

from core.config import AppSettings
from core.domain.errors import (
    EngineError,
    FatalRemoteError,
    RateLimitExceededError,
    RemoteConnectionError,
    TransientRemoteError,
)
from core.services.cancellation import CancellationToken, check

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def build_async_client(
    settings: AppSettings | None = None,
    *,
    base_url: str = "",
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    Se siguen redirects: la API de Meraki responde con redirects de shard.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


@dataclass
class RetryState:
    """Contabilidad de reintentos de una petición. Se descarta al terminar."""

    attempt: int
    max_attempts: int
    next_delay: float = 0.0


def retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_message(response: httpx.Response) -> str:
    """Texto de error del remoto, o el status code si no hay."""

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            return ", ".join(str(e) for e in errors)
        if isinstance(errors, str) and errors:
            return errors
        message = data.get("message")
        if isinstance(message, str) and message:
            return message
    return f"HTTP error! status: {response.status_code}"


class RemoteClient:
    """Ejecuta peticiones contra una API remota con una política de reintentos uniforme.

    Sin estado entre llamadas: ni caché ni deduplicación.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        auth_headers: Mapping[str, str],
        settings: AppSettings | None = None,
        service: str = "remote",
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
    ) -> None:
        settings = settings or AppSettings()
        self._http = http
        self._auth_headers = dict(auth_headers)
        self._service = service
        self._max_retries = settings.max_retries
        self._backoff_base = settings.backoff_base_seconds
        self._jitter = settings.backoff_jitter_seconds
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def backoff_delay(self, attempt: int) -> float:
        return self._backoff_base * (2**attempt) + self._rng.uniform(0.0, self._jitter)

    async def send(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        token: CancellationToken | None = None,
    ) -> httpx.Response:
        """Envía una petición lógica y devuelve la respuesta exitosa."""

        state = RetryState(attempt=0, max_attempts=self._max_retries + 1)
        while True:
            check(token)
            try:
                response = await self._http.request(
                    method,
                    endpoint,
                    params=params,
                    json=json,
                    headers=self._auth_headers,
                )
            except httpx.TransportError as exc:
                raise RemoteConnectionError(
                    f"Failed to fetch {endpoint}: {exc}", endpoint=endpoint
                ) from exc

            state.attempt += 1
            if response.status_code == 429:
                if state.attempt >= state.max_attempts:
                    raise RateLimitExceededError(endpoint=endpoint, attempts=state.attempt)
                transient = TransientRemoteError(
                    endpoint=endpoint, retry_after=retry_after_seconds(response)
                )
                if transient.retry_after is not None:
                    state.next_delay = transient.retry_after
                else:
                    state.next_delay = self.backoff_delay(state.attempt - 1)
                logger.warning(
                    "%s API rate limited on %s. Retrying attempt %d/%d in %.1fs",
                    self._service,
                    endpoint,
                    state.attempt,
                    self._max_retries,
                    state.next_delay,
                )
                await self._sleep(state.next_delay)
                continue

            if response.status_code == 204 or response.is_success:
                return response

            raise FatalRemoteError(
                error_message(response),
                endpoint=endpoint,
                status_code=response.status_code,
            )

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        token: CancellationToken | None = None,
    ) -> Any:
        """Como `send`, decodificando el cuerpo JSON (`{}` si viene vacío)."""

        response = await self.send(method, endpoint, params=params, json=json, token=token)
        return self._decode(response, endpoint)

    async def paginate(
        self,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
        max_pages: int = 1,
    ) -> list[Any]:
        """GET de un endpoint de lista siguiendo `Link: rel=next` hasta `max_pages`.

        Si una página falla, el error se relanza con lo ya acumulado en
        `partial_results`.
        """

        items: list[Any] = []
        url = endpoint
        page_params = params
        for _page in range(max_pages):
            try:
                response = await self.send("GET", url, params=page_params, token=token)
            except EngineError as exc:
                exc.partial_results = list(items)
                raise
            data = self._decode(response, url)
            if isinstance(data, list):
                items.extend(data)
            elif data:
                items.append(data)

            next_url = response.links.get("next", {}).get("url")
            if not next_url:
                break
            # El link siguiente ya trae todos los query params.
            url, page_params = next_url, None
        else:
            logger.info("Stopped paginating %s after %d pages", endpoint, max_pages)
        return items

    def _decode(self, response: httpx.Response, endpoint: str) -> Any:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise FatalRemoteError(
                f"Unexpected non-JSON response from {endpoint}",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from exc
