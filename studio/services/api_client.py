"""
Cliente HTTP compartido por los servicios remotos del estudio.

Envuelve ``httpx.AsyncClient``: añade el token de la sesión de usuario a cada
petición y traduce los fallos de transporte o de estado HTTP a ``ServiceError``
para que el núcleo nunca vea excepciones de ``httpx``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from studio.errors import AuthenticationExpired, ServiceError
from studio.logging_config import get_logger
from studio.models import AuthUser

LOGGER = get_logger("studio.http")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class AuthState:
    """Credenciales vigentes; se pasan explícitamente a cada cliente."""

    token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Optional[AuthUser] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def clear(self) -> None:
        self.token = None
        self.refresh_token = None
        self.user = None


def parse_model(model: Type[ModelT], body: Any, context: str) -> ModelT:
    """Valida un cuerpo de respuesta; una forma inesperada es un fallo de protocolo."""
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise ServiceError(f"Respuesta invalida en {context}: {exc.error_count()} errores", detail=str(exc)) from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body.get("message") or body)
    return str(body)


class ApiClient:
    """Cliente JSON asíncrono con autenticación por token."""

    def __init__(
        self,
        base_url: str,
        auth_state: Optional[AuthState] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.auth_state = auth_state if auth_state is not None else AuthState()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Emite la petición y devuelve el cuerpo JSON ya decodificado (o ``None``)."""
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(self.auth_state.headers())
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _error_detail(exc.response)
            if status_code == 401:
                # Token vencido o revocado: se descarta para forzar un nuevo login.
                self.auth_state.clear()
                LOGGER.warning("Sesion expirada en %s %s", method, url)
                raise AuthenticationExpired("La sesion expiro", status_code=401, detail=detail) from exc
            LOGGER.warning("%s %s respondio %s: %s", method, url, status_code, detail)
            raise ServiceError(f"{method} {url} fallo con {status_code}", status_code=status_code, detail=detail) from exc
        except httpx.RequestError as exc:
            LOGGER.warning("Error de transporte en %s %s: %s", method, url, exc)
            raise ServiceError(f"{method} {url} no se pudo completar: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceError(f"{method} {url} devolvio una respuesta que no es JSON") from exc

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)

    async def upload(self, url: str, files: list, data: Optional[dict] = None) -> Any:
        """Envía un formulario multipart; httpx fija el ``Content-Type`` con su frontera."""
        return await self.request("POST", url, files=files, data=data or {})

    async def download(self, url: str, destination: Path) -> Path:
        """Descarga ``url`` (relativa o absoluta) a disco sin cargarla completa en memoria."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        # El destino solo aparece con la descarga completa.
        partial = destination.with_suffix(destination.suffix + ".part")
        try:
            async with self._client.stream("GET", url, headers=self.auth_state.headers()) as response:
                response.raise_for_status()
                with partial.open("wb") as target:
                    async for chunk in response.aiter_bytes():
                        target.write(chunk)
        except httpx.HTTPStatusError as exc:
            partial.unlink(missing_ok=True)
            raise ServiceError(
                f"Descarga de {url} fallo con {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            partial.unlink(missing_ok=True)
            LOGGER.warning("Descarga de %s interrumpida: %s", url, exc)
            raise ServiceError(f"Descarga de {url} no se pudo completar: {exc}") from exc
        partial.replace(destination)
        return destination

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["ApiClient", "AuthState", "parse_model"]
