"""Cliente del servicio de autenticación (login, registro y renovación de token)."""

from __future__ import annotations

import base64
import json
from typing import Any, Dict

from studio.errors import AuthenticationExpired
from studio.logging_config import get_logger
from studio.models import AuthTokens, AuthUser

from .api_client import ApiClient, AuthState, parse_model

LOGGER = get_logger("studio.auth")


def decode_token_payload(token: str) -> Dict[str, Any]:
    """Lee el cuerpo de un JWT sin verificar la firma; la verificación es del servidor."""
    parts = token.split(".")
    if len(parts) < 2:
        return {}
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


class AuthService:
    """Emite credenciales y las deja en el ``AuthState`` compartido."""

    def __init__(self, client: ApiClient, auth_state: AuthState) -> None:
        self._client = client
        self._auth = auth_state

    async def login(self, email: str, password: str) -> AuthUser:
        body = await self._client.post("/login", json={"email": email, "password": password})
        tokens = parse_model(AuthTokens, body, "autenticacion")
        payload = decode_token_payload(tokens.token)
        user = AuthUser(
            id=int(payload.get("id") or payload.get("user_id") or 0),
            email=payload.get("email") or email,
            name=payload.get("name") or email.split("@")[0],
        )
        self._auth.token = tokens.token
        self._auth.refresh_token = tokens.refresh_token
        self._auth.user = user
        LOGGER.info("Sesion iniciada para %s", user.email)
        return user

    async def register(self, email: str, password: str, name: str) -> None:
        # El registro no entrega token; hay que iniciar sesión después.
        await self._client.post("/register", json={"email": email, "password": password, "name": name})
        LOGGER.info("Usuario %s registrado", email)

    async def refresh(self) -> AuthTokens:
        if not self._auth.refresh_token:
            raise AuthenticationExpired("No hay refresh token disponible", status_code=401)
        body = await self._client.post("/refresh", json={"refresh_token": self._auth.refresh_token})
        tokens = parse_model(AuthTokens, body, "autenticacion")
        self._auth.token = tokens.token
        if tokens.refresh_token:
            self._auth.refresh_token = tokens.refresh_token
        LOGGER.info("Token renovado")
        return tokens

    def logout(self) -> None:
        self._auth.clear()


__all__ = ["AuthService", "decode_token_payload"]
