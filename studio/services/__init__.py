"""Clientes de los servicios remotos que consume el estudio."""

from dataclasses import dataclass, field
from typing import Optional

import httpx

from studio.config import Settings, settings as default_settings

from .api_client import ApiClient, AuthState
from .auth import AuthService
from .images import ImageStore, ImageUpload
from .jobs import MosaicJobService
from .projects import ProjectStore


@dataclass
class StudioServices:
    """Conjunto de clientes que comparten un mismo ``AuthState``."""

    auth_state: AuthState
    auth: AuthService
    images: ImageStore
    projects: ProjectStore
    jobs: MosaicJobService
    clients: list = field(default_factory=list)

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "StudioServices":
        config = config or default_settings
        auth_state = AuthState()
        api = ApiClient(config.api_url, auth_state, timeout=config.request_timeout_seconds, transport=transport)
        auth_api = ApiClient(config.auth_url, auth_state, timeout=config.request_timeout_seconds, transport=transport)
        return cls(
            auth_state=auth_state,
            auth=AuthService(auth_api, auth_state),
            images=ImageStore(api),
            projects=ProjectStore(api),
            jobs=MosaicJobService(api),
            clients=[api, auth_api],
        )

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()


__all__ = [
    "ApiClient",
    "AuthService",
    "AuthState",
    "ImageStore",
    "ImageUpload",
    "MosaicJobService",
    "ProjectStore",
    "StudioServices",
]
