"""Lectura de proyectos; el estudio solo los usa para asociar sesiones."""

from __future__ import annotations

from typing import Any, List

from studio.errors import ServiceError
from studio.models import ProjectMeta

from .api_client import ApiClient, parse_model


def _normalize_project_list(body: Any) -> List[dict]:
    """Acepta una lista o los sobres ``projects``, ``data`` y ``data.projects``."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        if isinstance(body.get("projects"), list):
            return body["projects"]
        data = body.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("projects"), list):
            return data["projects"]
    return []


class ProjectStore:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def get_project(self, project_id: int) -> ProjectMeta:
        body = await self._client.get(f"/projects/{project_id}")
        if isinstance(body, dict) and isinstance(body.get("project"), dict):
            body = body["project"]
        if not isinstance(body, dict):
            raise ServiceError(f"Respuesta inesperada para el proyecto {project_id}")
        return parse_model(ProjectMeta, body, f"proyecto {project_id}")

    async def list_projects(self) -> List[ProjectMeta]:
        body = await self._client.get("/projects/")
        return [parse_model(ProjectMeta, item, "proyectos") for item in _normalize_project_list(body)]


__all__ = ["ProjectStore"]
