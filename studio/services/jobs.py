"""
Cliente del servicio de trabajos de mosaico.

El compositor vive en el servidor; desde aquí solo se crean trabajos, se
consulta su estado y se listan los de un proyecto.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

from studio.errors import ServiceError
from studio.logging_config import get_logger
from studio.models import GenerationRequest, JobCreated, MosaicJob

from .api_client import ApiClient, parse_model

LOGGER = get_logger("studio.jobs")


def _normalize_job_list(body: Any) -> List[dict]:
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ("mosaics", "jobs", "data"):
            if isinstance(body.get(key), list):
                return body[key]
    raise ServiceError("Respuesta inesperada al listar los mosaicos del proyecto")


class MosaicJobService:
    """Operaciones remotas sobre trabajos de generación."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def submit(self, request: GenerationRequest) -> JobCreated:
        body = await self._client.post("/generate/", json=request.to_payload())
        created = parse_model(JobCreated, body, "creacion de trabajo")
        LOGGER.info("Trabajo %s creado", created.id)
        return created

    async def get_status(self, job_id: str) -> MosaicJob:
        body = await self._client.get(f"/generate/{job_id}/status")
        return parse_model(MosaicJob, body, f"estado del trabajo {job_id}")

    async def list_jobs(self, project_id: int) -> List[MosaicJob]:
        body = await self._client.get(f"/projects/{project_id}/mosaics")
        return [parse_model(MosaicJob, item, "historial") for item in _normalize_job_list(body)]

    async def download(self, url: str, destination: Path, filename: Optional[str] = None) -> Path:
        """Guarda un artefacto dentro del directorio ``destination``."""
        target = destination / (filename or Path(url.split("?")[0]).name or "mosaic.jpg")
        path = await self._client.download(url, target)
        LOGGER.info("Mosaico descargado en %s", path)
        return path


__all__ = ["MosaicJobService"]
