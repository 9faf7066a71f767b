"""
Historial de trabajos de un proyecto.

La lista se reemplaza completa en una sola asignación de una tupla inmutable:
quien la lea ve la lista anterior o la nueva, nunca una mezcla.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator, Optional, Protocol, Sequence, Tuple

from studio.errors import ServiceError
from studio.logging_config import get_logger
from studio.models import MosaicJob

LOGGER = get_logger("studio.history")


class JobLister(Protocol):
    async def list_jobs(self, project_id: int) -> Sequence[MosaicJob]: ...


def _created_key(job: MosaicJob) -> float:
    return job.created_at.timestamp() if job.created_at else float("-inf")


class JobHistoryCache:
    """Instantáneas de solo lectura de los trabajos de un proyecto, del más reciente al más antiguo."""

    def __init__(self, project_id: int, job_service: JobLister) -> None:
        self.project_id = project_id
        self._service = job_service
        self._entries: Tuple[MosaicJob, ...] = ()
        self._refresh_token = 0
        self._pending = 0
        self.refreshed_at: Optional[datetime] = None
        self.last_error: Optional[ServiceError] = None

    @property
    def entries(self) -> Tuple[MosaicJob, ...]:
        return self._entries

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MosaicJob]:
        return iter(self._entries)

    def get(self, job_id: str) -> Optional[MosaicJob]:
        for job in self._entries:
            if job.id == job_id:
                return job
        return None

    async def refresh(self) -> Tuple[MosaicJob, ...]:
        """
        Vuelve a pedir la lista al servicio y la reemplaza.

        Si hay varias recargas a la vez gana la última iniciada. Un fallo se
        registra en ``last_error`` y conserva la lista anterior.
        """
        self._refresh_token += 1
        token = self._refresh_token
        self._pending += 1
        try:
            jobs = await self._service.list_jobs(self.project_id)
        except ServiceError as exc:
            if token == self._refresh_token:
                self.last_error = exc
            LOGGER.warning("No se pudo recargar el historial del proyecto %s: %s", self.project_id, exc)
            return self._entries
        finally:
            self._pending -= 1

        if token != self._refresh_token:
            LOGGER.debug("Recarga obsoleta del historial del proyecto %s descartada", self.project_id)
            return self._entries

        ordered = tuple(sorted(jobs, key=_created_key, reverse=True))
        self._entries = ordered
        self.refreshed_at = datetime.now(timezone.utc)
        self.last_error = None
        LOGGER.info("Historial del proyecto %s: %d trabajos", self.project_id, len(ordered))
        return ordered


__all__ = ["JobHistoryCache", "JobLister"]
