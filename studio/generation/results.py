"""Selección del artefacto a mostrar según la calidad elegida."""

from __future__ import annotations

from typing import List, Optional, Union

from studio.errors import ResultUnavailableError
from studio.models import JobStatus, MosaicJob, ResultQuality


def select_result(job: Optional[MosaicJob], quality: Union[ResultQuality, str]) -> str:
    """
    Devuelve la URL de la variante pedida de un trabajo completado.

    El servicio no garantiza producir ambas calidades, así que una variante
    ausente es un caso normal y se señala con ``ResultUnavailableError``.
    """
    quality = ResultQuality(quality)
    if job is None or job.status is not JobStatus.completed:
        raise ResultUnavailableError("El mosaico todavia no esta completo")
    url = job.sd_url if quality is ResultQuality.standard else job.hd_url
    if not url:
        raise ResultUnavailableError(f"No hay imagen disponible en calidad {quality.value}")
    return url


def available_qualities(job: Optional[MosaicJob]) -> List[ResultQuality]:
    if job is None or job.status is not JobStatus.completed:
        return []
    return [quality for quality, url in ((ResultQuality.standard, job.sd_url), (ResultQuality.high, job.hd_url)) if url]


__all__ = ["available_qualities", "select_result"]
