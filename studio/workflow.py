"""
Flujo completo de generación desde la línea de comandos.

Sube la imagen principal y las teselas, envía el trabajo, espera a que la
sesión llegue a un estado terminal y descarga la variante elegida.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from studio.config import Settings, settings as default_settings
from studio.errors import ResultUnavailableError
from studio.generation import GenerationSession, JobHistoryCache
from studio.logging_config import get_logger
from studio.models import GenerationRequest, MosaicSettings, ResultQuality, SessionSnapshot, SessionState
from studio.services import ImageUpload, StudioServices

LOGGER = get_logger("studio.workflow")

ProgressCallback = Callable[[SessionSnapshot], None]

_TERMINAL_STATES = (SessionState.completed, SessionState.failed)


@dataclass
class GenerationOutcome:
    snapshot: SessionSnapshot
    result_url: Optional[str] = None
    download_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.snapshot.state is SessionState.completed


async def generate_mosaic(
    services: StudioServices,
    project_id: int,
    main_path: Path,
    tile_paths: Sequence[Path],
    mosaic_settings: Optional[MosaicSettings] = None,
    quality: ResultQuality = ResultQuality.standard,
    config: Optional[Settings] = None,
    on_progress: Optional[ProgressCallback] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    collection_id: Optional[int] = None,
) -> GenerationOutcome:
    """
    Ejecuta una generación de principio a fin.

    Los archivos inválidos (``InvalidImageError``) y los fallos remotos antes
    del envío (``ServiceError``) se propagan; desde el envío en adelante el
    resultado se describe en ``GenerationOutcome.snapshot``.
    """
    config = config or default_settings
    if email and password:
        await services.auth.login(email, password)

    main_upload = ImageUpload.from_path(main_path, config)
    tile_uploads = [ImageUpload.from_path(path, config) for path in tile_paths]

    project = await services.projects.get_project(project_id)
    main_image = await services.images.upload_main(main_upload, project_id=project.id)
    tile_images = await services.images.upload_tiles(
        tile_uploads, project_id=project.id, collection_id=collection_id
    )

    request = GenerationRequest(
        main_image_id=main_image.id,
        tile_image_ids=[image.id for image in tile_images],
        settings=mosaic_settings or MosaicSettings(),
        project_id=project.id,
    )

    finished = asyncio.Event()

    def listener(snapshot: SessionSnapshot) -> None:
        if on_progress is not None:
            on_progress(snapshot)
        if snapshot.state in _TERMINAL_STATES:
            finished.set()

    history = JobHistoryCache(project.id, services.jobs)
    async with GenerationSession(
        services.jobs,
        history=history,
        project_id=project.id,
        poll_interval=config.polling_interval_seconds,
    ) as session:
        session.subscribe(listener)
        snapshot = await session.submit(request)
        if snapshot.state not in _TERMINAL_STATES:
            await finished.wait()
        outcome = GenerationOutcome(snapshot=session.snapshot())
        if not outcome.succeeded:
            LOGGER.warning("Generacion terminada sin exito: %s", outcome.snapshot.error)
            return outcome

        try:
            relative_url = session.result(quality)
        except ResultUnavailableError as exc:
            LOGGER.warning("Mosaico %s sin variante %s: %s", session.job.id, quality, exc)
            return outcome

        outcome.result_url = config.image_url(relative_url)
        suffix = Path(relative_url.split("?")[0]).suffix or ".jpg"
        filename = f"mosaic_{session.job.id}_{ResultQuality(quality).value}{suffix}"
        outcome.download_path = await services.jobs.download(outcome.result_url, config.downloads_dir, filename)
        return outcome


__all__ = ["GenerationOutcome", "generate_mosaic"]
