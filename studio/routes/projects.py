"""
Rutas de la API del estudio para generar mosaicos dentro de un proyecto.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile, status
from pydantic import ValidationError

from studio.config import Settings
from studio.errors import (
    AuthenticationExpired,
    InvalidHistorySelection,
    InvalidImageError,
    ResultUnavailableError,
    ServiceError,
    SubmissionValidationError,
)
from studio.generation import ProjectWorkspace, SessionRegistry
from studio.logging_config import get_logger
from studio.models import (
    ApiError,
    HistoryResponse,
    ImageRef,
    MosaicSettings,
    ProjectMeta,
    ResultQuality,
    ResultResponse,
    SessionSnapshot,
    SettingsUpdate,
    StudioSessionResponse,
)
from studio.services import ImageUpload, StudioServices

LOGGER = get_logger("studio.api")
router = APIRouter(prefix="/api/projects/{project_id}", tags=["generation"])
catalog_router = APIRouter(prefix="/api/projects", tags=["projects"])


# ---------------------------------------------------------------------------
# Ayudantes de dependencias
# ---------------------------------------------------------------------------
def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _services(request: Request) -> StudioServices:
    return request.app.state.services


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _service_http_error(exc: ServiceError) -> HTTPException:
    if isinstance(exc, AuthenticationExpired):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inicia sesion de nuevo")
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.detail or "Recurso no encontrado")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.detail or str(exc))


async def _workspace(project_id: int, registry: SessionRegistry = Depends(_registry)) -> ProjectWorkspace:
    try:
        return await registry.open(project_id)
    except ServiceError as exc:
        LOGGER.warning("No se pudo abrir el proyecto %s: %s", project_id, exc)
        raise _service_http_error(exc)


def _session_response(workspace: ProjectWorkspace) -> StudioSessionResponse:
    snapshot = workspace.session.snapshot()
    return StudioSessionResponse(**snapshot.model_dump(), selections=workspace.selections.view())


def _history_response(workspace: ProjectWorkspace) -> HistoryResponse:
    history = workspace.history
    return HistoryResponse(
        project_id=history.project_id,
        jobs=list(history.entries),
        refreshed_at=history.refreshed_at,
        error=str(history.last_error) if history.last_error else None,
    )


async def _read_upload(upload: UploadFile, config: Settings) -> ImageUpload:
    content = await upload.read()
    await upload.close()
    try:
        return ImageUpload.from_bytes(upload.filename or "", content, config)
    except InvalidImageError as exc:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(exc))


# ---------------------------------------------------------------------------
# Sesión
# ---------------------------------------------------------------------------
@router.get("/session", response_model=StudioSessionResponse, responses={404: {"model": ApiError}})
async def get_session(workspace: ProjectWorkspace = Depends(_workspace)) -> StudioSessionResponse:
    return _session_response(workspace)


@router.post("/session/reset", response_model=SessionSnapshot)
async def reset_session(workspace: ProjectWorkspace = Depends(_workspace)) -> SessionSnapshot:
    workspace.session.reset()
    return workspace.session.snapshot()


@router.post(
    "/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SessionSnapshot,
    responses={400: {"model": ApiError}},
)
async def generate(workspace: ProjectWorkspace = Depends(_workspace)) -> SessionSnapshot:
    """Envía las selecciones actuales; el resultado se sigue con ``GET /session``."""
    request = workspace.selections.build_request(project_id=workspace.project.id)
    try:
        return await workspace.session.submit(request)
    except SubmissionValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/result", response_model=ResultResponse, responses={404: {"model": ApiError}})
async def get_result(
    quality: ResultQuality = Query(ResultQuality.standard),
    workspace: ProjectWorkspace = Depends(_workspace),
    config: Settings = Depends(_settings),
) -> ResultResponse:
    try:
        url = workspace.session.result(quality)
    except ResultUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    assert workspace.session.job is not None
    return ResultResponse(job_id=workspace.session.job.id, quality=quality, url=config.image_url(url))


# ---------------------------------------------------------------------------
# Imágenes y ajustes
# ---------------------------------------------------------------------------
@router.post(
    "/images/main",
    response_model=ImageRef,
    responses={415: {"model": ApiError}, 502: {"model": ApiError}},
)
async def upload_main_image(
    image: UploadFile = File(...),
    workspace: ProjectWorkspace = Depends(_workspace),
    services: StudioServices = Depends(_services),
    config: Settings = Depends(_settings),
) -> ImageRef:
    upload = await _read_upload(image, config)
    try:
        stored = await services.images.upload_main(upload, project_id=workspace.project.id)
    except ServiceError as exc:
        raise _service_http_error(exc)
    workspace.selections.set_main_image(stored)
    return stored


@router.post(
    "/images/tiles",
    response_model=List[ImageRef],
    responses={415: {"model": ApiError}, 502: {"model": ApiError}},
)
async def upload_tile_images(
    images: List[UploadFile] = File(...),
    collection_id: Optional[int] = Form(None),
    workspace: ProjectWorkspace = Depends(_workspace),
    services: StudioServices = Depends(_services),
    config: Settings = Depends(_settings),
) -> List[ImageRef]:
    uploads = [await _read_upload(image, config) for image in images]
    try:
        stored = await services.images.upload_tiles(
            uploads, project_id=workspace.project.id, collection_id=collection_id
        )
    except ServiceError as exc:
        raise _service_http_error(exc)
    workspace.selections.add_tile_images(stored)
    return stored


@router.delete(
    "/images/tiles/{image_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ApiError}},
)
async def remove_tile_image(image_id: str, workspace: ProjectWorkspace = Depends(_workspace)) -> Response:
    if not workspace.selections.remove_tile_image(image_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tesela no seleccionada")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/images/tiles", status_code=status.HTTP_204_NO_CONTENT)
async def clear_tile_images(workspace: ProjectWorkspace = Depends(_workspace)) -> Response:
    workspace.selections.clear_tile_images()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/settings", response_model=MosaicSettings, responses={400: {"model": ApiError}})
async def update_settings(
    payload: SettingsUpdate,
    workspace: ProjectWorkspace = Depends(_workspace),
) -> MosaicSettings:
    try:
        return workspace.selections.update_settings(**payload.model_dump())
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Ajustes invalidos: {exc}")


@router.post("/settings/reset", response_model=MosaicSettings)
async def reset_settings(workspace: ProjectWorkspace = Depends(_workspace)) -> MosaicSettings:
    return workspace.selections.reset_settings()


# ---------------------------------------------------------------------------
# Historial
# ---------------------------------------------------------------------------
@router.get("/history", response_model=HistoryResponse)
async def get_history(workspace: ProjectWorkspace = Depends(_workspace)) -> HistoryResponse:
    return _history_response(workspace)


@router.post("/history/refresh", response_model=HistoryResponse)
async def refresh_history(workspace: ProjectWorkspace = Depends(_workspace)) -> HistoryResponse:
    await workspace.history.refresh()
    return _history_response(workspace)


@router.post(
    "/history/{job_id}/select",
    response_model=SessionSnapshot,
    responses={404: {"model": ApiError}, 409: {"model": ApiError}},
)
async def select_history_entry(job_id: str, workspace: ProjectWorkspace = Depends(_workspace)) -> SessionSnapshot:
    job = workspace.history.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trabajo no encontrado en el historial")
    try:
        return workspace.session.select(job)
    except InvalidHistorySelection as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


# ---------------------------------------------------------------------------
# Catálogo de proyectos
# ---------------------------------------------------------------------------
@catalog_router.get("", response_model=List[ProjectMeta], responses={401: {"model": ApiError}})
async def list_projects(services: StudioServices = Depends(_services)) -> List[ProjectMeta]:
    try:
        return await services.projects.list_projects()
    except ServiceError as exc:
        raise _service_http_error(exc)
