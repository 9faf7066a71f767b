"""
Esquemas Pydantic que sustentan el cliente de Mosaic Studio.

Los servicios remotos responden con formas ligeramente distintas según la
ruta; estos modelos son el contrato normalizado que ve el núcleo.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from studio.errors import SubmissionValidationError


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)

    @property
    def rank(self) -> int:
        # completed y failed comparten rango: ninguno sucede al otro.
        return {"pending": 0, "processing": 1, "completed": 2, "failed": 2}[self.value]


class MosaicStyle(str, Enum):
    classic = "classic"
    random = "random"
    flowing = "flowing"


class ResultQuality(str, Enum):
    standard = "standard"
    high = "high"


class SessionState(str, Enum):
    idle = "idle"
    submitting = "submitting"
    polling = "polling"
    completed = "completed"
    failed = "failed"


def _overlay_from_color_adjustment(data: Any) -> Any:
    """Traduce el ajuste de color heredado (0-100) a ``overlay_ratio`` (0-1)."""
    if not isinstance(data, dict):
        return data
    legacy = data.get("color_adjustment", data.get("colorAdjustment"))
    if legacy is None or "overlay_ratio" in data or "overlayRatio" in data:
        return data
    data = dict(data)
    data["overlay_ratio"] = float(legacy) / 100.0
    return data


class MosaicSettings(BaseModel):
    """
    Parámetros de generación que acompañan a una solicitud.

    Acepta tanto ``snake_case`` como ``camelCase`` al construirse; se envía
    siempre en ``snake_case``. Es inmutable: una vez creado un trabajo con
    estos valores, no cambian.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    tile_size: int = Field(50, ge=10, le=200, description="Lado de cada tesela en píxeles.")
    tile_density: int = Field(80, ge=1, le=100, description="Porcentaje de cobertura de las teselas.")
    overlay_ratio: float = Field(
        0.5,
        ge=0.0,
        le=1.0,
        description="Proporción de mezcla de la imagen principal sobre el mosaico.",
    )
    style: MosaicStyle = MosaicStyle.classic
    color_correction: bool = True

    @model_validator(mode="before")
    @classmethod
    def _accept_color_adjustment(cls, data: Any) -> Any:
        return _overlay_from_color_adjustment(data)


class GenerationRequest(BaseModel):
    """Solicitud de un nuevo mosaico. La sesión valida los campos obligatorios."""

    main_image_id: Optional[str] = None
    tile_image_ids: list[str] = Field(default_factory=list)
    settings: Optional[MosaicSettings] = None
    project_id: Optional[int] = None

    def to_payload(self) -> dict:
        """Cuerpo JSON que espera el servicio de trabajos."""
        if self.settings is None:
            raise SubmissionValidationError("Faltan los ajustes del mosaico")
        payload = {
            "main_image_id": self.main_image_id,
            "tile_image_ids": list(self.tile_image_ids),
            **self.settings.model_dump(mode="json"),
        }
        if self.project_id is not None:
            payload["project_id"] = self.project_id
        return payload


def _coerce_id(value: Any) -> Any:
    return str(value) if isinstance(value, int) else value


RemoteId = Annotated[str, BeforeValidator(_coerce_id)]


class JobCreated(BaseModel):
    """Respuesta devuelta cuando el servicio acepta un trabajo."""

    id: RemoteId
    status: JobStatus = JobStatus.pending
    created_at: Optional[datetime] = None


class MosaicJob(BaseModel):
    """Instantánea de un trabajo tal como la reporta el servicio."""

    model_config = ConfigDict(frozen=True)

    id: RemoteId
    status: JobStatus
    progress: int = 0
    sd_url: Optional[str] = None
    hd_url: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    tile_size: Optional[int] = None
    tile_density: Optional[int] = None
    style: Optional[str] = None
    overlay_ratio: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_fields(cls, data: Any) -> Any:
        data = _overlay_from_color_adjustment(data)
        if isinstance(data, dict) and data.get("result_url") and not data.get("sd_url"):
            data = dict(data)
            data["sd_url"] = data["result_url"]
        return data

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, min(100, int(round(float(value)))))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ImageRef(BaseModel):
    """Referencia a una imagen almacenada por el servicio de imágenes."""

    id: RemoteId
    path: str = ""
    filename: str = ""
    width: int = 0
    height: int = 0
    format: str = ""
    type: Optional[str] = None
    project_id: Optional[int] = None


class ProjectMeta(BaseModel):
    """Metadatos de un proyecto; el núcleo solo los usa para asociar sesiones."""

    id: int
    name: str = ""
    description: str = ""
    status: Optional[str] = None
    settings: dict = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    main_image: Optional[ImageRef] = None

    @field_validator("settings", mode="before")
    @classmethod
    def _settings_or_empty(cls, value: Any) -> Any:
        return value or {}


class AuthUser(BaseModel):
    id: int
    email: str
    name: str


class AuthTokens(BaseModel):
    token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


class SelectionsView(BaseModel):
    """Imagen principal, teselas y ajustes elegidos para un proyecto."""

    main_image: Optional[ImageRef] = None
    tile_images: list[ImageRef] = Field(default_factory=list)
    settings: MosaicSettings = Field(default_factory=MosaicSettings)
    ready: bool = False


class SessionSnapshot(BaseModel):
    """Vista coherente de la sesión de generación que consume la interfaz."""

    project_id: Optional[int] = None
    state: SessionState
    progress: int = 0
    error: Optional[str] = None
    job: Optional[MosaicJob] = None


class StudioSessionResponse(SessionSnapshot):
    selections: SelectionsView


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    user: AuthUser


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class SettingsUpdate(BaseModel):
    """Actualización parcial de ajustes; los campos ausentes se conservan."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    tile_size: Optional[int] = None
    tile_density: Optional[int] = None
    overlay_ratio: Optional[float] = None
    style: Optional[MosaicStyle] = None
    color_correction: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_color_adjustment(cls, data: Any) -> Any:
        return _overlay_from_color_adjustment(data)


class HistoryResponse(BaseModel):
    project_id: int
    jobs: list[MosaicJob]
    refreshed_at: Optional[datetime] = None
    error: Optional[str] = None


class ResultResponse(BaseModel):
    job_id: str
    quality: ResultQuality
    url: str


class ApiError(BaseModel):
    """Contenedor estándar para respuestas de error."""

    detail: str


__all__ = [
    "ApiError",
    "AuthTokens",
    "AuthUser",
    "GenerationRequest",
    "HistoryResponse",
    "ImageRef",
    "JobCreated",
    "JobStatus",
    "LoginRequest",
    "LoginResponse",
    "MosaicJob",
    "MosaicSettings",
    "MosaicStyle",
    "ProjectMeta",
    "RegisterRequest",
    "ResultQuality",
    "ResultResponse",
    "SelectionsView",
    "SessionSnapshot",
    "SessionState",
    "SettingsUpdate",
    "StudioSessionResponse",
]
