"""
Subida de la imagen principal y de las teselas al servicio de imágenes.

Antes de enviar nada se comprueba localmente la extensión, el tamaño y que el
archivo sea una imagen legible; así los errores obvios no cuestan una ida y
vuelta al servidor.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable, List, Optional

from PIL import Image, UnidentifiedImageError

from studio.config import Settings, settings as default_settings
from studio.errors import InvalidImageError, ServiceError
from studio.logging_config import get_logger
from studio.models import ImageRef

from .api_client import ApiClient, parse_model

LOGGER = get_logger("studio.images")

# Pillow no abre HEIC sin complementos; esos archivos se envían sin inspección.
_UNINSPECTED_EXTENSIONS = {".heic"}


@dataclass(frozen=True)
class ImageUpload:
    """Archivo listo para enviarse en un formulario multipart."""

    filename: str
    content: bytes
    content_type: str
    width: int = 0
    height: int = 0

    @classmethod
    def from_bytes(cls, filename: str, content: bytes, config: Optional[Settings] = None) -> "ImageUpload":
        config = config or default_settings
        if not filename:
            raise InvalidImageError("Se requiere un nombre de archivo")
        extension = Path(filename).suffix.lower()
        if extension not in config.allowed_image_extensions:
            allowed = ", ".join(sorted(config.allowed_image_extensions))
            raise InvalidImageError(f"Formato no soportado para {filename}. Usa {allowed}.")
        if not content:
            raise InvalidImageError(f"El archivo {filename} esta vacio")
        if len(content) > config.max_upload_bytes:
            raise InvalidImageError(
                f"{filename} supera el limite de {config.max_upload_bytes // (1024 * 1024)} MB"
            )

        width = height = 0
        if extension not in _UNINSPECTED_EXTENSIONS:
            try:
                with Image.open(BytesIO(content)) as image:
                    width, height = image.size
                    image.verify()
            except (UnidentifiedImageError, OSError, ValueError) as exc:
                raise InvalidImageError(f"{filename} no es una imagen valida: {exc}") from exc

        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        return cls(filename=filename, content=content, content_type=content_type, width=width, height=height)

    @classmethod
    def from_path(cls, path: Path, config: Optional[Settings] = None) -> "ImageUpload":
        path = Path(path)
        if not path.is_file():
            raise InvalidImageError(f"No existe el archivo {path}")
        return cls.from_bytes(path.name, path.read_bytes(), config)

    def as_multipart(self, field_name: str) -> tuple:
        return (field_name, (self.filename, self.content, self.content_type))


def _form_data(project_id: Optional[int], collection_id: Optional[int] = None) -> dict:
    data = {}
    if project_id:
        data["project_id"] = str(project_id)
    if collection_id:
        data["collection_id"] = str(collection_id)
    return data


def _normalize_image_list(body: Any) -> List[ImageRef]:
    if isinstance(body, dict):
        body = body.get("images", body.get("data"))
    if not isinstance(body, list):
        raise ServiceError("Respuesta inesperada al subir teselas")
    return [parse_model(ImageRef, item, "teselas") for item in body]


class ImageStore:
    """Operaciones del servicio de imágenes que consume el estudio."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def upload_main(self, upload: ImageUpload, project_id: Optional[int] = None) -> ImageRef:
        body = await self._client.upload(
            "/images/main",
            files=[upload.as_multipart("image")],
            data=_form_data(project_id),
        )
        if isinstance(body, dict) and isinstance(body.get("image"), dict):
            body = body["image"]
        if not isinstance(body, dict):
            raise ServiceError("Respuesta inesperada al subir la imagen principal")
        image = parse_model(ImageRef, body, "imagen principal")
        LOGGER.info("Imagen principal %s subida (%s)", image.id, upload.filename)
        return image

    async def upload_tiles(
        self,
        uploads: Iterable[ImageUpload],
        project_id: Optional[int] = None,
        collection_id: Optional[int] = None,
    ) -> List[ImageRef]:
        files = [upload.as_multipart("images[]") for upload in uploads]
        if not files:
            return []
        body = await self._client.upload("/images/tiles", files=files, data=_form_data(project_id, collection_id))
        images = _normalize_image_list(body)
        LOGGER.info("%d teselas subidas", len(images))
        return images


__all__ = ["ImageStore", "ImageUpload"]
