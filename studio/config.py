"""
Utilidades de configuración para el cliente de Mosaic Studio.

Centraliza las URLs de los servicios remotos, la cadencia de sondeo y las
rutas locales para que la API del estudio, la línea de comandos y las
pruebas compartan una sola fuente de verdad.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from paths import DOWNLOADS_DIR, LOG_DIR, PROJECT_ROOT

ENV_PREFIX = "MOSAIC_STUDIO_"


@dataclass(slots=True)
class Settings:
    """Contenedor de parámetros de ejecución."""

    project_root: Path = PROJECT_ROOT
    downloads_dir: Path = DOWNLOADS_DIR
    log_dir: Path = LOG_DIR
    base_url: str = "http://localhost:8034"
    api_url: str = "http://localhost:8034/goinkgrid/api"
    auth_url: str = "http://localhost:8034/goinkgrid/auth"
    polling_interval_seconds: float = 2.0  # Cadencia fija del sondeo; sin backoff ni jitter.
    request_timeout_seconds: float = 30.0
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_image_extensions: frozenset[str] = field(
        default_factory=lambda: frozenset({".jpg", ".jpeg", ".png", ".webp", ".heic"})
    )
    min_tile_images: int = 5  # Umbral del asistente; el servicio acepta desde una tesela.

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Construye la configuración aplicando las variables ``MOSAIC_STUDIO_*``.

        Solo se sobrescriben los campos escalares; las rutas y el conjunto de
        extensiones se mantienen con sus valores predeterminados.
        """
        environ = os.environ if environ is None else environ
        base = cls()
        overrides = {}
        for item in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{item.name.upper()}")
            if raw is None:
                continue
            current = getattr(base, item.name)
            if isinstance(current, bool) or not isinstance(current, (str, int, float)):
                continue
            overrides[item.name] = type(current)(raw)
        return replace(base, **overrides) if overrides else base

    def image_url(self, path: Optional[str]) -> str:
        """Convierte una ruta devuelta por el servicio en una URL absoluta."""
        if not path:
            return ""
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def ensure_directories(self) -> None:
        """Crea los directorios grabables si no existen."""
        for directory in (self.downloads_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)


settings = Settings.from_env()
settings.ensure_directories()

__all__ = ["settings", "Settings"]
