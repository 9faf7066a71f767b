"""
Selecciones de un proyecto: imagen principal, teselas y ajustes.

Es el estado explícito que antes vivía en un contexto global de la interfaz;
cada proyecto tiene el suyo y se pasa a quien lo necesite.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from studio.models import GenerationRequest, ImageRef, MosaicSettings, SelectionsView, SessionSnapshot


class MosaicSelections:
    """Entradas de la próxima generación y seguimiento de la última."""

    def __init__(self, min_tile_images: int = 1) -> None:
        self.min_tile_images = max(1, min_tile_images)
        self.main_image: Optional[ImageRef] = None
        self._tile_images: List[ImageRef] = []
        self.settings = MosaicSettings()
        self.generation_id: Optional[str] = None
        self.generation_status: Optional[str] = None

    @property
    def tile_images(self) -> Tuple[ImageRef, ...]:
        return tuple(self._tile_images)

    @property
    def is_ready(self) -> bool:
        return self.main_image is not None and len(self._tile_images) >= self.min_tile_images

    def set_main_image(self, image: Optional[ImageRef]) -> None:
        self.main_image = image

    def add_tile_images(self, images: Iterable[ImageRef]) -> int:
        """Añade teselas ignorando las repetidas; devuelve cuántas se añadieron."""
        known = {image.id for image in self._tile_images}
        added = 0
        for image in images:
            if image.id in known:
                continue
            self._tile_images.append(image)
            known.add(image.id)
            added += 1
        return added

    def remove_tile_image(self, image_id: str) -> bool:
        before = len(self._tile_images)
        self._tile_images = [image for image in self._tile_images if image.id != image_id]
        return len(self._tile_images) != before

    def clear_tile_images(self) -> None:
        self._tile_images = []

    def update_settings(self, **changes: Any) -> MosaicSettings:
        """Aplica cambios parciales; los valores ``None`` se ignoran y el resultado se valida."""
        merged = self.settings.model_dump()
        merged.update({key: value for key, value in changes.items() if value is not None})
        self.settings = MosaicSettings.model_validate(merged)
        return self.settings

    def reset_settings(self) -> MosaicSettings:
        self.settings = MosaicSettings()
        return self.settings

    def build_request(self, project_id: Optional[int] = None) -> GenerationRequest:
        return GenerationRequest(
            main_image_id=self.main_image.id if self.main_image else None,
            tile_image_ids=[image.id for image in self._tile_images],
            settings=self.settings,
            project_id=project_id,
        )

    def track(self, snapshot: SessionSnapshot) -> None:
        """Observador de la sesión: recuerda el identificador y el estado de la generación."""
        self.generation_id = snapshot.job.id if snapshot.job else None
        self.generation_status = snapshot.state.value

    def view(self) -> SelectionsView:
        return SelectionsView(
            main_image=self.main_image,
            tile_images=list(self._tile_images),
            settings=self.settings,
            ready=self.is_ready,
        )


__all__ = ["MosaicSelections"]
