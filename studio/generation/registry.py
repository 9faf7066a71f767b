"""Registro de espacios de trabajo: una sesión, un historial y unas selecciones por proyecto."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from studio.config import Settings, settings as default_settings
from studio.logging_config import get_logger
from studio.models import ProjectMeta
from studio.services.jobs import MosaicJobService
from studio.services.projects import ProjectStore

from .history import JobHistoryCache
from .selections import MosaicSelections
from .session import GenerationSession

LOGGER = get_logger("studio.registry")


@dataclass
class ProjectWorkspace:
    project: ProjectMeta
    session: GenerationSession
    history: JobHistoryCache
    selections: MosaicSelections


class SessionRegistry:
    """
    Mantiene sesiones independientes por proyecto.

    Abrir un proyecto lo verifica contra el almacén de proyectos y carga su
    historial; dos proyectos abiertos no comparten ningún estado.
    """

    def __init__(
        self,
        projects: ProjectStore,
        jobs: MosaicJobService,
        config: Optional[Settings] = None,
    ) -> None:
        self._projects = projects
        self._jobs = jobs
        self._config = config or default_settings
        self._workspaces: Dict[int, ProjectWorkspace] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, project_id: int) -> bool:
        return project_id in self._workspaces

    def get(self, project_id: int) -> Optional[ProjectWorkspace]:
        return self._workspaces.get(project_id)

    def workspaces(self) -> Iterable[ProjectWorkspace]:
        return tuple(self._workspaces.values())

    async def open(self, project_id: int) -> ProjectWorkspace:
        workspace = self._workspaces.get(project_id)
        if workspace is not None:
            return workspace

        async with self._lock:
            workspace = self._workspaces.get(project_id)
            if workspace is not None:
                return workspace

            project = await self._projects.get_project(project_id)
            history = JobHistoryCache(project.id, self._jobs)
            session = GenerationSession(
                self._jobs,
                history=history,
                project_id=project.id,
                poll_interval=self._config.polling_interval_seconds,
            )
            selections = MosaicSelections(min_tile_images=self._config.min_tile_images)
            session.subscribe(selections.track)
            workspace = ProjectWorkspace(project=project, session=session, history=history, selections=selections)
            self._workspaces[project_id] = workspace
            LOGGER.info("Proyecto %s abierto (%s)", project.id, project.name)

        await history.refresh()
        return workspace

    async def close(self, project_id: int) -> None:
        workspace = self._workspaces.pop(project_id, None)
        if workspace is not None:
            await workspace.session.close()

    async def close_all(self) -> None:
        for project_id in list(self._workspaces):
            await self.close(project_id)


__all__ = ["ProjectWorkspace", "SessionRegistry"]
