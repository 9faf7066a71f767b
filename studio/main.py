"""
Fábrica de aplicaciones FastAPI para Mosaic Studio.

La aplicación es la cara local del cliente: guarda una sesión de generación
por proyecto y la expone a la interfaz como JSON, mientras los servicios
remotos (autenticación, proyectos, imágenes y trabajos) hacen el trabajo real.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studio.config import Settings, settings as default_settings
from studio.generation import SessionRegistry
from studio.logging_config import get_logger
from studio.routes import get_api_router
from studio.services import StudioServices


def create_app(config: Optional[Settings] = None, services: Optional[StudioServices] = None) -> FastAPI:
    logger = get_logger("studio.main")
    logger.info("Inicializando aplicacion Mosaic Studio")
    config = config or default_settings
    services = services or StudioServices.from_settings(config)
    registry = SessionRegistry(services.projects, services.jobs, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # Ningún sondeo debe sobrevivir al servidor.
        await registry.close_all()
        await services.aclose()
        logger.info("Mosaic Studio detenido")

    app = FastAPI(
        title="Mosaic Studio",
        description="Cliente local para generar mosaicos y seguir su progreso.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = config
    app.state.services = services
    app.state.registry = registry

    app.include_router(get_api_router())

    @app.get("/api/diagnostics")
    async def diagnostics() -> dict:
        return {
            "api_url": config.api_url,
            "authenticated": services.auth_state.is_authenticated,
            "open_projects": sorted(workspace.project.id for workspace in registry.workspaces()),
            "poll_interval": config.polling_interval_seconds,
            "downloads_dir": str(config.downloads_dir),
        }

    return app


__all__ = ["create_app"]
