"""Fixtures compartidas: servicios falsos en memoria y un backend HTTP simulado."""

from __future__ import annotations

import asyncio
import base64
import json
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from PIL import Image

from studio.config import Settings
from studio.models import GenerationRequest, JobCreated, JobStatus, MosaicJob

POLL_INTERVAL = 0.01

ScriptItem = Union[MosaicJob, Exception]


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_job(job_id: str, status: str = "processing", progress: int = 0, **extra: Any) -> MosaicJob:
    return MosaicJob(id=job_id, status=JobStatus(status), progress=progress, **extra)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _spin() -> None:
        while not predicate():
            await asyncio.sleep(0.002)

    await asyncio.wait_for(_spin(), timeout)


class FakeJobService:
    """Servicio de trabajos con respuestas guionizadas por identificador."""

    def __init__(self) -> None:
        self.scripts: Dict[str, List[ScriptItem]] = {}
        self.next_ids: List[str] = []
        self.history: List[MosaicJob] = []
        self.submitted: List[GenerationRequest] = []
        self.status_calls: List[str] = []
        self.list_calls = 0
        self.submit_error: Optional[Exception] = None
        self.submit_gate: Optional[asyncio.Event] = None
        self.status_gate: Optional[asyncio.Event] = None
        self.list_error: Optional[Exception] = None

    def script(self, job_id: str, *items: ScriptItem) -> None:
        self.next_ids.append(job_id)
        self.scripts[job_id] = list(items)

    async def submit(self, request: GenerationRequest) -> JobCreated:
        self.submitted.append(request)
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        job_id = self.next_ids.pop(0) if self.next_ids else f"m{len(self.submitted)}"
        return JobCreated(id=job_id, status=JobStatus.pending)

    async def get_status(self, job_id: str) -> MosaicJob:
        self.status_calls.append(job_id)
        if self.status_gate is not None:
            await self.status_gate.wait()
        script = self.scripts[job_id]
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def list_jobs(self, project_id: int) -> List[MosaicJob]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.history)


@pytest.fixture
def job_service() -> FakeJobService:
    return FakeJobService()


@pytest.fixture
def valid_request() -> GenerationRequest:
    from studio.models import MosaicSettings

    return GenerationRequest(
        main_image_id="img-main",
        tile_image_ids=["t1", "t2", "t3"],
        settings=MosaicSettings(tile_size=40, tile_density=90, overlay_ratio=0.3),
        project_id=7,
    )


def png_bytes(size=(8, 6), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_token(payload: dict) -> str:
    def _segment(data: dict) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    return f"{_segment({'alg': 'HS256'})}.{_segment(payload)}.firma"


class FakeBackend:
    """Servicios remotos simulados para ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.projects = {7: {"id": 7, "name": "Retrato", "settings": None}}
        self.status_script: List[dict] = [
            {"id": 41, "status": "processing", "progress": 50},
            {"id": 41, "status": "completed", "progress": 100, "sd_url": "/out/m41.jpg"},
        ]
        self.history = [
            {"id": 30, "status": "completed", "progress": 100, "sd_url": "/out/m30.jpg",
             "created_at": "2024-03-01T10:00:00Z"},
            {"id": 31, "status": "processing", "progress": 20, "created_at": "2024-03-02T10:00:00Z"},
        ]
        self.login_status = 200
        self.register_status = 201

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method

        if path == "/goinkgrid/auth/login" and method == "POST":
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"error": "Credenciales incorrectas"})
            token = make_token({"id": 3, "email": "ana@example.com", "name": "Ana"})
            return httpx.Response(200, json={"token": token, "refresh_token": "r-1"})

        if path == "/goinkgrid/auth/register" and method == "POST":
            if self.register_status != 201:
                return httpx.Response(self.register_status, json={"error": "El correo ya existe"})
            return httpx.Response(201, json={"message": "Usuario creado"})

        if path == "/goinkgrid/auth/refresh" and method == "POST":
            token = make_token({"id": 3, "email": "ana@example.com", "name": "Ana", "renovado": True})
            return httpx.Response(200, json={"token": token, "refresh_token": "r-2"})

        if path == "/goinkgrid/api/projects/" and method == "GET":
            return httpx.Response(200, json={"data": {"projects": list(self.projects.values())}})

        if path.startswith("/goinkgrid/api/projects/") and path.endswith("/mosaics"):
            return httpx.Response(200, json={"mosaics": self.history})

        if path.startswith("/goinkgrid/api/projects/") and method == "GET":
            project_id = int(path.rstrip("/").rsplit("/", 1)[-1])
            if project_id not in self.projects:
                return httpx.Response(404, json={"error": "Proyecto no encontrado"})
            return httpx.Response(200, json={"project": self.projects[project_id]})

        if path == "/goinkgrid/api/images/main" and method == "POST":
            return httpx.Response(201, json={"image": {"id": 100, "path": "/uploads/main.png", "filename": "main.png"}})

        if path == "/goinkgrid/api/images/tiles" and method == "POST":
            return httpx.Response(
                201,
                json={"images": [{"id": 201, "filename": "a.png"}, {"id": 202, "filename": "b.png"}]},
            )

        if path == "/goinkgrid/api/generate/" and method == "POST":
            return httpx.Response(201, json={"id": 41, "status": "pending"})

        if path == "/goinkgrid/api/generate/41/status":
            body = self.status_script.pop(0) if len(self.status_script) > 1 else self.status_script[0]
            return httpx.Response(200, json=body)

        return httpx.Response(404, json={"error": f"Ruta desconocida {method} {path}"})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def studio_settings(tmp_path) -> Settings:
    return Settings(
        downloads_dir=tmp_path / "downloads",
        log_dir=tmp_path / "logs",
        polling_interval_seconds=POLL_INTERVAL,
        min_tile_images=1,
    )


__all__ = ["FakeBackend", "FakeJobService", "make_job", "make_token", "png_bytes", "wait_until"]
