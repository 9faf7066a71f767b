"""
Máquina de estados de una sesión de generación de mosaicos.

Estados: ``idle -> submitting -> polling -> {completed | failed}``. Una sesión
tiene como máximo un trabajo activo; enviar otro, reiniciar o cerrar la
sesión detiene primero el sondeo del anterior. Los fallos de las llamadas
asíncronas se convierten en estado; solo los errores de validación llegan a
quien llama.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Protocol, Set, Union

from studio.config import settings
from studio.errors import (
    GenerationFailure,
    InvalidHistorySelection,
    PollingTransportError,
    StudioError,
    SubmissionError,
    SubmissionValidationError,
)
from studio.logging_config import get_logger
from studio.models import (
    GenerationRequest,
    JobCreated,
    JobStatus,
    MosaicJob,
    ResultQuality,
    SessionSnapshot,
    SessionState,
)

from .history import JobHistoryCache
from .poller import JobStatusPoller
from .results import select_result

LOGGER = get_logger("studio.session")

SUBMISSION_FAILED_MESSAGE = "No se pudo iniciar la generacion del mosaico. Intentalo de nuevo."
STATUS_CHECK_FAILED_MESSAGE = "No se pudo consultar el estado de la generacion. Intentalo de nuevo."
GENERATION_FAILED_MESSAGE = "La generacion del mosaico fallo."

Listener = Callable[[SessionSnapshot], None]


class JobService(Protocol):
    async def submit(self, request: GenerationRequest) -> JobCreated: ...

    async def get_status(self, job_id: str) -> MosaicJob: ...


class GenerationSession:
    """Estado único y coherente de la generación en curso para un proyecto."""

    def __init__(
        self,
        job_service: JobService,
        history: Optional[JobHistoryCache] = None,
        project_id: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.project_id = project_id
        self._service = job_service
        self._history = history
        self._poller = JobStatusPoller(
            job_service.get_status,
            on_update=self._handle_update,
            on_error=self._handle_poll_error,
            interval=settings.polling_interval_seconds if poll_interval is None else poll_interval,
        )
        self._state = SessionState.idle
        self._job: Optional[MosaicJob] = None
        self._progress = 0
        self._error: Optional[StudioError] = None
        self._submission_token = 0
        self._listeners: List[Listener] = []
        self._background: Set[asyncio.Task] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Vista pública
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def job(self) -> Optional[MosaicJob]:
        return self._job

    @property
    def last_error(self) -> Optional[StudioError]:
        return self._error

    @property
    def error(self) -> Optional[str]:
        return str(self._error) if self._error is not None else None

    @property
    def poller(self) -> JobStatusPoller:
        return self._poller

    @property
    def history(self) -> Optional[JobHistoryCache]:
        return self._history

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            project_id=self.project_id,
            state=self._state,
            progress=self._progress,
            error=self.error,
            job=self._job,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registra un observador de cambios; devuelve la función para darlo de baja."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def result(self, quality: Union[ResultQuality, str] = ResultQuality.standard) -> str:
        return select_result(self._job, quality)

    # ------------------------------------------------------------------
    # Transiciones
    # ------------------------------------------------------------------
    async def submit(self, request: GenerationRequest) -> SessionSnapshot:
        """
        Solicita un mosaico nuevo y empieza a seguirlo.

        Lanza ``SubmissionValidationError`` sin tocar la red ni el estado si
        faltan datos. Cualquier otro fallo deja la sesión en ``failed``.
        """
        self._ensure_open()
        self._validate(request)

        self._poller.stop()
        self._submission_token += 1
        token = self._submission_token
        self._job = None
        self._progress = 0
        self._error = None
        self._transition(SessionState.submitting)

        try:
            created = await self._service.submit(request)
        except Exception as exc:
            if token != self._submission_token:
                LOGGER.debug("Error de un envio abandonado ignorado: %s", exc)
                return self.snapshot()
            LOGGER.warning("No se pudo crear el trabajo: %s", exc)
            self._fail(SubmissionError(SUBMISSION_FAILED_MESSAGE))
            return self.snapshot()

        if token != self._submission_token:
            LOGGER.info("Trabajo %s abandonado: la sesion cambio durante el envio", created.id)
            return self.snapshot()

        parameters = request.settings.model_dump(include={"tile_size", "tile_density", "overlay_ratio"})
        self._job = MosaicJob(
            id=created.id,
            status=created.status,
            created_at=created.created_at,
            style=request.settings.style.value,
            **parameters,
        )
        LOGGER.info("Generacion %s enviada para el proyecto %s", created.id, self.project_id)
        self._transition(SessionState.polling)
        self._poller.start(created.id)
        return self.snapshot()

    def reset(self) -> None:
        """Vuelve a ``idle`` desde cualquier estado, deteniendo el sondeo."""
        self._poller.stop()
        self._submission_token += 1
        self._job = None
        self._progress = 0
        self._error = None
        self._transition(SessionState.idle)

    def select(self, job: MosaicJob) -> SessionSnapshot:
        """Muestra un trabajo terminal del historial tal cual, sin reenviar ni sondear."""
        self._ensure_open()
        if not job.is_terminal:
            raise InvalidHistorySelection(f"El trabajo {job.id} todavia no ha terminado")
        self._poller.stop()
        self._submission_token += 1
        self._job = job
        self._progress = job.progress
        if job.status is JobStatus.failed:
            self._error = GenerationFailure(job.error or GENERATION_FAILED_MESSAGE)
            self._transition(SessionState.failed)
        else:
            self._error = None
            self._transition(SessionState.completed)
        return self.snapshot()

    def select_history(self, job_id: str) -> SessionSnapshot:
        job = self._history.get(job_id) if self._history is not None else None
        if job is None:
            raise InvalidHistorySelection(f"El trabajo {job_id} no esta en el historial")
        return self.select(job)

    async def close(self) -> None:
        """Libera la sesión: detiene el sondeo y las recargas pendientes."""
        if self._closed:
            return
        self._closed = True
        self._poller.stop()
        self._submission_token += 1
        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._listeners.clear()
        LOGGER.debug("Sesion del proyecto %s cerrada", self.project_id)

    async def __aenter__(self) -> "GenerationSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Ayudantes internos
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("La sesion de generacion ya fue cerrada")

    @staticmethod
    def _validate(request: GenerationRequest) -> None:
        missing = []
        if not request.main_image_id:
            missing.append("una imagen principal")
        if not request.tile_image_ids or not all(request.tile_image_ids):
            missing.append("al menos una tesela")
        if request.settings is None:
            missing.append("los ajustes del mosaico")
        if missing:
            raise SubmissionValidationError("Faltan datos para generar el mosaico: " + ", ".join(missing))

    def _handle_update(self, job: MosaicJob) -> None:
        current = self._job
        if self._state is not SessionState.polling or current is None or job.id != current.id:
            LOGGER.debug("Actualizacion de %s fuera de la sesion activa descartada", job.id)
            return
        if job.status.rank < current.status.rank:
            LOGGER.debug("Retroceso de estado de %s ignorado (%s)", job.id, job.status.value)
            return

        self._job = job
        self._progress = max(self._progress, job.progress)
        if job.status is JobStatus.completed:
            LOGGER.info("Mosaico %s completado", job.id)
            self._transition(SessionState.completed)
            self._schedule_history_refresh()
        elif job.status is JobStatus.failed:
            LOGGER.warning("Mosaico %s fallo: %s", job.id, job.error)
            self._fail(GenerationFailure(job.error or GENERATION_FAILED_MESSAGE))
        else:
            self._notify()

    def _handle_poll_error(self, exc: Exception) -> None:
        if self._state is not SessionState.polling:
            return
        self._fail(PollingTransportError(STATUS_CHECK_FAILED_MESSAGE))

    def _fail(self, error: StudioError) -> None:
        self._poller.stop()
        self._error = error
        self._transition(SessionState.failed)

    def _transition(self, state: SessionState) -> None:
        if state is not self._state:
            LOGGER.debug("Sesion %s: %s -> %s", self.project_id, self._state.value, state.value)
        self._state = state
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Un observador de la sesion fallo")

    def _schedule_history_refresh(self) -> None:
        if self._history is None:
            return
        task = asyncio.get_running_loop().create_task(self._history.refresh())
        self._background.add(task)
        task.add_done_callback(self._finish_background)

    def _finish_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("La recarga del historial fallo: %s", exc)


__all__ = [
    "GENERATION_FAILED_MESSAGE",
    "GenerationSession",
    "JobService",
    "STATUS_CHECK_FAILED_MESSAGE",
    "SUBMISSION_FAILED_MESSAGE",
]
