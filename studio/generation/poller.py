"""
Sondeo periódico del estado de un trabajo de mosaico.

Cada ``start()`` abre una época nueva; toda respuesta que llegue con una época
anterior se descarta. Así, una consulta que ya estaba en vuelo cuando se
llamó a ``stop()`` nunca altera el estado de la sesión.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from studio.errors import ServiceError
from studio.logging_config import get_logger
from studio.models import MosaicJob

LOGGER = get_logger("studio.poller")

StatusFetcher = Callable[[str], Awaitable[MosaicJob]]
UpdateHandler = Callable[[MosaicJob], None]
ErrorHandler = Callable[[Exception], None]


class JobStatusPoller:
    """
    Bucle de consultas secuenciales para un único trabajo.

    La primera consulta sale en el siguiente turno del bucle de eventos, sin
    esperar el intervalo; las siguientes, cada ``interval`` segundos. Nunca hay
    más de una consulta en vuelo por época ni más de un bucle vivo.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
        interval: float = 2.0,
    ) -> None:
        self._fetch_status = fetch_status
        self._on_update = on_update
        self._on_error = on_error
        self._interval = interval
        self._epoch = 0
        self._task: Optional[asyncio.Task] = None
        self._task_epoch: Optional[int] = None
        self._job_id: Optional[str] = None
        self._in_flight: Set[int] = set()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self, job_id: str) -> int:
        """Detiene cualquier bucle previo y empieza a sondear ``job_id``."""
        self.stop()
        self._epoch += 1
        epoch = self._epoch
        self._job_id = job_id
        self._task_epoch = epoch
        self._task = asyncio.get_running_loop().create_task(self._run(job_id, epoch), name=f"poll-{job_id}")
        LOGGER.debug("Sondeo de %s iniciado (epoca %d)", job_id, epoch)
        return epoch

    def stop(self) -> None:
        """Cancela la espera pendiente, si la hay. Idempotente."""
        task = self._task
        if task is None:
            return
        task_epoch = self._task_epoch
        self._task = None
        self._task_epoch = None
        self._epoch += 1
        LOGGER.debug("Sondeo de %s detenido", self._job_id)
        self._job_id = None
        # Una consulta en vuelo termina por su cuenta y su respuesta se descarta.
        if not task.done() and task is not asyncio.current_task() and task_epoch not in self._in_flight:
            task.cancel()

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch and self._task is not None

    async def _run(self, job_id: str, epoch: int) -> None:
        while True:
            self._in_flight.add(epoch)
            try:
                job = await self._fetch_status(job_id)
            except Exception as exc:
                if not self._is_current(epoch):
                    LOGGER.debug("Error de una consulta obsoleta de %s ignorado: %s", job_id, exc)
                    return
                if isinstance(exc, ServiceError):
                    LOGGER.warning("Fallo la consulta de estado de %s: %s", job_id, exc)
                else:
                    LOGGER.exception("Error inesperado consultando %s", job_id)
                self.stop()
                self._on_error(exc)
                return
            finally:
                self._in_flight.discard(epoch)

            if not self._is_current(epoch):
                LOGGER.debug("Respuesta obsoleta de %s descartada (epoca %d)", job_id, epoch)
                return

            if job.is_terminal:
                self.stop()
                LOGGER.info("Trabajo %s termino con estado %s", job_id, job.status.value)
                self._on_update(job)
                return

            self._on_update(job)
            await asyncio.sleep(self._interval)
            if not self._is_current(epoch):
                return


__all__ = ["JobStatusPoller", "StatusFetcher"]
