"""
Jerarquía de errores del cliente de Mosaic Studio.

Los errores de validación se lanzan a quien llama; el resto se capturan donde
se emitió la llamada asíncrona y se convierten en estado de la sesión.
"""

from __future__ import annotations

from typing import Optional


class StudioError(Exception):
    """Base común para los errores del estudio."""


class ServiceError(StudioError):
    """Fallo de transporte o de protocolo al hablar con un servicio remoto."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthenticationExpired(ServiceError):
    """El servicio respondió 401; el token guardado ya no es válido."""


class SubmissionValidationError(StudioError):
    """Faltan datos obligatorios para solicitar un mosaico."""


class SubmissionError(StudioError):
    """La creación del trabajo falló antes de obtener un identificador."""


class GenerationFailure(StudioError):
    """El servicio reportó el trabajo como fallido."""


class PollingTransportError(StudioError):
    """La consulta de estado falló; el estado real del trabajo es desconocido."""


class ResultUnavailableError(StudioError):
    """El trabajo no tiene el artefacto solicitado."""


class InvalidImageError(StudioError):
    """El archivo no es una imagen aceptada para subir."""


class InvalidHistorySelection(StudioError):
    """La entrada del historial no existe o todavía no es terminal."""


__all__ = [
    "AuthenticationExpired",
    "GenerationFailure",
    "InvalidHistorySelection",
    "InvalidImageError",
    "PollingTransportError",
    "ResultUnavailableError",
    "ServiceError",
    "StudioError",
    "SubmissionError",
    "SubmissionValidationError",
]
