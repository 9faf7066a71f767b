"""Núcleo de seguimiento de generaciones: sondeo, sesión, resultados e historial."""

from .history import JobHistoryCache
from .poller import JobStatusPoller
from .registry import ProjectWorkspace, SessionRegistry
from .results import available_qualities, select_result
from .selections import MosaicSelections
from .session import GenerationSession

__all__ = [
    "GenerationSession",
    "JobHistoryCache",
    "JobStatusPoller",
    "MosaicSelections",
    "ProjectWorkspace",
    "SessionRegistry",
    "available_qualities",
    "select_result",
]
