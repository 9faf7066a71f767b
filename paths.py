"""
Project-wide filesystem helpers for the Mosaic Studio client.

Provides absolute paths for the folders the studio writes to (logs and
downloaded mosaics) so that code does not rely on the current working
directory, which differs between the CLI, the uvicorn reloader and tests.
Importing this module guarantees that the writable folders exist.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


PROJECT_ROOT = Path(__file__).resolve().parent
LOG_DIR = PROJECT_ROOT / "logs"
DOWNLOADS_DIR = PROJECT_ROOT / "downloads"


def ensure_directories(directories: Iterable[Path]) -> None:
    """Create the given directories (and parents) if they do not exist."""
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


ensure_directories((LOG_DIR, DOWNLOADS_DIR))
