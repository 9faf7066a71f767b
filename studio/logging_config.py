"""Configuración de logging: consola más un archivo rotativo en ``logs/studio.log``."""

import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Optional

from paths import LOG_DIR

LOG_FILE = LOG_DIR / "studio.log"


def _build_config(log_file: Path, console_level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": console_level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "default",
                "filename": str(log_file),
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 3,
                "encoding": "utf-8",
                "level": "DEBUG",
            },
        },
        # Cada petición de sondeo generaría una línea INFO.
        "loggers": {"httpx": {"level": "WARNING"}, "httpcore": {"level": "WARNING"}},
        "root": {"level": "DEBUG", "handlers": ["console", "file"]},
    }


_configured = False


def configure_logging(log_file: Optional[Path] = None, console_level: str = "INFO") -> None:
    """Aplica la configuración; llamarla otra vez la reemplaza."""
    global _configured
    log_file = Path(log_file) if log_file else LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    dictConfig(_build_config(log_file, console_level.upper()))
    _configured = True


def get_logger(name: str = "studio") -> logging.Logger:
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
