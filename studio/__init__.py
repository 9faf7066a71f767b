"""
Paquete del cliente Mosaic Studio.

Expone la fábrica ``create_app`` (ver ``studio.main``) que usa ``web_app.py``
para servir el estudio con uvicorn.
"""

from .main import create_app

__all__ = ["create_app"]
