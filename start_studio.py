#!/usr/bin/env python3
"""
Lanzador de Mosaic Studio.

Dos subcomandos:

* ``serve``: inicia la API local del estudio con uvicorn.
* ``generate``: sube las imágenes de un proyecto, genera el mosaico mostrando
  el progreso y descarga el resultado en ``downloads/``.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Sequence

from tqdm import tqdm


def start_server(host: str, port: int, reload: bool) -> None:
    """Inicia el servidor FastAPI."""
    import uvicorn

    print(f"\n[info] Iniciando Mosaic Studio en http://{host}:{port}")
    if reload:
        print("[info] Recarga automática activa (modo desarrollo)")
    print("[info] Presiona Ctrl+C para detener el servidor\n")

    try:
        uvicorn.run("web_app:app", host=host, port=port, reload=reload)
    except KeyboardInterrupt:
        print("\n[info] Servidor detenido.")


async def run_generation(args: argparse.Namespace) -> int:
    from pydantic import ValidationError

    from studio.config import settings
    from studio.errors import InvalidImageError, ServiceError
    from studio.models import MosaicSettings, ResultQuality
    from studio.services import StudioServices
    from studio.workflow import generate_mosaic

    try:
        mosaic_settings = MosaicSettings(
            tile_size=args.tile_size,
            tile_density=args.tile_density,
            overlay_ratio=args.overlay_ratio,
            style=args.style,
            color_correction=args.color_correction,
        )
    except ValidationError as exc:
        print(f"[error] Ajustes invalidos: {exc}")
        return 1
    services = StudioServices.from_settings(settings)
    progress = tqdm(total=100, desc="Generando mosaico", unit="%")

    def on_progress(snapshot) -> None:
        progress.n = snapshot.progress
        progress.set_postfix_str(snapshot.state.value)
        progress.refresh()

    try:
        outcome = await generate_mosaic(
            services,
            project_id=args.project,
            main_path=args.main,
            tile_paths=args.tiles,
            mosaic_settings=mosaic_settings,
            quality=ResultQuality(args.quality),
            config=settings,
            on_progress=on_progress,
            email=args.email,
            password=args.password,
            collection_id=args.collection,
        )
    except InvalidImageError as exc:
        progress.close()
        print(f"[error] Imagen no valida: {exc}")
        return 1
    except ServiceError as exc:
        progress.close()
        print(f"[error] El servicio rechazo la operacion: {exc.detail or exc}")
        return 1
    finally:
        await services.aclose()

    progress.close()
    if not outcome.succeeded:
        print(f"[error] {outcome.snapshot.error}")
        return 1
    if outcome.download_path is None:
        print(f"[warn] El mosaico se genero pero no hay imagen en calidad {args.quality}")
        return 0
    print(f"[ok] Mosaico guardado en {outcome.download_path}")
    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cliente de generación de Mosaic Studio.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Nivel de logging en consola (el archivo siempre registra DEBUG)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Inicia la API local del estudio.")
    serve.add_argument("--host", default="0.0.0.0", help="Interfaz a enlazar (predeterminado: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8088, help="Puerto de escucha (predeterminado: 8088)")
    serve.add_argument(
        "--reload",
        dest="reload",
        action="store_true",
        default=True,
        help="Activa la recarga automática (por defecto encendida)",
    )
    serve.add_argument(
        "--no-reload",
        dest="reload",
        action="store_false",
        help="Desactiva la recarga automática",
    )

    generate = subparsers.add_parser("generate", help="Genera un mosaico y descarga el resultado.")
    generate.add_argument("--project", type=int, required=True, help="Identificador del proyecto")
    generate.add_argument("--main", type=Path, required=True, help="Imagen principal")
    generate.add_argument("--tiles", type=Path, nargs="+", required=True, help="Imágenes para las teselas")
    generate.add_argument("--collection", type=int, help="Colección en la que guardar las teselas")
    generate.add_argument("--tile-size", type=int, default=50, help="Lado de cada tesela en píxeles (10-200)")
    generate.add_argument("--tile-density", type=int, default=80, help="Cobertura de teselas en porcentaje (1-100)")
    generate.add_argument("--overlay-ratio", type=float, default=0.5, help="Mezcla de la imagen principal (0-1)")
    generate.add_argument("--style", choices=["classic", "random", "flowing"], default="classic")
    generate.add_argument(
        "--no-color-correction",
        dest="color_correction",
        action="store_false",
        help="Desactiva la corrección de color de las teselas",
    )
    generate.add_argument("--quality", choices=["standard", "high"], default="standard")
    generate.add_argument("--email", help="Correo para iniciar sesión antes de generar")
    generate.add_argument("--password", help="Contraseña para iniciar sesión")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])

    from studio.config import settings
    from studio.logging_config import configure_logging

    configure_logging(settings.log_dir / "studio.log", args.log_level)

    print("== Mosaic Studio ==")
    print("=" * 50)

    if args.command == "serve":
        start_server(host=args.host, port=args.port, reload=args.reload)
        return 0

    try:
        return asyncio.run(run_generation(args))
    except KeyboardInterrupt:
        print("\n[info] Generacion interrumpida.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
