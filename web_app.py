"""
Punto de entrada ASGI del estudio.

uvicorn espera un objeto ``app`` a nivel de módulo; se construye aquí con la
fábrica de ``studio.main``.
"""

from studio import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8088, reload=True)
