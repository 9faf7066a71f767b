"""Rutas de cuenta: registro, inicio, renovación y cierre de sesión."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from studio.errors import AuthenticationExpired, ServiceError
from studio.generation import SessionRegistry
from studio.logging_config import get_logger
from studio.models import ApiError, LoginRequest, LoginResponse, RegisterRequest
from studio.services import StudioServices

LOGGER = get_logger("studio.api.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _services(request: Request) -> StudioServices:
    return request.app.state.services


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ApiError}, 502: {"model": ApiError}},
)
async def login(payload: LoginRequest, services: StudioServices = Depends(_services)) -> LoginResponse:
    try:
        user = await services.auth.login(payload.email, payload.password)
    except AuthenticationExpired:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales invalidas")
    except ServiceError as exc:
        LOGGER.warning("Login fallido para %s: %s", payload.email, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.detail or str(exc))
    return LoginResponse(user=user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    services: StudioServices = Depends(_services),
    registry: SessionRegistry = Depends(_registry),
) -> Response:
    """Descarta el token y cierra las sesiones abiertas; sin token no hay sondeo posible."""
    services.auth.logout()
    await registry.close_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ApiError}, 409: {"model": ApiError}, 502: {"model": ApiError}},
)
async def register(payload: RegisterRequest, services: StudioServices = Depends(_services)) -> Response:
    """Crea la cuenta; el registro no inicia sesión."""
    try:
        await services.auth.register(payload.email, payload.password, payload.name)
    except ServiceError as exc:
        LOGGER.warning("Registro fallido para %s: %s", payload.email, exc)
        code = exc.status_code if exc.status_code in (400, 409) else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=exc.detail or str(exc))
    return Response(status_code=status.HTTP_201_CREATED)


@router.post("/refresh", response_model=LoginResponse, responses={401: {"model": ApiError}})
async def refresh(services: StudioServices = Depends(_services)) -> LoginResponse:
    try:
        await services.auth.refresh()
    except AuthenticationExpired:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inicia sesion de nuevo")
    except ServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.detail or str(exc))
    user = services.auth_state.user
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inicia sesion de nuevo")
    return LoginResponse(user=user)
