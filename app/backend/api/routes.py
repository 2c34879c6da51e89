"""FastAPI route definitions for the chat HTTP API."""
from __future__ import annotations

from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, Header, Query

from app.backend import exceptions
from app.backend.config import Settings, get_settings
from app.backend.models.status import HealthLimits, HealthResponse
from app.backend.models.users import (
    AuthResponse,
    ColorUpdateRequest,
    LoginRequest,
    RegisterRequest,
    TokenClaims,
    TokenUser,
    UserPublic,
    VerifyResponse,
)
from app.backend.services.auth import AuthFailure, AuthService, extract_bearer_token
from app.backend.services.broadcast import BroadcastCoordinator
from app.backend.services.record_store import RecordStore, StoreWriteError
from app.backend.services.session_registry import SessionRegistry

router = APIRouter()


@lru_cache()
def get_record_store() -> RecordStore:
    return RecordStore()


@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService(get_record_store())


@lru_cache()
def get_session_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache()
def get_coordinator() -> BroadcastCoordinator:
    return BroadcastCoordinator(registry=get_session_registry(), store=get_record_store())


def get_app_settings() -> Settings:
    return get_settings()


def get_token_claims(
    authorization: str | None = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    """Resolve the caller from an ``Authorization`` header (bearer or raw token)."""

    token = extract_bearer_token(authorization)
    if token is None:
        raise exceptions.invalid_token()
    try:
        return auth.verify_token(token)
    except AuthFailure:
        raise exceptions.invalid_token() from None


@router.get("/health", response_model=HealthResponse)
async def health(
    raw: bool = Query(False, description="Return configured limits when debug mode is enabled."),
    settings: Settings = Depends(get_app_settings),
    registry: SessionRegistry = Depends(get_session_registry),
) -> HealthResponse:
    limits: HealthLimits | None = None
    if raw and settings.debug_mode:
        limits = HealthLimits(
            history_limit=settings.history_limit,
            access_token_ttl_minutes=settings.access_token_ttl_minutes,
            seen_tracking_limit=settings.seen_tracking_limit,
        )
    return HealthResponse(
        status="ok",
        environment=settings.environment,
        debug_mode=settings.debug_mode,
        connected_users=len(registry),
        limits=limits,
    )


@router.post("/auth/register", response_model=AuthResponse)
async def register(request: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    try:
        return await auth.register(request.email, request.username, request.password)
    except StoreWriteError:
        raise exceptions.store_unavailable() from None


@router.post("/auth/login", response_model=AuthResponse)
async def login(request: LoginRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    user = await auth.authenticate(request.username, request.password)
    if user is None:
        raise exceptions.invalid_credentials()
    return auth.login(user)


@router.get("/auth/verify", response_model=VerifyResponse)
async def verify(claims: TokenClaims = Depends(get_token_claims)) -> VerifyResponse:
    return VerifyResponse(valid=True, user=TokenUser(id=claims.sub, email=claims.email, username=claims.username))


@router.get("/users", response_model=List[UserPublic], response_model_by_alias=True)
async def list_users(
    _: TokenClaims = Depends(get_token_claims),
    store: RecordStore = Depends(get_record_store),
) -> List[UserPublic]:
    return [user.public() for user in await store.list_users()]


@router.get("/users/{user_id}", response_model=UserPublic, response_model_by_alias=True)
async def get_user(
    user_id: str,
    _: TokenClaims = Depends(get_token_claims),
    store: RecordStore = Depends(get_record_store),
) -> UserPublic:
    user = await store.get_user_by_id(user_id)
    if user is None:
        raise exceptions.user_not_found()
    return user.public()


@router.put("/users/{user_id}/color", response_model=UserPublic, response_model_by_alias=True)
async def update_user_color(
    user_id: str,
    request: ColorUpdateRequest,
    claims: TokenClaims = Depends(get_token_claims),
    store: RecordStore = Depends(get_record_store),
    coordinator: BroadcastCoordinator = Depends(get_coordinator),
) -> UserPublic:
    if claims.sub != user_id:
        raise exceptions.forbidden()
    try:
        user = await store.set_user_color(user_id, request.color)
    except StoreWriteError:
        raise exceptions.store_unavailable() from None
    if user is None:
        raise exceptions.user_not_found()
    await coordinator.apply_color_change(user.id, user.color)
    return user.public()


__all__ = [
    "get_auth_service",
    "get_coordinator",
    "get_record_store",
    "get_session_registry",
    "get_token_claims",
    "router",
]
