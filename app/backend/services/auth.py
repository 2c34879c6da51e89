"""Credential hashing and access-token issuance."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from pydantic import ValidationError

from app.backend import exceptions
from app.backend.config import get_settings
from app.backend.models.users import AuthResponse, TokenClaims, UserRecord, UserSummary
from app.backend.services.record_store import RecordStore
from app.common.logging import json_log

logger = logging.getLogger(__name__)

_BEARER_SCHEME = "bearer"
_BCRYPT_MAX_BYTES = 72


class AuthFailure(Exception):
    """Raised when a token cannot be verified."""


def extract_bearer_token(raw: str | None) -> str | None:
    """Return the token from ``"Bearer <token>"`` or a raw token string."""

    if raw is None:
        return None
    value = raw.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == _BEARER_SCHEME:
        value = rest.strip()
    if not value or any(char.isspace() for char in value):
        return None
    return value


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class AuthService:
    """Register users, check passwords and sign/verify JWT access tokens."""

    def __init__(self, store: RecordStore) -> None:
        self._settings = get_settings()
        self._store = store

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        return bcrypt.hashpw(_password_bytes(password), salt).decode("ascii")

    @staticmethod
    def check_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(_password_bytes(password), password_hash.encode("ascii"))
        except ValueError:
            return False

    async def register(self, email: str, username: str, password: str) -> AuthResponse:
        # The duplicate checks and the insert must not straddle a suspension point.
        password_hash = await asyncio.to_thread(self.hash_password, password)
        if await self._store.find_user_by_email(email):
            raise exceptions.email_in_use()
        if await self._store.find_user_by_username(username):
            raise exceptions.username_in_use()
        user = await self._store.create_user(email, username, password_hash)
        json_log(logger, logging.INFO, "auth.registered", user_id=user.id, username=user.username)
        return self.login(user)

    async def authenticate(self, username: str, password: str) -> UserRecord | None:
        """Return the user when the password matches, otherwise ``None``."""

        user = await self._store.find_user_by_username(username)
        if user is None or not await asyncio.to_thread(self.check_password, password, user.password_hash):
            json_log(logger, logging.WARNING, "auth.login_rejected", username=username)
            return None
        return user

    def login(self, user: UserRecord) -> AuthResponse:
        return AuthResponse(
            user=UserSummary(id=user.id, email=user.email, username=user.username, color=user.color),
            access_token=self.issue_token(user),
        )

    def issue_token(self, user: UserRecord) -> str:
        issued_at = datetime.now(tz=timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "username": user.username,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=self._settings.access_token_ttl_minutes),
        }
        return jwt.encode(payload, self._settings.jwt_secret, algorithm=self._settings.jwt_algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
            return TokenClaims.model_validate(payload)
        except (jwt.PyJWTError, ValidationError) as exc:
            raise AuthFailure(str(exc)) from exc


__all__ = ["AuthFailure", "AuthService", "extract_bearer_token"]
