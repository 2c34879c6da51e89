"""Models for user records, identities and the auth endpoints."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Return an aware UTC timestamp truncated to milliseconds."""

    now = datetime.now(tz=timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CamelModel(BaseModel):
    """Base model that serializes to the camelCase keys clients expect."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Identity(CamelModel):
    """The public, broadcastable attributes of a registered user."""

    id: str
    username: str
    color: str


class UserRecord(BaseModel):
    """A row of the users table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    email: str
    username: str
    password_hash: str
    color: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row: Dict[str, str]) -> "UserRecord":
        return cls(
            id=row["id"],
            email=row["email"],
            username=row["username"],
            password_hash=row["passwordHash"],
            color=row["color"],
            created_at=parse_timestamp(row["createdAt"]),
            updated_at=parse_timestamp(row["updatedAt"]),
        )

    def to_row(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "passwordHash": self.password_hash,
            "color": self.color,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    def identity(self) -> Identity:
        return Identity(id=self.id, username=self.username, color=self.color)

    def public(self) -> "UserPublic":
        return UserPublic(
            id=self.id,
            email=self.email,
            username=self.username,
            color=self.color,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class UserPublic(CamelModel):
    """User profile as returned by the HTTP API (never includes the hash)."""

    id: str
    email: str
    username: str
    color: str
    created_at: datetime
    updated_at: datetime


class UserSummary(BaseModel):
    id: str
    email: str
    username: str
    color: str


class RegisterRequest(BaseModel):
    """Request payload for ``POST /auth/register``."""

    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=72)


class LoginRequest(BaseModel):
    """Request payload for ``POST /auth/login``."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    """Returned by login and register."""

    user: UserSummary
    access_token: str


class TokenClaims(BaseModel):
    """Decoded claims of a verified access token."""

    sub: str
    email: str | None = None
    username: str | None = None
    iat: int | None = None
    exp: int | None = None


class TokenUser(BaseModel):
    id: str
    email: str | None = None
    username: str | None = None


class VerifyResponse(BaseModel):
    valid: bool
    user: TokenUser


class ColorUpdateRequest(BaseModel):
    """Request payload for ``PUT /users/{id}/color``."""

    color: str = Field(..., min_length=1, max_length=32)


__all__ = [
    "AuthResponse",
    "CamelModel",
    "ColorUpdateRequest",
    "Identity",
    "LoginRequest",
    "RegisterRequest",
    "TokenClaims",
    "TokenUser",
    "UserPublic",
    "UserRecord",
    "UserSummary",
    "VerifyResponse",
    "format_timestamp",
    "parse_timestamp",
    "utcnow",
]
