"""Application configuration settings."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = Field("dev", description="Runtime environment")
    debug_mode: bool = Field(True, description="Expose error hints in HTTP responses")
    data_dir: Path = Field(default=Path("data"), description="Directory holding the CSV tables")

    jwt_secret: str = Field("change-me-realtime-chat-signing-key-0001", min_length=16, description="HMAC secret used to sign tokens")
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = Field("HS256", description="Token signing algorithm")
    access_token_ttl_minutes: int = Field(24 * 60, ge=1, description="Lifetime of issued access tokens")
    bcrypt_rounds: int = Field(10, ge=4, le=16, description="bcrypt cost factor for password hashes")

    history_limit: int = Field(50, ge=1, description="Messages delivered to a client on connect")
    default_color: str = Field("#1E90FF", min_length=1, description="Color assigned to new users")
    seen_tracking_limit: int = Field(1000, ge=1, description="Messages tracked for seen-by annotations")

    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the HTTP API",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def _ensure_path(cls, value: Path | str) -> Path:
        return Path(value)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
