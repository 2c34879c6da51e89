"""Models describing service health."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class HealthLimits(BaseModel):
    """Operational limits that are useful when debugging."""

    history_limit: int = Field(..., ge=1)
    access_token_ttl_minutes: int = Field(..., ge=1)
    seen_tracking_limit: int = Field(..., ge=1)


class HealthResponse(BaseModel):
    """Structured response for the ``/health`` endpoint."""

    status: Literal["ok"]
    environment: str
    debug_mode: bool
    connected_users: int = Field(..., ge=0)
    limits: HealthLimits | None = None


__all__ = ["HealthLimits", "HealthResponse"]
