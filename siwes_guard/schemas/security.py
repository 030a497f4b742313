"""Pydantic schemas for the security introspection endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CsrfTokenResponse(BaseModel):
    """The caller's current anti-forgery token."""

    token: str | None = Field(
        default=None,
        description="Unexpired token from the csrf-token cookie, or null when none is held yet.",
    )


class RateLimitStatusResponse(BaseModel):
    """Budget left for the caller on one path."""

    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(..., description="Path the budget applies to.")
    limit: int = Field(..., description="Requests allowed per window.")
    remaining: int = Field(..., description="Requests left in the current window.")
    reset_at: int = Field(
        ...,
        alias="resetAt",
        description="Window reset time in epoch milliseconds.",
    )
