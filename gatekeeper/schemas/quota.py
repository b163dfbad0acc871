"""Pydantic schemas for quota inspection responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class QuotaStatusResponse(BaseModel):
    """Caller's quota in the current window, reported without consuming points."""

    enabled: bool = Field(..., description="Whether the public API is rate limited.")
    limit: int = Field(..., description="Maximum points per window.")
    remaining: int = Field(..., description="Points left in the current window.")
    window_seconds: int = Field(..., description="Fixed window length in seconds.")
    reset: int = Field(
        ...,
        description="UNIX epoch seconds when the current window resets (same format as X-RateLimit-Reset).",
    )
