"""Pydantic schemas for service health responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness payload returned by the health endpoint."""

    status: str = Field("ok", description="Always 'ok' while the process serves requests.")
    timestamp: str = Field(..., description="ISO-8601 UTC time the response was produced.")
    version: str = Field(..., description="Service version.")
    environment: str = Field(..., description="Deployment environment (APP_ENV).")
