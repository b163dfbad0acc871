from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from gatekeeper.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns a simple status response to verify the API is operational.
    It lives under the public prefix, so it is rate limited like any other
    public route.
    """

    settings = request.app.state.settings
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app.version,
        environment=settings.app_env,
    )
