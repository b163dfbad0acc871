from __future__ import annotations

from fastapi import APIRouter, Request

from gatekeeper.adapters.quota.base import AbstractQuotaStore
from gatekeeper.core.rate_limit import resolve_client_key
from gatekeeper.schemas.quota import QuotaStatusResponse

router = APIRouter(tags=["Rate limit"])


@router.get("/rate-limit", response_model=QuotaStatusResponse)
def quota_status(request: Request) -> QuotaStatusResponse:
    """Report the caller's remaining quota.

    Reading the quota never consumes points; the path is exempt from the
    rate limit middleware by default.
    """

    settings = request.app.state.settings
    store: AbstractQuotaStore = request.app.state.quota_store
    clock = request.app.state.clock

    now = clock()
    key = resolve_client_key(request, trust_forwarded=settings.rate_limit.trust_forwarded)
    snapshot = store.peek(key, now)

    return QuotaStatusResponse(
        enabled=settings.rate_limit.enabled,
        limit=snapshot.limit,
        remaining=snapshot.remaining,
        window_seconds=store.window_seconds,
        reset=snapshot.reset_at(now),
    )
