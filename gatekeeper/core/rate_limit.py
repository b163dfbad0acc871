"""Per-client admission control for the HTTP layer.

This module wires a quota store into the request pipeline.

Design goals:
- Minimal coupling: the middleware only sees ``AbstractQuotaStore`` and the
  ``Admitted``/``Rejected`` outcomes.
- Explicit ownership: stores are built by the app factory and injected, so
  several independently configured limiters can coexist (e.g., per route).
- Availability first: an unexpected store fault admits the request by
  default (fail-open); fail-closed is available through configuration.

Rate limiting strategy:
- Fixed window per client key, keyed by remote IP address.
- ``X-RateLimit-Reset`` is sent as integer UNIX epoch seconds.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from gatekeeper.adapters.quota.base import AbstractQuotaStore, Admitted, Outcome, Rejected
from gatekeeper.core.errors import RateLimitExceededError
from gatekeeper.core.logging import hash_client_key

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_KEY = "unknown"
DEFAULT_MESSAGE = "Too many requests. Please try again later."
UNAVAILABLE_MESSAGE = "Rate limiting is temporarily unavailable. Please try again later."

CallNext = Callable[[Request], Awaitable[Response]]


def resolve_client_key(request: Request, *, trust_forwarded: bool = False) -> str:
    """Derive the quota key for a request.

    Args:
        request: Incoming request.
        trust_forwarded: Use the first ``X-Forwarded-For`` hop. Only safe when
            the service sits behind a proxy that overwrites the header.

    Returns:
        The client address, or ``"unknown"`` when none is available.
    """

    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_KEY


def build_rate_limit_headers(outcome: Outcome, now: float) -> dict[str, str]:
    """Build the X-RateLimit-* headers describing the client's quota."""

    remaining = outcome.remaining if isinstance(outcome, Admitted) else outcome.remaining_points
    return {
        "X-RateLimit-Limit": str(outcome.limit),
        "X-RateLimit-Remaining": str(max(0, remaining)),
        "X-RateLimit-Reset": str(outcome.reset_at(now)),
    }


def build_rejection_response(outcome: Rejected, now: float, message: str = DEFAULT_MESSAGE) -> JSONResponse:
    """Build the 429 response sent to a throttled client.

    Args:
        outcome: Rejected outcome returned by the quota store.
        now: UNIX time in seconds the decision was taken at.
        message: User-facing explanation.

    Returns:
        JSONResponse with status 429, ``Retry-After`` and X-RateLimit-* headers.
    """

    headers = {"Retry-After": str(outcome.retry_after_seconds)}
    headers.update(build_rate_limit_headers(outcome, now))
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": {"code": "RATE_LIMIT_EXCEEDED", "message": message}},
        headers=headers,
    )


def _build_unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": {"code": "RATE_LIMIT_UNAVAILABLE", "message": UNAVAILABLE_MESSAGE}},
    )


def _log_rejection(key: str, outcome: Rejected) -> None:
    # Throttling is expected control flow, never an error-level event.
    logger.info(
        "rate_limit.rejected",
        extra={
            "key_hash": hash_client_key(key),
            "limit": outcome.limit,
            "remaining": outcome.remaining_points,
            "retry_after_s": outcome.retry_after_seconds,
        },
    )


class RateLimitMiddleware:
    """HTTP middleware charging one point per request against the client's quota.

    Usage:
        app.middleware("http")(RateLimitMiddleware(store, path_prefix="/api"))
    """

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        path_prefix: str = "/api",
        exempt_paths: Iterable[str] = (),
        fail_open: bool = True,
        trust_forwarded: bool = False,
        message: str = DEFAULT_MESSAGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self._prefix = path_prefix.rstrip("/")
        self._exempt = frozenset(exempt_paths)
        self._fail_open = fail_open
        self._trust_forwarded = trust_forwarded
        self._message = message
        self._clock = clock

    def applies_to(self, path: str) -> bool:
        """Whether requests to ``path`` are charged against the quota."""

        if path in self._exempt:
            return False
        if not self._prefix:
            return True
        return path == self._prefix or path.startswith(self._prefix + "/")

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if not self.applies_to(request.url.path):
            return await call_next(request)

        key = resolve_client_key(request, trust_forwarded=self._trust_forwarded)
        now = self._clock()

        try:
            outcome = self.store.consume(key, 1, now)
        except Exception:
            logger.exception(
                "rate_limit.store_failed",
                extra={"key_hash": hash_client_key(key), "fail_open": self._fail_open},
            )
            if self._fail_open:
                return await call_next(request)
            return _build_unavailable_response()

        if isinstance(outcome, Rejected):
            _log_rejection(key, outcome)
            return build_rejection_response(outcome, now, self._message)

        logger.debug(
            "rate_limit.admitted",
            extra={
                "key_hash": hash_client_key(key),
                "limit": outcome.limit,
                "remaining": outcome.remaining,
            },
        )
        response = await call_next(request)
        response.headers.update(build_rate_limit_headers(outcome, now))
        return response


def require_quota(
    store: AbstractQuotaStore,
    *,
    cost: int = 1,
    trust_forwarded: bool = False,
    fail_open: bool = True,
    message: str = DEFAULT_MESSAGE,
    clock: Callable[[], float] = time.time,
) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing a route-specific quota.

    Each route can own a store with its own limit and charge more than one
    point per call. Rejections raise ``RateLimitExceededError``, which the
    exception handlers turn into the same 429 response as the middleware.

    Args:
        store: Quota store dedicated to the route(s) using this dependency.
        cost: Points charged per call.
        trust_forwarded: See ``resolve_client_key``.
        fail_open: Admit the call when the store fails unexpectedly.
        message: User-facing 429 message.
        clock: Time source returning UNIX time in seconds.

    Raises:
        ValueError: If cost is not a positive integer.
    """

    if cost < 1:
        raise ValueError("cost must be >= 1")

    async def enforce_quota(request: Request, response: Response) -> None:
        key = resolve_client_key(request, trust_forwarded=trust_forwarded)
        now = clock()

        try:
            outcome = store.consume(key, cost, now)
        except Exception:
            logger.exception(
                "rate_limit.store_failed",
                extra={"key_hash": hash_client_key(key), "fail_open": fail_open},
            )
            if fail_open:
                return
            raise

        if isinstance(outcome, Rejected):
            _log_rejection(key, outcome)
            raise RateLimitExceededError(outcome, now, message)

        response.headers.update(build_rate_limit_headers(outcome, now))

    return enforce_quota
