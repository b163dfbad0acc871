"""Application factory for the FastAPI app.

Centralizes app construction (settings, quota store, middleware, handlers,
routers, lifespan) so tests can build isolated apps with their own store
and clock instead of sharing process-wide limiter state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from gatekeeper.adapters.quota.base import AbstractQuotaStore
from gatekeeper.adapters.quota.in_memory import ShardedInMemoryQuotaStore
from gatekeeper.adapters.quota.sweeper import QuotaSweeper
from gatekeeper.api.routes import health_router, quota_router
from gatekeeper.core.config import RateLimitSettings, Settings, settings as default_settings
from gatekeeper.core.errors import ConfigurationAppError
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.rate_limit import RateLimitMiddleware

logger = logging.getLogger(__name__)


def build_quota_store(
    rate_limit: RateLimitSettings,
    *,
    clock: Callable[[], float] = time.time,
) -> ShardedInMemoryQuotaStore:
    """Build the quota store described by the rate limit settings.

    Raises:
        ConfigurationAppError: If the settings cannot produce a valid store.
    """

    try:
        return ShardedInMemoryQuotaStore(
            limit=rate_limit.limit,
            window_seconds=rate_limit.window_seconds,
            shards=rate_limit.shards,
            sweep_interval_seconds=rate_limit.sweep_interval_seconds,
            clock=clock,
        )
    except ValueError as exc:
        # Constructor messages start with the offending argument name.
        field = str(exc).split()[0]
        raise ConfigurationAppError(
            code="invalid_rate_limit_config",
            message=str(exc),
            details={
                "setting": f"RATE_LIMIT_{field.upper()}",
                "context": {"value": getattr(rate_limit, field, None)},
            },
        ) from exc


def create_app(
    app_settings: Settings | None = None,
    *,
    store: AbstractQuotaStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the global settings.
        store: Pre-built quota store (tests inject one with a fake clock).
        clock: Time source shared by the middleware and the store.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.

    Raises:
        ConfigurationAppError: If the rate limit configuration is invalid.
    """

    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    rl = cfg.rate_limit
    quota_store = store if store is not None else build_quota_store(rl, clock=clock)
    sweeper = QuotaSweeper(quota_store, rl.sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if rl.enabled:
            sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(
        title=cfg.app.name,
        description=(
            "Public API guarded by a per-client fixed-window rate limiter. "
            "Throttled requests receive 429 with Retry-After and X-RateLimit-* headers."
        ),
        version=cfg.app.version,
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.quota_store = quota_store
    app.state.clock = clock

    # Middleware: the last one registered runs first, so request ids wrap
    # throttled responses too.
    if rl.enabled:
        app.middleware("http")(
            RateLimitMiddleware(
                quota_store,
                path_prefix=rl.path_prefix,
                exempt_paths=rl.exempt_path_set(),
                fail_open=rl.fail_open,
                trust_forwarded=rl.trust_forwarded,
                message=rl.message,
                clock=clock,
            )
        )
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api")
    app.include_router(quota_router, prefix="/api")

    logger.info(
        "app.created",
        extra={
            "rate_limit_enabled": rl.enabled,
            "limit": quota_store.limit,
            "window_s": quota_store.window_seconds,
            "path_prefix": rl.path_prefix,
        },
    )

    return app
