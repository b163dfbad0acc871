"""Application-level exception types.

This module defines domain errors used across adapters and the HTTP layer,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypedDict

if TYPE_CHECKING:
    from gatekeeper.adapters.quota.base import Rejected


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    setting: str
    context: dict[str, Any]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when the service cannot start with the resolved configuration."""


class RateLimitExceededError(AppError):
    """Raised by route-level quota dependencies when a client is throttled.

    The middleware returns its 429 response directly; this error exists so
    FastAPI dependencies can abort a route and still produce the same wire
    response through the exception handlers.
    """

    def __init__(self, outcome: "Rejected", now: float, message: str) -> None:
        super().__init__(code="RATE_LIMIT_EXCEEDED", message=message)
        self.outcome = outcome
        self.now = now
