"""Quota store interfaces and admission outcomes.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the storage strategy can change without touching the middleware.

Throttling is an expected result, not a fault: ``consume`` returns an
``Admitted`` or ``Rejected`` outcome by value instead of raising.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union


@dataclass
class QuotaRecord:
    """Points consumed by one client key in its current fixed window.

    Attributes:
        key: Client identifier (e.g., remote IP address).
        consumed: Points used in the current window.
        window_expires_at: UNIX time in seconds when the window ends.
    """

    key: str
    consumed: int
    window_expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.window_expires_at


@dataclass(frozen=True)
class Admitted:
    """The request fits in the client's remaining quota.

    Attributes:
        limit: Max points per window.
        remaining: Points left in the window after this request.
        ms_before_next: Milliseconds until the window resets.
    """

    limit: int
    remaining: int
    ms_before_next: int

    admitted = True

    def reset_at(self, now: float) -> int:
        """UNIX epoch seconds at which the current window resets."""
        return int(math.ceil(now + self.ms_before_next / 1000))


@dataclass(frozen=True)
class Rejected:
    """The request would exceed the client's quota; nothing was consumed.

    Attributes:
        limit: Max points per window.
        remaining_points: Points still available (may be less than requested).
        ms_before_next: Milliseconds until the window resets.
    """

    limit: int
    remaining_points: int
    ms_before_next: int

    admitted = False

    def reset_at(self, now: float) -> int:
        """UNIX epoch seconds at which the current window resets."""
        return int(math.ceil(now + self.ms_before_next / 1000))

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds to wait before retrying, never less than 1."""
        return max(1, int(math.ceil(self.ms_before_next / 1000)))


Outcome = Union[Admitted, Rejected]


@dataclass(frozen=True)
class QuotaSnapshot:
    """Read-only view of a key's quota, produced without consuming points."""

    key: str
    limit: int
    consumed: int
    ms_before_next: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.consumed)

    def reset_at(self, now: float) -> int:
        return int(math.ceil(now + self.ms_before_next / 1000))


class AbstractQuotaStore(ABC):
    """Interface for per-key quota stores."""

    limit: int
    window_seconds: int

    @abstractmethod
    def consume(self, key: str, points: int = 1, now: float | None = None) -> Outcome:
        """Charge ``points`` against ``key`` if they fit in its window.

        Args:
            key: Non-empty client identifier.
            points: Positive number of points to charge (default 1).
            now: UNIX time in seconds; defaults to the store clock.

        Returns:
            ``Admitted`` when the points were charged, ``Rejected`` otherwise.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str, now: float | None = None) -> QuotaSnapshot:
        """Report the quota state for ``key`` without changing it."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: float | None = None) -> int:
        """Drop records whose window has expired. Returns how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | float]:
        """Return lightweight store metrics without exposing keys."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
