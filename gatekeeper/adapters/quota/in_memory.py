"""In-memory fixed-window quota store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: keys are partitioned over shards, each guarded by its own lock.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable

from gatekeeper.adapters.quota.base import (
    AbstractQuotaStore,
    Admitted,
    Outcome,
    QuotaRecord,
    QuotaSnapshot,
    Rejected,
)

logger = logging.getLogger(__name__)


class _Shard:
    """A lock plus the records whose keys hash onto it."""

    __slots__ = ("lock", "records", "last_sweep", "evictions")

    def __init__(self, now: float) -> None:
        self.lock = threading.Lock()
        self.records: dict[str, QuotaRecord] = {}
        self.last_sweep = now
        self.evictions = 0

    def sweep_locked(self, now: float) -> int:
        expired = [key for key, record in self.records.items() if record.is_expired(now)]
        for key in expired:
            del self.records[key]
        self.evictions += len(expired)
        self.last_sweep = now
        return len(expired)


class ShardedInMemoryQuotaStore(AbstractQuotaStore):
    """Quota store using a fixed time window per key.

    Each key's window starts on its first request and lasts ``window_seconds``;
    the record is replaced by a fresh one on the first request at or after its
    expiry.

    Check-and-increment for a key runs under the lock of the shard that key
    hashes to, so concurrent requests for the same client never over-admit,
    while clients in other shards proceed without waiting. Expired records are
    removed under the same lock, either opportunistically while a shard is
    already held by ``consume`` or by an explicit ``sweep`` call.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        shards: int = 16,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the quota store.

        Args:
            limit: Maximum number of points per key per window.
            window_seconds: Length of the fixed window in seconds.
            shards: Number of independently locked partitions.
            sweep_interval_seconds: Minimum seconds between opportunistic
                sweeps of a shard (0 disables them).
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If any argument is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if shards < 1:
            raise ValueError("shards must be >= 1")
        if sweep_interval_seconds < 0:
            raise ValueError("sweep_interval_seconds must be >= 0")

        self.limit = limit
        self.window_seconds = window_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        started = clock()
        self._shards = tuple(_Shard(started) for _ in range(shards))

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ShardedInMemoryQuotaStore(limit={self.limit}, "
            f"window_seconds={self.window_seconds}, shards={len(self._shards)})"
        )

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    @staticmethod
    def _ms_until(expires_at: float, now: float) -> int:
        return max(0, int(math.ceil((expires_at - now) * 1000)))

    def consume(self, key: str, points: int = 1, now: float | None = None) -> Outcome:
        """Charge points against the key's current window.

        Args:
            key: Client identifier (e.g., remote IP address).
            points: Points to charge (default 1).
            now: UNIX time in seconds; defaults to the store clock.

        Returns:
            ``Admitted`` with the remaining points, or ``Rejected`` with the
            points left and the time until the window resets.

        Raises:
            ValueError: If key is empty or points is not a positive integer.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if isinstance(points, bool) or not isinstance(points, int) or points < 1:
            raise ValueError("points must be a positive integer")

        if now is None:
            now = self._clock()

        shard = self._shard_for(key)
        with shard.lock:
            if self._sweep_interval and now - shard.last_sweep >= self._sweep_interval:
                shard.sweep_locked(now)

            record = shard.records.get(key)
            if record is None or record.is_expired(now):
                record = QuotaRecord(key=key, consumed=0, window_expires_at=now + self.window_seconds)
                shard.records[key] = record

            ms_before_next = self._ms_until(record.window_expires_at, now)

            if record.consumed + points <= self.limit:
                record.consumed += points
                return Admitted(
                    limit=self.limit,
                    remaining=self.limit - record.consumed,
                    ms_before_next=ms_before_next,
                )

            return Rejected(
                limit=self.limit,
                remaining_points=self.limit - record.consumed,
                ms_before_next=ms_before_next,
            )

    def peek(self, key: str, now: float | None = None) -> QuotaSnapshot:
        """Report the key's quota without creating or charging a record."""
        if now is None:
            now = self._clock()

        shard = self._shard_for(key)
        with shard.lock:
            record = shard.records.get(key)
            if record is None or record.is_expired(now):
                return QuotaSnapshot(
                    key=key,
                    limit=self.limit,
                    consumed=0,
                    ms_before_next=self.window_seconds * 1000,
                )
            return QuotaSnapshot(
                key=key,
                limit=self.limit,
                consumed=record.consumed,
                ms_before_next=self._ms_until(record.window_expires_at, now),
            )

    def sweep(self, now: float | None = None) -> int:
        """Remove expired records from every shard.

        Shards are locked one at a time, so a sweep never blocks the whole
        store and never races an increment on the same key.
        """
        if now is None:
            now = self._clock()

        removed = 0
        for shard in self._shards:
            with shard.lock:
                removed += shard.sweep_locked(now)

        if removed:
            logger.debug("quota_store.swept", extra={"evicted": removed})
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.records.clear()
                shard.evictions = 0

    def stats(self) -> dict[str, int | float]:
        keys = 0
        evictions = 0
        for shard in self._shards:
            with shard.lock:
                keys += len(shard.records)
                evictions += shard.evictions
        return {
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "shards": len(self._shards),
            "keys": keys,
            "evictions": evictions,
            "sweep_interval_seconds": self._sweep_interval,
        }
