"""Tests for the background sweep task."""

import asyncio

import pytest

from gatekeeper.adapters.quota import QuotaSweeper, ShardedInMemoryQuotaStore


async def _wait_for(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)


def test_sweeper_evicts_expired_records(clock) -> None:
    store = ShardedInMemoryQuotaStore(
        limit=1, window_seconds=10, sweep_interval_seconds=0, clock=clock
    )
    for i in range(20):
        store.consume(f"198.51.100.{i}")
    clock.advance(11)

    async def scenario() -> None:
        sweeper = QuotaSweeper(store, interval_seconds=0.01)
        sweeper.start()
        assert sweeper.running
        await _wait_for(lambda: len(store) == 0)
        await sweeper.stop()
        assert not sweeper.running

    asyncio.run(scenario())

    assert len(store) == 0
    assert store.stats()["evictions"] == 20


def test_sweeper_keeps_running_after_a_failed_sweep(clock) -> None:
    class FlakyStore(ShardedInMemoryQuotaStore):
        calls = 0

        def sweep(self, now=None):
            FlakyStore.calls += 1
            if FlakyStore.calls == 1:
                raise RuntimeError("transient")
            return super().sweep(now)

    store = FlakyStore(limit=1, window_seconds=10, clock=clock)

    async def scenario() -> None:
        sweeper = QuotaSweeper(store, interval_seconds=0.01)
        sweeper.start()
        await _wait_for(lambda: FlakyStore.calls >= 3)
        await sweeper.stop()

    asyncio.run(scenario())

    assert FlakyStore.calls >= 3


def test_zero_interval_disables_sweeper(clock) -> None:
    store = ShardedInMemoryQuotaStore(limit=1, window_seconds=10, clock=clock)

    async def scenario() -> None:
        sweeper = QuotaSweeper(store, interval_seconds=0)
        sweeper.start()
        assert not sweeper.running
        await sweeper.stop()

    asyncio.run(scenario())


def test_negative_interval_is_rejected() -> None:
    store = ShardedInMemoryQuotaStore(limit=1, window_seconds=10)

    with pytest.raises(ValueError):
        QuotaSweeper(store, interval_seconds=-1)
