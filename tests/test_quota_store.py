"""Unit tests for the in-memory quota store."""

import threading

import pytest

from gatekeeper.adapters.quota import Admitted, Rejected, ShardedInMemoryQuotaStore


def _store(clock, **kwargs) -> ShardedInMemoryQuotaStore:
    kwargs.setdefault("sweep_interval_seconds", 0)
    return ShardedInMemoryQuotaStore(clock=clock, **kwargs)


def test_admits_up_to_limit_in_same_window(clock) -> None:
    store = _store(clock, limit=3, window_seconds=60)

    assert store.consume("k").admitted is True
    assert store.consume("k").admitted is True
    outcome = store.consume("k")
    assert isinstance(outcome, Admitted)
    assert outcome.remaining == 0


def test_rejects_request_after_limit(clock) -> None:
    store = _store(clock, limit=2, window_seconds=60)

    store.consume("k")
    store.consume("k")
    clock.advance(15)

    outcome = store.consume("k")
    assert isinstance(outcome, Rejected)
    assert outcome.remaining_points == 0
    assert outcome.ms_before_next == 45_000
    assert outcome.retry_after_seconds == 45


def test_rejection_does_not_consume_points(clock) -> None:
    store = _store(clock, limit=3, window_seconds=60)

    assert store.consume("k", points=2).admitted is True

    rejected = store.consume("k", points=2)
    assert isinstance(rejected, Rejected)
    assert rejected.remaining_points == 1

    admitted = store.consume("k", points=1)
    assert isinstance(admitted, Admitted)
    assert admitted.remaining == 0


def test_cost_larger_than_limit_is_always_rejected(clock) -> None:
    store = _store(clock, limit=5, window_seconds=60)

    outcome = store.consume("k", points=6)

    assert isinstance(outcome, Rejected)
    assert outcome.remaining_points == 5
    assert store.peek("k").consumed == 0


def test_window_resets_exactly_at_expiry(clock) -> None:
    store = _store(clock, limit=1, window_seconds=10)

    assert store.consume("k").admitted is True
    clock.advance(9.999)
    assert store.consume("k").admitted is False

    clock.current = 1010.0
    outcome = store.consume("k")
    assert isinstance(outcome, Admitted)
    assert outcome.remaining == 0
    assert outcome.ms_before_next == 10_000


def test_window_is_not_shortened_by_later_requests(clock) -> None:
    store = _store(clock, limit=5, window_seconds=10)

    store.consume("k")
    clock.advance(4)
    outcome = store.consume("k")

    assert outcome.ms_before_next == 6_000


def test_isolated_by_key(clock) -> None:
    store = _store(clock, limit=1, window_seconds=60)

    assert store.consume("k1").admitted is True
    assert store.consume("k1").admitted is False

    assert store.consume("k2").admitted is True


def test_documented_scenario(clock) -> None:
    store = _store(clock, limit=2, window_seconds=10)

    clock.current = 0.0
    first = store.consume("client")
    assert isinstance(first, Admitted) and first.remaining == 1

    clock.current = 1.0
    second = store.consume("client")
    assert isinstance(second, Admitted) and second.remaining == 0

    clock.current = 2.0
    third = store.consume("client")
    assert isinstance(third, Rejected)
    assert third.retry_after_seconds == 8

    clock.current = 11.0
    fourth = store.consume("client")
    assert isinstance(fourth, Admitted) and fourth.remaining == 1


def test_explicit_now_overrides_clock(clock) -> None:
    store = _store(clock, limit=1, window_seconds=10)

    store.consume("k", now=500.0)
    outcome = store.consume("k", now=505.0)

    assert isinstance(outcome, Rejected)
    assert outcome.ms_before_next == 5_000


def test_peek_does_not_consume_or_create(clock) -> None:
    store = _store(clock, limit=3, window_seconds=60)

    snapshot = store.peek("k")
    assert snapshot.remaining == 3
    assert len(store) == 0

    store.consume("k")
    assert store.peek("k").remaining == 2
    assert store.peek("k").remaining == 2
    assert store.consume("k").remaining == 1


def test_peek_reports_full_quota_after_expiry(clock) -> None:
    store = _store(clock, limit=2, window_seconds=10)

    store.consume("k")
    store.consume("k")
    clock.advance(10)

    snapshot = store.peek("k")
    assert snapshot.remaining == 2
    assert snapshot.ms_before_next == 10_000


def test_sweep_removes_only_expired_records(clock) -> None:
    store = _store(clock, limit=5, window_seconds=10, shards=4)

    store.consume("old")
    clock.advance(5)
    store.consume("fresh")
    clock.advance(6)

    assert store.sweep() == 1
    assert len(store) == 1
    assert store.peek("fresh").consumed == 1
    assert store.stats()["evictions"] == 1


def test_consume_sweeps_its_shard_opportunistically(clock) -> None:
    store = ShardedInMemoryQuotaStore(
        limit=5, window_seconds=10, shards=1, sweep_interval_seconds=30, clock=clock
    )

    store.consume("a")
    clock.advance(31)
    store.consume("b")

    assert len(store) == 1
    assert store.stats()["evictions"] == 1


def test_clear_resets_state(clock) -> None:
    store = _store(clock, limit=1, window_seconds=60)
    store.consume("a")
    store.consume("b")

    store.clear()

    stats = store.stats()
    assert stats["keys"] == 0
    assert stats["evictions"] == 0
    assert store.consume("a").admitted is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60},
        {"limit": 1, "window_seconds": 0},
        {"limit": 1, "window_seconds": 60, "shards": 0},
        {"limit": 1, "window_seconds": 60, "sweep_interval_seconds": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ShardedInMemoryQuotaStore(**kwargs)


def test_invalid_consume_args() -> None:
    store = ShardedInMemoryQuotaStore(limit=1, window_seconds=60)

    with pytest.raises(ValueError):
        store.consume("")

    with pytest.raises(ValueError):
        store.consume("k", points=0)

    with pytest.raises(ValueError):
        store.consume("k", points=True)


def test_concurrent_consumes_for_same_key_never_over_admit(clock) -> None:
    limit = 50
    total = 200
    store = _store(clock, limit=limit, window_seconds=60)
    barrier = threading.Barrier(total)
    results: list[bool] = []
    results_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        outcome = store.consume("shared")
        with results_lock:
            results.append(outcome.admitted)

    threads = [threading.Thread(target=_worker) for _ in range(total)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == limit
    assert results.count(False) == total - limit
    assert store.peek("shared").consumed == limit


def test_concurrent_consumes_across_keys_are_counted_independently(clock) -> None:
    store = _store(clock, limit=10, window_seconds=60, shards=4)
    keys = [f"10.0.0.{i}" for i in range(8)]

    def _worker(key: str) -> None:
        for _ in range(15):
            store.consume(key)

    threads = [threading.Thread(target=_worker, args=(k,)) for k in keys for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for key in keys:
        assert store.peek(key).consumed == 10


def test_sweeps_racing_consumes_at_window_boundaries_never_over_admit(clock) -> None:
    limit = 20
    consumers = 50
    sweepers = 10
    store = _store(clock, limit=limit, window_seconds=10, shards=1)

    for window in range(30):
        now = 1_000.0 + window * 10
        barrier = threading.Barrier(consumers + sweepers)
        admitted: list[bool] = []
        admitted_lock = threading.Lock()

        def _consume() -> None:
            barrier.wait()
            outcome = store.consume("k", now=now)
            with admitted_lock:
                admitted.append(outcome.admitted)

        def _sweep() -> None:
            barrier.wait()
            store.sweep(now=now)

        threads = [threading.Thread(target=_consume) for _ in range(consumers)]
        threads += [threading.Thread(target=_sweep) for _ in range(sweepers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert admitted.count(True) == limit, f"window {window}"
        assert store.peek("k", now=now).consumed == limit
