from __future__ import annotations

import threading

from flock.dev_tokens import DevTokenRecord, DevTokenStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_issue_returns_256_bit_hex_token() -> None:
    store = DevTokenStore()
    token = store.issue("a@example.com", 1, 900)
    assert len(token) == 64
    int(token, 16)
    assert len(store) == 1


def test_take_is_single_use() -> None:
    store = DevTokenStore()
    token = store.issue("a@example.com", 1, 900)
    first = store.take(token)
    assert first is not None and first.email == "a@example.com" and first.member_id == 1
    assert store.take(token) is None


def test_take_unknown_token() -> None:
    assert DevTokenStore().take("missing") is None


def test_expiry_is_checked_by_caller() -> None:
    clock = FakeClock()
    store = DevTokenStore(clock=clock)
    token = store.issue("a@example.com", None, 900)
    clock.now += 901
    record = store.take(token)
    assert record is not None
    assert record.is_expired(store.now())


def test_put_evicts_expired_entries() -> None:
    clock = FakeClock()
    store = DevTokenStore(clock=clock)
    store.issue("old@example.com", None, 10)
    clock.now += 11
    store.put("fresh", DevTokenRecord(email="new@example.com", member_id=None, expires_at=clock.now + 60))
    assert len(store) == 1
    assert store.take("fresh") is not None


def test_purge_expired_counts_removed() -> None:
    clock = FakeClock()
    store = DevTokenStore(clock=clock)
    store.issue("a@example.com", None, 10)
    store.issue("b@example.com", None, 10)
    store.issue("c@example.com", None, 1000)
    clock.now += 100
    assert store.purge_expired() == 2
    assert len(store) == 1


def test_concurrent_take_has_one_winner() -> None:
    store = DevTokenStore()
    token = store.issue("race@example.com", 7, 900)
    start = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def worker() -> None:
        start.wait(timeout=5)
        rec = store.take(token)
        with lock:
            results.append(rec)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    winners = [r for r in results if r is not None]
    assert len(results) == 8
    assert len(winners) == 1
