try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio

import pytest

from app.services.fingerprint_cache import FingerprintCache, compute_fingerprint


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_fingerprint_depends_on_user_and_content() -> None:
    base = compute_fingerprint(user_id="user-1", text="Score 712")

    assert base == compute_fingerprint(user_id="user-1", text="Score 712")
    assert base != compute_fingerprint(user_id="user-2", text="Score 712")
    assert base != compute_fingerprint(user_id="user-1", text="Score 713")


def test_fingerprint_normalizes_line_endings_and_trailing_space() -> None:
    assert compute_fingerprint(
        user_id="u", text="line one  \r\nline two\n"
    ) == compute_fingerprint(user_id="u", text="line one\nline two")


def test_cache_key_overrides_content() -> None:
    first = compute_fingerprint(user_id="u", content=b"a", cache_key="report-1")
    second = compute_fingerprint(user_id="u", content=b"b", cache_key="report-1")
    assert first == second


def test_fingerprint_requires_an_input() -> None:
    with pytest.raises(ValueError):
        compute_fingerprint(user_id="u")


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: FingerprintCache[str] = FingerprintCache(
        capacity=5, ttl_seconds=300, clock=clock
    )
    cache.put("fp", "result")

    clock.now += 299
    assert cache.get("fp") == "result"

    clock.now += 1
    assert cache.get("fp") is None
    assert len(cache) == 0


def test_oldest_entry_is_evicted_at_capacity() -> None:
    cache: FingerprintCache[int] = FingerprintCache(capacity=2, ttl_seconds=None)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.put("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_reinserting_refreshes_eviction_order() -> None:
    cache: FingerprintCache[int] = FingerprintCache(capacity=2, ttl_seconds=None)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.put("a", 10)
    cache.put("c", 3)

    assert cache.get("a") == 10
    assert cache.get("b") is None


def test_invalidate_and_clear() -> None:
    cache: FingerprintCache[int] = FingerprintCache(capacity=3)
    cache.put("a", 1)
    cache.put("b", 2)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        FingerprintCache(capacity=0)


@pytest.mark.asyncio
async def test_hold_serializes_one_fingerprint() -> None:
    cache: FingerprintCache[int] = FingerprintCache(capacity=3)
    active = 0
    peak = 0

    async def worker() -> None:
        nonlocal active, peak
        async with cache.hold("fp"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(4)))

    assert peak == 1
    assert cache._inflight == {}


@pytest.mark.asyncio
async def test_hold_does_not_block_other_fingerprints() -> None:
    cache: FingerprintCache[int] = FingerprintCache(capacity=3)
    entered = asyncio.Event()

    async def holder() -> None:
        async with cache.hold("a"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other() -> None:
        async with cache.hold("b"):
            entered.set()

    await asyncio.gather(holder(), other())
    assert entered.is_set()
