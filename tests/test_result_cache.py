from __future__ import annotations

import pytest

from gradeboard.cache import ResultCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_put_invalidate_round_trip() -> None:
    cache = ResultCache()
    records = [{"KOR_SBJT_NM": "자료구조"}, {"KOR_SBJT_NM": "운영체제"}]

    assert cache.get("1") is None
    cache.put("1", records)
    assert cache.get("1") is records
    assert "1" in cache
    assert len(cache) == 1

    cache.invalidate("1")
    assert cache.get("1") is None
    cache.invalidate("missing")


def test_least_recently_used_entry_is_evicted() -> None:
    cache = ResultCache(max_entries=2)
    cache.put("a", [])
    cache.put("b", [])
    cache.get("a")
    cache.put("c", [])

    assert cache.get("b") is None
    assert cache.get("a") == []
    assert cache.get("c") == []
    assert len(cache) == 2


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl_seconds=60, clock=clock)
    cache.put("a", [{"rank": 1}])

    clock.now = 59.0
    assert cache.get("a") == [{"rank": 1}]
    clock.now = 60.0
    assert cache.get("a") is None
    assert len(cache) == 0


def test_put_refreshes_timestamp() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl_seconds=10, clock=clock)
    cache.put("a", [])
    clock.now = 8.0
    cache.put("a", [{"rank": 2}])
    clock.now = 15.0

    assert cache.get("a") == [{"rank": 2}]


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        ResultCache(max_entries=0)
