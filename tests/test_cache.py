"""Tests for meeting_room/cache.py."""

from meeting_room.cache import TTLCache, make_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_make_key():
    assert make_key("topic_search", "AI", "cost") == "topic_search:AI:cost"
    assert make_key("persona_response", "ceo-001", "Energy", 3) == "persona_response:ceo-001:Energy:3"


def test_get_and_set():
    cache = TTLCache()
    assert cache.get("k") is None
    cache.set("k", [1, 2])
    assert cache.get("k") == [1, 2]
    assert cache.hits == 1
    assert cache.misses == 1


def test_entries_expire():
    clock = FakeClock()
    cache = TTLCache(default_ttl_sec=10, clock=clock)
    cache.set("short", "a", ttl_sec=1)
    cache.set("long", "b")

    clock.now = 5
    assert cache.get("short") is None
    assert cache.get("long") == "b"
    assert len(cache) == 1

    clock.now = 10
    assert cache.get("long") is None


def test_lru_eviction():
    cache = TTLCache(maxsize=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_invalidate_and_clear():
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    cache.clear()
    assert len(cache) == 0


def test_cleanup_removes_only_expired():
    clock = FakeClock()
    cache = TTLCache(default_ttl_sec=10, clock=clock)
    cache.set("a", 1, ttl_sec=1)
    cache.set("b", 2, ttl_sec=2)
    cache.set("c", 3)

    clock.now = 3
    assert cache.cleanup() == 2
    assert cache.get("c") == 3
