import pytest

from uxsignal.cache import MemoryTTLCache, RedisTTLCache, cache_key, cached


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_memory_cache_expires():
    clock = Clock()
    cache = MemoryTTLCache(clock=clock)
    cache.set("k", {"v": 1}, ttl=10)
    clock.now = 9.9
    assert cache.get("k") == {"v": 1}
    clock.now = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_memory_cache_evicts_least_recently_used():
    cache = MemoryTTLCache(max_entries=2, clock=Clock())
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)
    cache.get("a")
    cache.set("c", 3, 60)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_cached_computes_once():
    cache = MemoryTTLCache(clock=Clock())
    calls = []

    def compute():
        calls.append(1)
        return []

    assert cached(cache, "k", 60, compute) == []
    assert cached(cache, "k", 60, compute) == []
    assert len(calls) == 1


def test_cached_without_cache_always_computes():
    calls = []
    cached(None, "k", 60, lambda: calls.append(1))
    cached(None, "k", 60, lambda: calls.append(1))
    assert len(calls) == 2


def test_redis_cache_round_trip(fake_redis):
    cache = RedisTTLCache(fake_redis)
    cache.set("site:view", {"rows": [1, 2]}, ttl=300)
    assert cache.get("site:view") == {"rows": [1, 2]}
    assert cache.get("missing", "default") == "default"
    assert cache.delete("site:view")
    assert cache.get("site:view") is None


def test_redis_cache_drops_garbage(fake_redis):
    fake_redis.setex("uxsignal:cache:bad", 10, b"\xff{")
    assert RedisTTLCache(fake_redis).get("bad") is None
    assert fake_redis.get("uxsignal:cache:bad") is None


def test_cache_key_is_order_independent():
    a = cache_key("site", "hover-heatmap", {"page": "/", "device": "mobile", "start": None})
    b = cache_key("site", "hover-heatmap", {"device": "mobile", "page": "/"})
    assert a == b == "site:hover-heatmap:device=mobile:page=/"


def test_memory_cache_needs_room_for_one_entry():
    with pytest.raises(ValueError):
        MemoryTTLCache(max_entries=0)
    cache = MemoryTTLCache(max_entries=1, clock=Clock())
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)
    assert (cache.get("a"), cache.get("b")) == (None, 2)
