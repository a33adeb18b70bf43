"""Shared pytest fixtures."""
from __future__ import annotations

import pytest

from uxsignal.store.memory import MemoryEventStore
from uxsignal.synthetic.personas import seed_store


class FakeRedis:
    """Just enough of redis.Redis (bytes mode) for the chunk store and cache."""

    def __init__(self):
        self.kv = {}
        self.lists = {}

    @staticmethod
    def _b(v):
        return v if isinstance(v, bytes) else str(v).encode("utf-8")

    def ping(self):
        return True

    def incr(self, key):
        self.kv[key] = int(self.kv.get(key, 0)) + 1
        return self.kv[key]

    def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(self._b(v) for v in values)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def get(self, key):
        return self.kv.get(key)

    def setex(self, key, ttl, value):
        self.kv[key] = self._b(value)
        return True

    def delete(self, *keys):
        n = 0
        for k in keys:
            n += int(self.kv.pop(k, None) is not None)
            n += int(self.lists.pop(k, None) is not None)
        return n


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def demo_store():
    store = MemoryEventStore()
    seed_store(store, site_id="site_demo", page_path="/pricing", seed=7)
    return store
