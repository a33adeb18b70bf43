"""
Caller-owned result caches.

The engine never caches anything itself. Request handlers that want to keep a
computed view around for a while (experiment results for a minute, hover
heatmaps for five) build one of these and pass it in::

    cache = MemoryTTLCache(max_entries=500)
    data = cached(cache, cache_key(site_id, "hover-heatmap", params), 300, compute)

`RedisTTLCache` shares entries across processes; values must be JSON-serializable.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

_MISS = object()


class TTLCache(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any, ttl: float) -> None: ...
    def delete(self, key: str) -> bool: ...


class MemoryTTLCache:
    """LRU-bounded in-process cache with per-entry expiry."""

    def __init__(self, max_entries: int = 500, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self._max = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return default
            expiry, value = hit
            if self._clock() >= expiry:
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self._max:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._entries)


class RedisTTLCache:
    """Same contract backed by Redis SETEX; survives restarts and is shared across workers."""

    def __init__(self, client, prefix: str = "uxsignal:cache:"):
        self._r = client
        self._prefix = prefix

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._r.get(self._prefix + key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("[cache] dropping undecodable entry %s: %r", key, e)
            self._r.delete(self._prefix + key)
            return default

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._r.setex(self._prefix + key, max(int(ttl), 1), json.dumps(value))

    def delete(self, key: str) -> bool:
        return bool(self._r.delete(self._prefix + key))


def cache_key(site_id: str, name: str, params: Optional[Dict[str, Any]] = None) -> str:
    parts = [f"{k}={params[k]}" for k in sorted(params or {}) if params[k] is not None]
    return ":".join([site_id, name] + parts)


def cached(cache: Optional[TTLCache], key: str, ttl: float, compute: Callable[[], Any]) -> Any:
    if cache is None:
        return compute()
    value = cache.get(key, _MISS)
    if value is not _MISS:
        return value
    value = compute()
    cache.set(key, value, ttl)
    return value
