from __future__ import annotations

import hashlib
import json
import os
import threading
from typing import Any

from cachetools import TTLCache


REVIEW_STATS_NAMESPACE = "REVIEW_STATS"


def _digest(params: dict[str, Any]) -> str:
    try:
        blob = json.dumps(params, sort_keys=True, separators=(",", ":"))
    except TypeError:
        blob = str(params)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


def scope_prefix(namespace: str, *scope: str) -> str:
    """`NAMESPACE:scope1:...:` shared by every key of that scope."""
    parts = [str(namespace or "").strip().upper()] + [str(s or "").strip() for s in scope if str(s or "").strip()]
    return ":".join(parts) + ":"


def make_cache_key(namespace: str, *, scope: list[str] | None = None, params: dict[str, Any] | None = None) -> str:
    return scope_prefix(namespace, *(scope or [])) + _digest(params or {})


class ScopedTTLCache:
    """
    TTLCache plus an index from scope prefix to live keys.

    Writers invalidate a whole scope (e.g. one employee's review stats) without
    scanning the cache.
    """

    def __init__(self, *, ttl_seconds: int, max_items: int):
        self._cache = TTLCache(maxsize=max_items, ttl=ttl_seconds)
        self._scopes: dict[str, set[str]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _scope_of(key: str) -> str:
        return key.rsplit(":", 1)[0] + ":"

    def get(self, key: str) -> Any:
        with self._lock:
            val = self._cache.get(key)
            if val is None:
                self._misses += 1
            else:
                self._hits += 1
            return val

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value
            self._scopes.setdefault(self._scope_of(key), set()).add(key)

    def drop_scope(self, prefix: str) -> int:
        pfx = str(prefix or "")
        if not pfx:
            return 0
        with self._lock:
            removed = 0
            for scope in [s for s in self._scopes if s.startswith(pfx)]:
                for key in self._scopes.pop(scope):
                    if self._cache.pop(key, None) is not None:
                        removed += 1
            return removed

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._scopes.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "scopes": len(self._scopes),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups * 100, 2) if lookups else 0.0,
            }


def _cache_from_env() -> ScopedTTLCache:
    ttl = max(1, min(3600, int(os.getenv("CACHE_TTL_SECONDS", "60") or "60")))
    max_items = max(100, min(500_000, int(os.getenv("CACHE_MAX_ITEMS", "10000") or "10000")))
    return ScopedTTLCache(ttl_seconds=ttl, max_items=max_items)


_cache = _cache_from_env()


def cache_get(key: str) -> Any:
    return _cache.get(key)


def cache_set(key: str, value: Any) -> None:
    _cache.set(key, value)


def cache_invalidate_prefix(prefix: str) -> int:
    return _cache.drop_scope(prefix)


def cache_clear() -> None:
    _cache.clear()


def cache_stats() -> dict[str, Any]:
    return _cache.stats()
