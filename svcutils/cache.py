"""An in-memory cache with a time to live and hit statistics."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Union

from cachetools import TLRUCache

from svcutils import log as _log

_SEPARATOR = ";"
_KIB = 1 << 10
_MISSING = object()

Duration = Union[float, int, timedelta]


class ObjectKey(str):
    """A cache key made of a function name and key fields."""

    def func_name(self) -> str:
        """Return the name of the function that created the key."""
        return self.split(_SEPARATOR, 1)[0]


def key(func_name: str, *fields: str) -> ObjectKey:
    """Build a cache key from a function name and its unique key fields."""
    return ObjectKey(_SEPARATOR.join((func_name, *fields)))


@dataclass
class _FuncMetric:
    gets: int = 0
    hits: int = 0


def _seconds(value: Duration) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class Cache:
    """A bounded cache whose entries expire after ``ttl`` seconds.

    A ``ttl`` of zero or less disables the cache: nothing is stored and
    every lookup misses.
    """

    def __init__(self, ttl: Duration, cache_size_max_mb: int) -> None:
        self._ttl = _seconds(ttl)
        if self._ttl <= 0:
            _log.infof("Caching disabled, TTL: %s", ttl)
        max_items = cache_size_max_mb * _KIB
        if max_items <= 0:
            raise ValueError("error creating cache: MaxCost can't be zero")
        self._store: TLRUCache = TLRUCache(maxsize=max_items, ttu=self._expires_at)
        self._lock = threading.Lock()
        self._gets = 0
        self._sets = 0
        self._hits = 0
        self._misses = 0
        self._func_metrics: dict[str, _FuncMetric] = {}
        self.logger: _log.Logger = _log.base()

    def _expires_at(self, _key: Any, _value: Any, now: float) -> float:
        return now + self._ttl

    @property
    def ttl(self) -> float:
        """Time to live of new entries, in seconds."""
        return self._ttl

    @ttl.setter
    def ttl(self, value: Duration) -> None:
        self._ttl = _seconds(value)

    def clear(self) -> None:
        """Remove every entry and reset the hit and miss counts."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def sets(self) -> int:
        return self._sets

    def gets(self) -> int:
        return self._gets

    def misses(self) -> int:
        return self._misses

    def hits(self) -> int:
        return self._hits

    def func_metrics(self, func_name: str) -> _FuncMetric:
        """Return the gets and hits recorded for keys of ``func_name``."""
        with self._lock:
            return replace(self._func_metrics.get(func_name, _FuncMetric()))

    def exist(self, key: str) -> bool:
        """Tell whether ``key`` is cached; counts as a lookup."""
        try:
            self.get(key)
        except KeyError:
            return False
        return True

    def get(self, key: str) -> Any:
        """Return the cached value for ``key``; raise KeyError on a miss."""
        if self._ttl <= 0:
            raise KeyError(key)
        name = ObjectKey(key).func_name()
        with self._lock:
            metric = self._func_metrics.setdefault(name, _FuncMetric())
            value = self._store.get(str(key), _MISSING)
            self._gets += 1
            metric.gets += 1
            if value is _MISSING:
                self._misses += 1
                raise KeyError(key)
            self._hits += 1
            metric.hits += 1
            return value

    def set(self, key: str, value: Any) -> bool:
        """Store ``value`` under ``key``; return False when caching is disabled."""
        if self._ttl <= 0:
            return False
        with self._lock:
            self._sets += 1
            self._store[str(key)] = value
        return True