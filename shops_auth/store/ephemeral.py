"""Short-lived key/value state: rate-limit windows and consumed OAuth nonces.

Two backends with the same surface: ``MemoryStore`` for a single process
(dev, tests) and ``RedisStore`` when ``REDIS_URL`` is configured so several
workers share counters.
"""
import heapq
import threading
import time
from typing import Protocol

from redis import Redis


class EphemeralStore(Protocol):
    def hit(self, key: str, window_seconds: int) -> int: ...
    def count(self, key: str) -> int: ...
    def claim(self, key: str, ttl_seconds: int) -> bool: ...
    def close(self) -> None: ...


class MemoryStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._data: dict[str, tuple[int, float]] = {}
        # (expires_at, key) for every entry created; popped once due.
        self._expiries: list[tuple[float, str]] = []

    def _purge(self, now: float) -> None:
        while self._expiries and self._expiries[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiries)
            entry = self._data.get(key)
            if entry is not None and entry[1] == expires_at:
                del self._data[key]

    def _put_new(self, key: str, count: int, expires_at: float) -> None:
        self._data[key] = (count, expires_at)
        heapq.heappush(self._expiries, (expires_at, key))

    def _live(self, key: str, now: float) -> tuple[int, float] | None:
        self._purge(now)
        entry = self._data.get(key)
        if entry is None or entry[1] <= now:
            return None
        return entry

    def hit(self, key: str, window_seconds: int) -> int:
        now = time.monotonic()
        with self._lock:
            entry = self._live(key, now)
            if entry is None:
                self._put_new(key, 1, now + window_seconds)
                return 1
            self._data[key] = (entry[0] + 1, entry[1])
            return entry[0] + 1

    def count(self, key: str) -> int:
        with self._lock:
            entry = self._live(key, time.monotonic())
            return entry[0] if entry else 0

    def claim(self, key: str, ttl_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            if self._live(key, now) is not None:
                return False
            self._put_new(key, 1, now + ttl_seconds)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def close(self) -> None:
        with self._lock:
            self._data.clear()
            self._expiries.clear()


class RedisStore:
    def __init__(self, client: Redis, prefix: str = 'auth:'):
        self.r = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> 'RedisStore':
        return cls(Redis.from_url(url, decode_responses=True))

    def hit(self, key: str, window_seconds: int) -> int:
        k = self.prefix + key
        pipe = self.r.pipeline()
        pipe.incr(k)
        pipe.expire(k, window_seconds, nx=True)
        count, _ = pipe.execute()
        return int(count)

    def count(self, key: str) -> int:
        val = self.r.get(self.prefix + key)
        return int(val) if val is not None else 0

    def claim(self, key: str, ttl_seconds: int) -> bool:
        return bool(self.r.set(self.prefix + key, '1', nx=True, ex=ttl_seconds))

    def close(self) -> None:
        self.r.close()


def build_store(redis_url: str | None) -> EphemeralStore:
    if redis_url:
        return RedisStore.from_url(redis_url)
    return MemoryStore()
