from __future__ import annotations

import time

from shops_auth.store.ephemeral import MemoryStore, RedisStore, build_store


def test_memory_hits_and_counts() -> None:
    store = MemoryStore()
    assert store.count('k') == 0
    assert store.hit('k', 60) == 1
    assert store.hit('k', 60) == 2
    assert store.count('k') == 2
    assert store.count('other') == 0


def test_memory_window_expires(monkeypatch) -> None:
    store = MemoryStore()
    now = [1000.0]
    monkeypatch.setattr(time, 'monotonic', lambda: now[0])
    store.hit('k', 10)
    store.hit('k', 10)
    now[0] += 11
    assert store.count('k') == 0
    assert store.hit('k', 10) == 1


def test_memory_drops_expired_keys_it_never_reads_again(monkeypatch) -> None:
    store = MemoryStore()
    now = [500.0]
    monkeypatch.setattr(time, 'monotonic', lambda: now[0])
    for i in range(1000):
        store.claim(f'oauth:nonce:{i}', 10)
        store.hit(f'rl:auth:10.0.{i // 256}.{i % 256}', 10)
    assert len(store) == 2000

    now[0] += 11
    assert store.claim('oauth:nonce:fresh', 600) is True
    assert len(store) == 1
    assert store._expiries == [(now[0] + 600, 'oauth:nonce:fresh')]


def test_memory_sweep_keeps_live_counters(monkeypatch) -> None:
    store = MemoryStore()
    now = [0.0]
    monkeypatch.setattr(time, 'monotonic', lambda: now[0])
    store.hit('short', 5)
    store.hit('long', 100)
    store.hit('long', 100)
    now[0] += 6
    store.hit('other', 5)
    assert store.count('short') == 0
    assert store.count('long') == 2
    assert len(store) == 2


def test_memory_claim_is_single_use() -> None:
    store = MemoryStore()
    assert store.claim('nonce', 60) is True
    assert store.claim('nonce', 60) is False
    store.close()
    assert store.claim('nonce', 60) is True


class _FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def incr(self, key):
        self.ops.append(('incr', key))

    def expire(self, key, seconds, nx=False):
        self.ops.append(('expire', key, seconds, nx))

    def execute(self):
        out = []
        for op in self.ops:
            if op[0] == 'incr':
                self.redis.data[op[1]] = int(self.redis.data.get(op[1], 0)) + 1
                out.append(self.redis.data[op[1]])
            else:
                self.redis.expiries.setdefault(op[1], op[2])
                out.append(True)
        return out


class _FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiries = {}
        self.closed = False

    def pipeline(self):
        return _FakePipeline(self)

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.expiries[key] = ex
        return True

    def close(self):
        self.closed = True


def test_redis_store_uses_prefixed_keys() -> None:
    fake = _FakeRedis()
    store = RedisStore(fake)
    assert store.hit('rl:auth:1.1.1.1', 900) == 1
    assert store.hit('rl:auth:1.1.1.1', 900) == 2
    assert store.count('rl:auth:1.1.1.1') == 2
    assert fake.expiries == {'auth:rl:auth:1.1.1.1': 900}

    assert store.claim('oauth:nonce:n', 600) is True
    assert store.claim('oauth:nonce:n', 600) is False
    store.close()
    assert fake.closed


def test_build_store_defaults_to_memory() -> None:
    assert isinstance(build_store(None), MemoryStore)
    assert isinstance(build_store(''), MemoryStore)
