from datetime import datetime, timedelta

from healthtrack.core.cache import TTLCache
from healthtrack.core.rate_limit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_cache_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("user-weight", {"value": 1})
    assert cache.get("user-weight") == {"value": 1}

    clock.now += 299
    assert cache.get("user-weight") == {"value": 1}
    clock.now += 1
    assert cache.get("user-weight") is None
    assert len(cache) == 0


def test_cache_evicts_oldest_entry_when_full():
    cache = TTLCache(ttl_seconds=300, max_entries=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_cache_invalidate_prefix_only_touches_matching_keys():
    cache = TTLCache(ttl_seconds=300, clock=FakeClock())
    cache.set("user_1-weight-None-None-daily", 1)
    cache.set("user_1-steps-None-None-daily", 2)
    cache.set("user_10-weight-None-None-daily", 3)

    assert cache.invalidate_prefix("user_1-") == 2
    assert cache.get("user_10-weight-None-None-daily") == 3


def test_rate_limiter_sliding_window():
    limiter = RateLimiter(limit_per_minute=2)
    start = datetime(2024, 1, 1, 12, 0, 0)

    assert limiter.check("user", start).allowed
    second = limiter.check("user", start + timedelta(seconds=10))
    assert second.allowed
    assert second.remaining == 0

    blocked = limiter.check("user", start + timedelta(seconds=20))
    assert not blocked.allowed
    assert blocked.reset_at == start + timedelta(seconds=60)

    # other users have their own window
    assert limiter.check("someone-else", start + timedelta(seconds=20)).allowed

    assert limiter.check("user", start + timedelta(seconds=61)).allowed


def test_rate_limiter_disabled_with_zero_limit():
    limiter = RateLimiter(limit_per_minute=0)
    for _ in range(500):
        assert limiter.check("user").allowed


def test_rate_limiter_reset():
    limiter = RateLimiter(limit_per_minute=1)
    now = datetime(2024, 1, 1)
    limiter.check("user", now)
    assert not limiter.check("user", now).allowed
    limiter.reset()
    assert limiter.check("user", now).allowed


def test_rate_limiter_evicts_idle_clients():
    limiter = RateLimiter(limit_per_minute=5)
    start = datetime(2024, 1, 1, 12, 0, 0)
    limiter.check("idle", start)
    limiter.check("busy", start + timedelta(seconds=30))
    assert set(limiter.windows) == {"idle", "busy"}

    limiter.check("busy", start + timedelta(seconds=75))
    assert set(limiter.windows) == {"busy"}
    assert len(limiter.windows["busy"]) == 2
