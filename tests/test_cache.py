"""Tests for the result cache."""

import pytest

from sleuth.cache import ResultCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    """Create a cache with a controllable clock."""
    return ResultCache(tmp_path / "cache.db", clock=clock)


class TestResultCache:
    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_set_and_get(self, cache):
        cache.set("k", [{"message_id": "a"}, {"message_id": "b"}], ttl_seconds=60)
        assert cache.get("k") == [{"message_id": "a"}, {"message_id": "b"}]

    def test_overwrite(self, cache):
        cache.set("k", [1], ttl_seconds=60)
        cache.set("k", [2], ttl_seconds=60)
        assert cache.get("k") == [2]

    def test_expiry(self, cache, clock):
        cache.set("k", "value", ttl_seconds=60)
        clock.now += 59
        assert cache.get("k") == "value"
        clock.now += 1
        assert cache.get("k") is None

    def test_expired_entry_removed_on_read(self, cache, clock):
        cache.set("k", "value", ttl_seconds=10)
        clock.now += 20
        assert cache.get("k") is None
        # Moving the clock back does not resurrect it
        clock.now -= 20
        assert cache.get("k") is None

    def test_invalid_ttl(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", "value", ttl_seconds=0)

    def test_delete(self, cache):
        cache.set("k", "value", ttl_seconds=60)
        cache.delete("k")
        assert cache.get("k") is None

    def test_namespaces_isolated(self, tmp_path, clock):
        search = ResultCache(tmp_path / "cache.db", namespace="search", clock=clock)
        other = ResultCache(tmp_path / "cache.db", namespace="other", clock=clock)

        search.set("k", "from search", ttl_seconds=60)
        other.set("k", "from other", ttl_seconds=60)

        assert search.get("k") == "from search"
        assert other.get("k") == "from other"

        assert search.clear() == 1
        assert search.get("k") is None
        assert other.get("k") == "from other"

    def test_prune_expired(self, cache, clock):
        cache.set("short", 1, ttl_seconds=10)
        cache.set("long", 2, ttl_seconds=100)
        clock.now += 50
        assert cache.prune_expired() == 1
        assert cache.get("long") == 2

    def test_clear(self, cache):
        cache.set("a", 1, ttl_seconds=60)
        cache.set("b", 2, ttl_seconds=60)
        assert cache.clear() == 2
        assert cache.clear() == 0

    def test_persists_across_instances(self, tmp_path, clock):
        ResultCache(tmp_path / "cache.db", clock=clock).set("k", {"x": 1}, ttl_seconds=60)
        assert ResultCache(tmp_path / "cache.db", clock=clock).get("k") == {"x": 1}
