"""
Tests for the TTL + LRU response cache.
"""

import pytest

from questweaver.config import CacheConfig
from questweaver.llm.cache import ResponseCache
from questweaver.llm.models import LLMResponse, RequestOptions

pytestmark = pytest.mark.anyio


class FakeClock:
    def __init__(self, now: float = 10_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(CacheConfig(max_entries=3, default_ttl=100.0), clock=clock)


# ============================================================================
# Core get / set
# ============================================================================


class TestGetSet:

    def test_roundtrip_and_miss(self, cache):
        cache.set("a", {"x": 1})
        assert cache.get("a") == {"x": 1}
        assert cache.get("missing") is None

    def test_values_are_isolated_copies(self, cache):
        value = {"items": [1, 2]}
        cache.set("a", value)
        value["items"].append(3)

        fetched = cache.get("a")
        assert fetched == {"items": [1, 2]}
        fetched["items"].append(99)
        assert cache.get("a") == {"items": [1, 2]}

    def test_expiry_is_lazy_on_access(self, cache, clock):
        cache.set("a", "short", ttl=10)
        clock.advance(5)
        assert cache.get("a") == "short"

        clock.advance(6)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_default_ttl_applies(self, cache, clock):
        cache.set("a", "value")
        clock.advance(99)
        assert "a" in cache
        clock.advance(2)
        assert "a" not in cache

    def test_overwrite_does_not_evict(self, cache):
        for key in ("a", "b", "c"):
            cache.set(key, key)
        cache.set("a", "again")
        assert len(cache) == 3
        assert cache.get_stats().evictions == 0
        assert cache.get("a") == "again"


# ============================================================================
# LRU eviction
# ============================================================================


class TestEviction:

    def test_least_recently_used_is_evicted(self, cache, clock):
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)
        cache.set("c", 3)
        clock.advance(1)

        # Touch "a" so "b" becomes the oldest
        assert cache.get("a") == 1
        cache.set("d", 4)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get("d") == 4
        assert cache.get_stats().evictions == 1

    def test_ties_broken_by_insertion_order(self, cache):
        # Same clock reading for every entry
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("d", 4)
        assert "a" not in cache
        assert "b" in cache


# ============================================================================
# Maintenance
# ============================================================================


class TestMaintenance:

    def test_invalidate_by_substring(self, cache):
        cache.set("content:room:1", "r1")
        cache.set("content:npc:1", "n1")
        cache.set("llm:abc", "resp")

        assert cache.invalidate("content:") == 2
        assert len(cache) == 1
        assert cache.invalidate("nothing") == 0

    def test_cleanup_expired(self, cache, clock):
        cache.set("a", 1, ttl=5)
        cache.set("b", 2, ttl=50)
        clock.advance(10)
        assert cache.cleanup_expired() == 1
        assert len(cache) == 1

    def test_optimize_below_threshold_is_noop(self, cache):
        cache.set("a", 1)
        assert cache.optimize() == 0

    def test_optimize_drops_lowest_value_quartile(self, clock):
        cache = ResponseCache(CacheConfig(max_entries=4), clock=clock)
        for key in ("a", "b", "c", "d"):
            cache.set(key, key)
        clock.advance(60)
        for _ in range(3):
            cache.get("a")
            cache.get("b")
            cache.get("c")

        assert cache.optimize() == 1
        assert "d" not in cache

    def test_warm_cache(self, cache):
        stored = cache.warm_cache([
            {"key": "a", "value": 1},
            {"key": "b", "value": 2, "ttl": 5},
        ])
        assert stored == 2
        assert cache.get("b") == 2

    def test_clear_resets_stats(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        stats = cache.get_stats()
        assert stats.total_entries == 0
        assert stats.total_hits == 0


# ============================================================================
# Statistics
# ============================================================================


class TestStats:

    def test_hit_and_miss_rates(self, cache):
        cache.set("a", {"text": "hello"})
        cache.get("a")
        cache.get("a")
        cache.get("b")

        stats = cache.get_stats()
        assert stats.total_hits == 2
        assert stats.total_misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.miss_rate == pytest.approx(1 / 3)
        assert stats.memory_usage > 0

    def test_empty_cache_rates_are_zero(self, cache):
        stats = cache.get_stats()
        assert stats.hit_rate == 0.0
        assert stats.miss_rate == 0.0


# ============================================================================
# Prompt, content and template helpers
# ============================================================================


class TestHelpers:

    def test_prompt_key_depends_on_options(self, cache):
        base = cache.make_prompt_key("Describe a cave")
        assert base.startswith("llm:")
        assert base == cache.make_prompt_key("Describe a cave", RequestOptions())
        # Unset options hash like their defaults
        assert base == cache.make_prompt_key("Describe a cave", RequestOptions(temperature=0.7))
        assert base != cache.make_prompt_key("Describe a cave", RequestOptions(temperature=0.2))
        assert base != cache.make_prompt_key("Describe a cave", schema={"type": "object"})

    def test_ttl_for_prompt(self):
        cache = ResponseCache(CacheConfig())
        assert cache.ttl_for_prompt("Tell me about dwarves") == 3600.0
        assert cache.ttl_for_prompt("Generate a room") == 7200.0
        creative = RequestOptions(temperature=1.2)
        assert cache.ttl_for_prompt("Generate a room", creative) == 1800.0

    def test_prompt_response_roundtrip(self, cache):
        response = LLMResponse(content="A damp cave", model="m")
        cache.cache_prompt_response("Describe a cave", response)

        cached = cache.get_cached_prompt_response("Describe a cave")
        assert isinstance(cached, LLMResponse)
        assert cached.content == "A damp cave"
        assert cache.get_cached_prompt_response("Describe a forest") is None

    def test_generated_content_uses_type_ttl(self, clock):
        cache = ResponseCache(CacheConfig(), clock=clock)
        key = cache.cache_generated_content("dialogue", {"npc": "npc_1"}, {"responses": ["Hi"]})
        assert key.startswith("content:dialogue:")

        clock.advance(3599)
        assert cache.get_cached_content("dialogue", {"npc": "npc_1"}) == {"responses": ["Hi"]}
        clock.advance(2)
        assert cache.get_cached_content("dialogue", {"npc": "npc_1"}) is None

    def test_template_compilation_cache(self, cache):
        cache.cache_template_compilation("room_description", {"room_name": "Hall"}, "compiled")
        assert cache.get_cached_template("room_description", {"room_name": "Hall"}) == "compiled"
        assert cache.get_cached_template("room_description", {"room_name": "Cellar"}) is None


# ============================================================================
# Background sweep
# ============================================================================


class TestBackgroundSweep:

    async def test_start_and_stop(self, cache):
        await cache.start()
        assert cache.is_running
        await cache.start()
        await cache.stop()
        assert not cache.is_running
        await cache.stop()
