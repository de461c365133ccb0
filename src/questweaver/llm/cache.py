"""
TTL + LRU response cache for LLM calls.

Stores provider responses, generated content and compiled templates under
separate key namespaces:

- ``llm:<hash>``               prompt responses
- ``content:<type>:<hash>``    generated rooms / NPCs / quests / dialogue
- ``template:<id>:<hash>``     template compilations

Entries expire lazily on access and through a periodic background sweep.
When the cache is full, the least-recently-accessed entry is evicted.
Values are deep-copied on the way in and out, so callers never share a
reference with the cache.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from ..config import CacheConfig
from .models import LLMResponse, RequestOptions

logger = logging.getLogger("questweaver")

_GENERATION_WORDS = ("generate", "create")


@dataclass
class CacheEntry:
    """Single cache entry with TTL and access metadata.

    Attributes:
        key: Cache key
        value: Cached value (private copy)
        created_at: Timestamp when the entry was stored
        ttl: Time to live in seconds
        access_count: Number of hits on this entry
        last_accessed: Timestamp of the last hit (or creation)
        sequence: Monotonic access counter, breaks last_accessed ties
    """
    key: str
    value: Any
    created_at: float
    ttl: float
    access_count: int = 0
    last_accessed: float = 0.0
    sequence: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.created_at + self.ttl


@dataclass
class CacheStats:
    """Response cache statistics.

    Attributes:
        total_entries: Entries currently stored
        hit_rate: Hits over total lookups (0.0-1.0)
        miss_rate: Misses over total lookups (0.0-1.0)
        total_hits: Successful lookups
        total_misses: Failed lookups (absent or expired)
        average_response_time: Mean lookup time in seconds
        memory_usage: Estimated footprint in bytes
        evictions: Entries removed to respect capacity
    """
    total_entries: int
    hit_rate: float
    miss_rate: float
    total_hits: int
    total_misses: int
    average_response_time: float
    memory_usage: int
    evictions: int


def _hash(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = json.dumps(value, sort_keys=True, default=str)
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


class ResponseCache:
    """Key-addressed store with TTL expiry and LRU capacity eviction.

    Usage:
        cache = ResponseCache(CacheConfig(max_entries=500))
        await cache.start()  # background sweep

        key = cache.make_prompt_key(prompt, options)
        cache.set(key, response)
        cached = cache.get(key)

        cache.invalidate("content:room")
        await cache.stop()

    Args:
        config: Capacity and TTL policy
        clock: Wall-clock time source (injectable for tests)
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._sequence = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._lookup_times: list[float] = []
        self._cleanup_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """Look up a key.

        Returns None if the key is absent or expired; an expired entry is
        removed on the spot. A hit updates the entry's access metadata.

        Args:
            key: Cache key

        Returns:
            A private copy of the cached value, or None
        """
        start = time.perf_counter()
        try:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(f"Cache miss: {key}")
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache entry expired: {key}")
                return None

            entry.access_count += 1
            entry.last_accessed = now
            entry.sequence = self._next_sequence()
            self._hits += 1
            logger.debug(f"Cache hit: {key} (accessed {entry.access_count}x)")
            return copy.deepcopy(entry.value)
        finally:
            self._lookup_times.append(time.perf_counter() - start)
            if len(self._lookup_times) > 1000:
                del self._lookup_times[:500]

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, evicting the least-recently-used entry when full.

        Args:
            key: Cache key
            value: Value to store (copied)
            ttl: Time to live in seconds; defaults to config.default_ttl
        """
        effective_ttl = ttl if ttl is not None else self.config.default_ttl

        if key not in self._entries and len(self._entries) >= self.config.max_entries:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            created_at=now,
            ttl=effective_ttl,
            last_accessed=now,
            sequence=self._next_sequence(),
        )
        logger.debug(f"Cached {key} (TTL: {effective_ttl}s)")

    def delete(self, key: str) -> bool:
        """Remove one key. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def invalidate(self, pattern: str) -> int:
        """Remove every entry whose key contains ``pattern``.

        Args:
            pattern: Substring to match against keys

        Returns:
            Number of entries removed
        """
        matching = [k for k in self._entries if pattern in k]
        for key in matching:
            del self._entries[key]
        if matching:
            logger.info(f"Invalidated {len(matching)} cache entries matching '{pattern}'")
        return len(matching)

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._lookup_times.clear()
        logger.info("Response cache cleared")

    def cleanup_expired(self) -> int:
        """Purge every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)

    def optimize(self) -> int:
        """Drop the lowest-value quartile once utilization exceeds 75%.

        Value of an entry is its access frequency (hits per minute of age)
        divided by the minutes since it was last accessed.

        Returns:
            Number of entries removed
        """
        if len(self._entries) <= self.config.max_entries * 0.75:
            return 0

        now = self._clock()

        def entry_value(entry: CacheEntry) -> float:
            age_minutes = max((now - entry.created_at) / 60.0, 1 / 60)
            recency_minutes = max((now - entry.last_accessed) / 60.0, 1 / 60)
            return (entry.access_count / age_minutes) / recency_minutes

        ranked = sorted(self._entries.values(), key=lambda e: (entry_value(e), e.sequence))
        to_remove = ranked[: len(ranked) // 4]
        for entry in to_remove:
            del self._entries[entry.key]
        logger.info(f"Cache optimization removed {len(to_remove)} low-value entries")
        return len(to_remove)

    def warm_cache(self, entries: list[dict[str, Any]]) -> int:
        """Preload entries given as ``{"key", "value", "ttl"?}`` dicts.

        Returns:
            Number of entries stored
        """
        for item in entries:
            self.set(item["key"], item["value"], item.get("ttl"))
        logger.info(f"Cache warmed with {len(entries)} entries")
        return len(entries)

    def get_stats(self) -> CacheStats:
        """Return current cache statistics."""
        lookups = self._hits + self._misses
        times = self._lookup_times
        return CacheStats(
            total_entries=len(self._entries),
            hit_rate=self._hits / lookups if lookups else 0.0,
            miss_rate=self._misses / lookups if lookups else 0.0,
            total_hits=self._hits,
            total_misses=self._misses,
            average_response_time=sum(times) / len(times) if times else 0.0,
            memory_usage=self._estimate_memory(),
            evictions=self._evictions,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    # ------------------------------------------------------------------
    # Prompt responses
    # ------------------------------------------------------------------

    def make_prompt_key(
        self,
        prompt: str,
        options: RequestOptions | None = None,
        schema: dict[str, Any] | None = None,
    ) -> str:
        """Deterministic key over the inputs that influence a response."""
        options = options or RequestOptions()
        material = {
            "prompt": _hash(prompt),
            "model": options.model or "default",
            "temperature": options.temperature if options.temperature is not None else 0.7,
            "max_tokens": options.max_tokens or 2000,
            "system_prompt": _hash(options.system_prompt),
            "schema": _hash(schema),
        }
        return f"llm:{_hash(material)}"

    def ttl_for_prompt(self, prompt: str, options: RequestOptions | None = None) -> float:
        """TTL policy for prompt responses.

        Prompts asking for generated content live longer; high-temperature
        (creative) requests live shorter. The creative rule wins when both apply.
        """
        ttl = self.config.default_ttl
        lowered = prompt.lower()
        if any(word in lowered for word in _GENERATION_WORDS):
            ttl = self.config.generation_ttl
        if options and options.temperature is not None and options.temperature > self.config.creative_temperature:
            ttl = self.config.creative_ttl
        return ttl

    def get_cached_prompt_response(
        self,
        prompt: str,
        options: RequestOptions | None = None,
        schema: dict[str, Any] | None = None,
    ) -> LLMResponse | None:
        cached = self.get(self.make_prompt_key(prompt, options, schema))
        if cached is None:
            return None
        if isinstance(cached, LLMResponse):
            return cached
        return LLMResponse.model_validate(cached)

    def cache_prompt_response(
        self,
        prompt: str,
        response: LLMResponse,
        options: RequestOptions | None = None,
        schema: dict[str, Any] | None = None,
    ) -> str:
        key = self.make_prompt_key(prompt, options, schema)
        self.set(key, response, self.ttl_for_prompt(prompt, options))
        return key

    # ------------------------------------------------------------------
    # Generated content and template compilations
    # ------------------------------------------------------------------

    def cache_generated_content(self, content_type: str, params: dict[str, Any], content: Any) -> str:
        """Cache generated room/npc/quest/dialogue content by request parameters."""
        key = f"content:{content_type}:{_hash(params)}"
        ttl = self.config.content_ttls.get(content_type, self.config.default_ttl)
        self.set(key, content, ttl)
        return key

    def get_cached_content(self, content_type: str, params: dict[str, Any]) -> Any | None:
        return self.get(f"content:{content_type}:{_hash(params)}")

    def cache_template_compilation(self, template_id: str, variables: dict[str, Any], compiled: Any) -> str:
        key = f"template:{template_id}:{_hash(variables)}"
        self.set(key, compiled, self.config.template_ttl)
        return key

    def get_cached_template(self, template_id: str, variables: dict[str, Any]) -> Any | None:
        return self.get(f"template:{template_id}:{_hash(variables)}")

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.debug(f"Cache cleanup scheduled every {self.config.cleanup_interval}s")

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            self.cleanup_expired()
            self.optimize()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _evict_lru(self) -> None:
        victim = min(self._entries.values(), key=lambda e: (e.last_accessed, e.sequence))
        del self._entries[victim.key]
        self._evictions += 1
        logger.debug(f"Evicted least recently used cache entry: {victim.key}")

    def _estimate_memory(self) -> int:
        total = 0
        for entry in self._entries.values():
            value = entry.value
            if isinstance(value, BaseModel):
                serialized = value.model_dump_json()
            else:
                serialized = json.dumps(value, default=str)
            total += (len(entry.key) + len(serialized)) * 2
        return total


__all__ = [
    "CacheEntry",
    "CacheStats",
    "ResponseCache",
]
