"""Tests for LLM response caching."""
from __future__ import annotations

from pathlib import Path

from lexiconbuilder.llm.cache import LLMCache, compute_cache_key, compute_embedding_key

MESSAGES = [{"role": "system", "content": "Extract origins"}, {"role": "user", "content": "OE bōt"}]


class TestCacheKeys:
    def test_key_is_stable(self) -> None:
        assert compute_cache_key(MESSAGES, "gpt-4o-mini", 0.0) == compute_cache_key(MESSAGES, "gpt-4o-mini", 0.0)

    def test_key_changes_with_each_request_parameter(self) -> None:
        base = compute_cache_key(MESSAGES, "gpt-4o-mini", 0.0)
        assert compute_cache_key(MESSAGES[:1], "gpt-4o-mini", 0.0) != base
        assert compute_cache_key(MESSAGES, "gpt-4o", 0.0) != base
        assert compute_cache_key(MESSAGES, "gpt-4o-mini", 0.7) != base
        assert compute_cache_key(MESSAGES, "gpt-4o-mini", 0.0, {"type": "json_object"}) != base

    def test_temperature_is_rounded(self) -> None:
        assert compute_cache_key(MESSAGES, "m", 0.2) == compute_cache_key(MESSAGES, "m", 0.2000001)

    def test_embedding_key_differs_from_chat_key(self) -> None:
        key = compute_embedding_key("a small thing", "text-embedding-3-large")
        assert len(key) == 32
        assert key != compute_embedding_key("a small thing", "text-embedding-3-small")


class TestLLMCache:
    def test_miss_then_hit(self, tmp_path: Path) -> None:
        cache = LLMCache(cache_dir=tmp_path)
        assert cache.get("k") is None

        cache.set("k", {"content": "OE", "model": "m"})

        assert cache.get("k") == {"content": "OE", "model": "m"}
        stats = cache.get_stats()
        assert (stats["hits"], stats["misses"], stats["entries"]) == (1, 1, 1)
        assert stats["hit_rate"] == 50.0

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        LLMCache(cache_dir=tmp_path).set("k", {"embedding": [0.1, 0.2]})
        assert LLMCache(cache_dir=tmp_path).get("k") == {"embedding": [0.1, 0.2]}

    def test_overwrite(self, tmp_path: Path) -> None:
        cache = LLMCache(cache_dir=tmp_path)
        cache.set("k", {"content": "first"})
        cache.set("k", {"content": "second"})
        assert cache.get("k") == {"content": "second"}

    def test_lru_eviction(self, tmp_path: Path) -> None:
        cache = LLMCache(cache_dir=tmp_path, max_entries=10)
        for i in range(11):
            cache.set(f"k{i}", {"content": str(i)})

        # Over the limit, the oldest entries are dropped down to 90% of it.
        assert cache.get_stats()["entries"] == 9

    def test_clear(self, tmp_path: Path) -> None:
        cache = LLMCache(cache_dir=tmp_path)
        cache.set("a", {"content": "1"})
        cache.get("a")

        cache.clear()

        assert cache.get_stats() == {"hits": 0, "misses": 0, "entries": 0, "hit_rate": 0.0}
        assert cache.get("a") is None
