"""
LLM Response Caching Module.

Content-addressed SQLite cache for completions and embeddings, so that a
re-run of an LLM-backed stage does not pay again for requests it already
made.
"""
from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _hash(payload: dict[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:32]


def compute_cache_key(
    messages: list[dict[str, str]],
    model: str,
    temperature: float,
    response_format: dict[str, Any] | None = None,
) -> str:
    """
    Compute a deterministic cache key from chat request parameters.

    Args:
        messages: List of message dicts with 'role' and 'content'
        model: Model identifier
        temperature: Sampling temperature
        response_format: Structured output spec, part of the key when present

    Returns:
        32-character hex string cache key
    """
    return _hash(
        {
            "messages": messages,
            "model": model,
            "temperature": round(temperature, 2),  # Round to avoid float precision issues
            "response_format": response_format,
        }
    )


def compute_embedding_key(text: str, model: str) -> str:
    return _hash({"embed": text, "model": model})


@dataclass
class CacheStats:
    """Statistics for cache usage."""

    hits: int = 0
    misses: int = 0


class LLMCache:
    """
    File-based LLM response cache using SQLite with LRU eviction.

    Usage:
        cache = LLMCache(cache_dir=Path("./cache"))
        key = compute_cache_key(messages, model, temperature)

        cached = cache.get(key)
        if cached is None:
            response = await provider.chat_completion(messages, model, temperature)
            cache.set(key, {...})
    """

    DEFAULT_MAX_ENTRIES = 200_000

    def __init__(self, cache_dir: Path | None = None, max_entries: int | None = None) -> None:
        if cache_dir is None:
            cache_dir = Path.home() / ".cache" / "lexiconbuilder" / "llm"

        self._cache_dir = cache_dir
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._db_path = self._cache_dir / "cache.db"
        self._stats = CacheStats()
        self._max_entries = max_entries or self.DEFAULT_MAX_ENTRIES
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    response TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    model TEXT,
                    last_accessed REAL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cache_last_accessed ON cache(last_accessed)")
            conn.commit()

    def get(self, key: str) -> dict[str, Any] | None:
        """Cached response dict for ``key``, or None."""
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute("SELECT response FROM cache WHERE key = ?", (key,)).fetchone()

            if row is None:
                self._stats.misses += 1
                return None

            conn.execute("UPDATE cache SET last_accessed = ? WHERE key = ?", (time.time(), key))
            conn.commit()

        self._stats.hits += 1
        return json.loads(row[0])

    def set(self, key: str, response: dict[str, Any]) -> None:
        """Store ``response`` under ``key``, evicting least recently used rows past the limit."""
        now = time.time()
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache (key, response, created_at, model, last_accessed)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, json.dumps(response, ensure_ascii=False), now, response.get("model"), now),
            )

            count = conn.execute("SELECT COUNT(*) FROM cache").fetchone()[0]
            if count > self._max_entries:
                # Delete 10% of oldest entries to avoid frequent evictions
                evict_count = max(1, count - int(self._max_entries * 0.9))
                conn.execute(
                    """
                    DELETE FROM cache WHERE key IN (
                        SELECT key FROM cache
                        ORDER BY last_accessed ASC
                        LIMIT ?
                    )
                    """,
                    (evict_count,),
                )
                logger.info(f"Evicted {evict_count} LRU cache entries")

            conn.commit()

    def get_stats(self) -> dict[str, int | float]:
        with sqlite3.connect(self._db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM cache").fetchone()[0]

        total_requests = self._stats.hits + self._stats.misses
        hit_rate = round(self._stats.hits / total_requests * 100, 1) if total_requests > 0 else 0.0

        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "entries": count,
            "hit_rate": hit_rate,
        }

    def clear(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute("DELETE FROM cache")
            conn.commit()
        self._stats = CacheStats()
        logger.info("LLM cache cleared")
