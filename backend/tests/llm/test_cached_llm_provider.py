"""Tests for the cached LLM provider wrapper."""
from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from lexiconbuilder.llm.cached_provider import CachedLLMProvider
from lexiconbuilder.llm.providers import LLMProviderType, LLMResponse


def _provider() -> MagicMock:
    mock = MagicMock()
    mock.provider_type = LLMProviderType.OPENAI
    mock.is_available.return_value = True
    mock.chat_completion = AsyncMock(
        return_value=LLMResponse(content="animal", model="m", input_tokens=10, output_tokens=1, total_tokens=11)
    )
    mock.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return mock


MESSAGES = [{"role": "user", "content": "Pick a category"}]


class TestCachedLLMProvider:
    @pytest.mark.asyncio
    async def test_identical_completion_is_served_from_cache(self, tmp_path: Path) -> None:
        provider = _provider()
        cached = CachedLLMProvider(provider, cache_dir=tmp_path)

        first = await cached.chat_completion(MESSAGES, model="m", temperature=0.0)
        second = await cached.chat_completion(MESSAGES, model="m", temperature=0.0)

        assert provider.chat_completion.await_count == 1
        assert second.content == first.content == "animal"
        assert second.total_tokens == 11
        assert cached.get_cache_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_cache_io_runs_off_the_event_loop_thread(self, tmp_path: Path) -> None:
        cached = CachedLLMProvider(_provider(), cache_dir=tmp_path)
        loop_thread = threading.get_ident()
        threads: list[int] = []
        cache = cached._cache
        original_get, original_set = cache.get, cache.set

        def get(key: str):
            threads.append(threading.get_ident())
            return original_get(key)

        def set_(key: str, value):
            threads.append(threading.get_ident())
            original_set(key, value)

        cache.get = get
        cache.set = set_

        await cached.chat_completion(MESSAGES, model="m", temperature=0.0)
        await cached.embed("a small thing", "e")

        assert len(threads) == 4
        assert loop_thread not in threads

    @pytest.mark.asyncio
    async def test_response_format_is_part_of_the_key(self, tmp_path: Path) -> None:
        provider = _provider()
        cached = CachedLLMProvider(provider, cache_dir=tmp_path)

        await cached.chat_completion(MESSAGES, model="m", temperature=0.0)
        await cached.chat_completion(MESSAGES, model="m", temperature=0.0, response_format={"type": "json_object"})

        assert provider.chat_completion.await_count == 2

    @pytest.mark.asyncio
    async def test_embeddings_are_cached(self, tmp_path: Path) -> None:
        provider = _provider()
        cached = CachedLLMProvider(provider, cache_dir=tmp_path)

        assert await cached.embed("a small thing", "e") == [0.1, 0.2, 0.3]
        assert await cached.embed("a small thing", "e") == [0.1, 0.2, 0.3]
        await cached.embed("a small thing", "other-model")

        assert provider.embed.await_count == 2

    @pytest.mark.asyncio
    async def test_disabled_cache_always_calls_provider(self, tmp_path: Path) -> None:
        provider = _provider()
        cached = CachedLLMProvider(provider, cache_dir=tmp_path, enabled=False)

        await cached.chat_completion(MESSAGES, model="m")
        await cached.chat_completion(MESSAGES, model="m")
        await cached.embed("x", "e")
        await cached.embed("x", "e")

        assert provider.chat_completion.await_count == 2
        assert provider.embed.await_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, tmp_path: Path) -> None:
        provider = _provider()
        cached = CachedLLMProvider(provider, cache_dir=tmp_path)
        await cached.chat_completion(MESSAGES, model="m")

        cached.clear_cache()
        await cached.chat_completion(MESSAGES, model="m")

        assert provider.chat_completion.await_count == 2

    def test_delegates_availability_and_type(self, tmp_path: Path) -> None:
        cached = CachedLLMProvider(_provider(), cache_dir=tmp_path)
        assert cached.is_available() is True
        assert cached.provider_type == LLMProviderType.OPENAI
