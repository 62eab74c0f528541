"""
Cached LLM Provider Wrapper.

Wraps any LLM provider with transparent caching of chat completions and
embeddings via LLMCache.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import anyio

from lexiconbuilder.llm.cache import LLMCache, compute_cache_key, compute_embedding_key
from lexiconbuilder.llm.providers import LLMProvider, LLMProviderType, LLMResponse


class CachedLLMProvider(LLMProvider):
    """
    LLM provider wrapper that adds transparent caching.

    Completions are keyed by messages, model, temperature and response
    format; embeddings by text and model.

    Usage:
        provider = OpenAIProvider(api_key="...")
        cached = CachedLLMProvider(provider, cache_dir=Path("./cache"))

        # First call hits API, second identical call is served from cache
        response1 = await cached.chat_completion(messages, model="gpt-4o-mini", temperature=0.0)
        response2 = await cached.chat_completion(messages, model="gpt-4o-mini", temperature=0.0)
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        cache_dir: Path | None = None,
        enabled: bool = True,
    ) -> None:
        self._provider = provider
        self._cache = LLMCache(cache_dir=cache_dir)
        self._enabled = enabled

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        if not self._enabled:
            return await self._provider.chat_completion(
                messages, model, temperature, max_tokens, timeout, response_format
            )

        cache_key = compute_cache_key(messages, model, temperature, response_format)

        cached = await anyio.to_thread.run_sync(self._cache.get, cache_key)
        if cached is not None:
            return self._dict_to_response(cached)

        response = await self._provider.chat_completion(
            messages, model, temperature, max_tokens, timeout, response_format
        )

        await anyio.to_thread.run_sync(self._cache.set, cache_key, self._response_to_dict(response))

        return response

    async def embed(self, text: str, model: str) -> list[float]:
        if not self._enabled:
            return await self._provider.embed(text, model)

        cache_key = compute_embedding_key(text, model)
        cached = await anyio.to_thread.run_sync(self._cache.get, cache_key)
        if cached is not None:
            return list(cached["embedding"])

        embedding = await self._provider.embed(text, model)
        await anyio.to_thread.run_sync(self._cache.set, cache_key, {"model": model, "embedding": embedding})
        return embedding

    def is_available(self) -> bool:
        """Delegate to underlying provider."""
        return self._provider.is_available()

    @property
    def provider_type(self) -> LLMProviderType:
        """Delegate to underlying provider."""
        return self._provider.provider_type

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _response_to_dict(response: LLMResponse) -> dict[str, Any]:
        return {
            "content": response.content,
            "model": response.model,
            "input_tokens": response.input_tokens,
            "output_tokens": response.output_tokens,
            "total_tokens": response.total_tokens,
        }

    @staticmethod
    def _dict_to_response(data: dict[str, Any]) -> LLMResponse:
        return LLMResponse(
            content=data["content"],
            model=data["model"],
            input_tokens=data["input_tokens"],
            output_tokens=data["output_tokens"],
            total_tokens=data.get("total_tokens", data["input_tokens"] + data["output_tokens"]),
        )
