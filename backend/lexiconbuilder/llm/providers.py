"""
LLM Provider Abstraction Layer

Supports OpenAI and Ollama behind one async interface for chat completions
and text embeddings. Provider selection is done via the
LEXICONBUILDER_LLM_PROVIDER environment variable.

Usage:
    from lexiconbuilder.llm import get_llm_client

    client = get_llm_client()
    response = await client.chat_completion(
        messages=[{"role": "user", "content": "Hello"}],
        model="gpt-4o-mini",
        temperature=0.0,
    )
    vector = await client.embed("a small thing", model="text-embedding-3-large")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx


class LLMProviderType(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass
class LLMResponse:
    """Unified response from any LLM provider."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    raw_response: Any = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model identifier
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response
            timeout: Request timeout in seconds
            response_format: OpenAI-style response format, e.g. a json_schema spec

        Returns:
            LLMResponse with content and usage info
        """
        pass

    @abstractmethod
    async def embed(self, text: str, model: str) -> list[float]:
        """Return the embedding vector of ``text``."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is configured and available."""
        pass

    @property
    @abstractmethod
    def provider_type(self) -> LLMProviderType:
        """Return the provider type."""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(self, api_key: str | None = None, base_url: str | None = None):
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=120.0,
                max_retries=2,
            )
        return self._client

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        client = self._get_client()

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "timeout": timeout,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if response_format:
            kwargs["response_format"] = response_format

        response = await client.chat.completions.create(**kwargs)

        content = response.choices[0].message.content or ""
        usage = response.usage

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            raw_response=response,
        )

    async def embed(self, text: str, model: str) -> list[float]:
        client = self._get_client()
        response = await client.embeddings.create(model=model, input=[text])
        return list(response.data[0].embedding)

    def is_available(self) -> bool:
        return bool(self._api_key)

    @property
    def provider_type(self) -> LLMProviderType:
        return LLMProviderType.OPENAI


class OllamaProvider(LLMProvider):
    """Ollama local API provider."""

    def __init__(self, base_url: str = "http://localhost:11434"):
        self._base_url = base_url.rstrip("/")
        self._available: bool | None = None

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        url = f"{self._base_url}/api/chat"

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
            },
        }
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens
        if response_format and response_format.get("type") == "json_schema":
            payload["format"] = response_format["json_schema"]["schema"]
        elif response_format and response_format.get("type") == "json_object":
            payload["format"] = "json"

        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()

        content = data.get("message", {}).get("content", "")

        # Ollama provides token counts in some versions
        prompt_eval_count = data.get("prompt_eval_count", 0)
        eval_count = data.get("eval_count", 0)

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            input_tokens=prompt_eval_count,
            output_tokens=eval_count,
            total_tokens=prompt_eval_count + eval_count,
            raw_response=data,
        )

    async def embed(self, text: str, model: str) -> list[float]:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(f"{self._base_url}/api/embed", json={"model": model, "input": text})
            response.raise_for_status()
            data = response.json()
        return list(data["embeddings"][0])

    def is_available(self) -> bool:
        if self._available is not None:
            return self._available

        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.get(f"{self._base_url}/api/tags")
                self._available = response.status_code == 200
        except (httpx.HTTPError, OSError):
            # Ollama server unavailable or network error
            self._available = False

        return self._available

    @property
    def provider_type(self) -> LLMProviderType:
        return LLMProviderType.OLLAMA


def get_llm_client(
    provider: LLMProviderType | str | None = None,
    *,
    openai_api_key: str | None = None,
    openai_base_url: str | None = None,
    ollama_base_url: str | None = None,
    enable_cache: bool = True,
    cache_dir: Path | None = None,
) -> LLMProvider:
    """
    Get an LLM client for the specified provider.

    Args:
        provider: Provider type (openai, ollama) or None to read it from the environment
        openai_api_key: OpenAI API key
        openai_base_url: OpenAI base URL (for Azure or custom endpoints)
        ollama_base_url: Ollama server URL
        enable_cache: Whether to enable response caching (default: True)
        cache_dir: Custom cache directory (default: ~/.cache/lexiconbuilder/llm)

    Returns:
        Configured LLM provider (wrapped with caching if enabled)

    Raises:
        ValueError: If provider is not configured or unavailable
    """
    import os

    if provider is None:
        provider = os.environ.get("LEXICONBUILDER_LLM_PROVIDER", "openai")

    if isinstance(provider, str):
        provider = LLMProviderType(provider.lower())

    client: LLMProvider

    if provider == LLMProviderType.OPENAI:
        api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
        base_url = openai_base_url or os.environ.get("OPENAI_BASE_URL")
        client = OpenAIProvider(api_key=api_key, base_url=base_url)
        if not client.is_available():
            raise ValueError("OpenAI provider requires OPENAI_API_KEY")

    elif provider == LLMProviderType.OLLAMA:
        base_url = ollama_base_url or os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
        client = OllamaProvider(base_url=base_url)
        if not client.is_available():
            raise ValueError(f"Ollama server not available at {base_url}")

    else:
        raise ValueError(f"Unknown provider: {provider}")

    if enable_cache:
        from lexiconbuilder.llm.cached_provider import CachedLLMProvider
        client = CachedLLMProvider(client, cache_dir=cache_dir, enabled=True)

    return client
