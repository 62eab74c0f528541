"""Tests for the LLM provider abstraction layer."""
from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx

from lexiconbuilder.llm.cached_provider import CachedLLMProvider
from lexiconbuilder.llm.providers import (
    LLMProviderType,
    OllamaProvider,
    OpenAIProvider,
    get_llm_client,
)


class TestOpenAIProvider:
    def test_availability_follows_api_key(self) -> None:
        assert OpenAIProvider(api_key="test-key").is_available() is True
        assert OpenAIProvider(api_key=None).is_available() is False
        assert OpenAIProvider(api_key="k").provider_type == LLMProviderType.OPENAI

    @pytest.mark.asyncio
    @patch("openai.AsyncOpenAI")
    async def test_chat_completion(self, mock_openai_class: MagicMock) -> None:
        mock_client = MagicMock()
        mock_openai_class.return_value = mock_client
        mock_response = MagicMock()
        mock_response.choices = [MagicMock(message=MagicMock(content='{"origins": []}'))]
        mock_response.model = "gpt-4o-mini"
        mock_response.usage = MagicMock(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        mock_client.chat.completions.create = AsyncMock(return_value=mock_response)

        provider = OpenAIProvider(api_key="test-key")
        result = await provider.chat_completion(
            [{"role": "user", "content": "Hi"}],
            model="gpt-4o-mini",
            temperature=0.0,
            response_format={"type": "json_object"},
        )

        assert result.content == '{"origins": []}'
        assert (result.input_tokens, result.output_tokens, result.total_tokens) == (10, 5, 15)
        kwargs = mock_client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "max_tokens" not in kwargs

    @pytest.mark.asyncio
    @patch("openai.AsyncOpenAI")
    async def test_embed(self, mock_openai_class: MagicMock) -> None:
        mock_client = MagicMock()
        mock_openai_class.return_value = mock_client
        mock_client.embeddings.create = AsyncMock(return_value=MagicMock(data=[MagicMock(embedding=[0.5, 0.25])]))

        vector = await OpenAIProvider(api_key="test-key").embed("a small thing", "text-embedding-3-large")

        assert vector == [0.5, 0.25]
        mock_client.embeddings.create.assert_awaited_once_with(model="text-embedding-3-large", input=["a small thing"])


class TestOllamaProvider:
    def test_base_url_trailing_slash_is_stripped(self) -> None:
        provider = OllamaProvider(base_url="http://custom:8080/")
        assert provider._base_url == "http://custom:8080"
        assert provider.provider_type == LLMProviderType.OLLAMA

    @pytest.mark.asyncio
    @respx.mock
    async def test_chat_completion_maps_json_schema_to_format(self) -> None:
        route = respx.post("http://localhost:11434/api/chat").mock(
            return_value=httpx.Response(
                200,
                json={"model": "llama3.1", "message": {"content": "noun"}, "prompt_eval_count": 7, "eval_count": 2},
            )
        )
        schema = {"type": "object"}

        result = await OllamaProvider().chat_completion(
            [{"role": "user", "content": "Hi"}],
            model="llama3.1",
            max_tokens=50,
            response_format={"type": "json_schema", "json_schema": {"name": "x", "schema": schema}},
        )

        assert result.content == "noun"
        assert result.total_tokens == 9
        payload = json.loads(route.calls.last.request.content)
        assert payload["format"] == schema
        assert payload["options"]["num_predict"] == 50
        assert payload["stream"] is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed(self) -> None:
        respx.post("http://localhost:11434/api/embed").mock(
            return_value=httpx.Response(200, json={"embeddings": [[0.1, 0.2]]})
        )
        assert await OllamaProvider().embed("word", "nomic-embed-text") == [0.1, 0.2]

    @respx.mock
    def test_is_available_checks_tags_once(self) -> None:
        route = respx.get("http://localhost:11434/api/tags").mock(return_value=httpx.Response(200, json={}))
        provider = OllamaProvider()
        assert provider.is_available() is True
        assert provider.is_available() is True
        assert route.call_count == 1

    @respx.mock
    def test_unreachable_server_is_unavailable(self) -> None:
        respx.get("http://localhost:11434/api/tags").mock(side_effect=httpx.ConnectError("refused"))
        assert OllamaProvider().is_available() is False


class TestGetLLMClient:
    def test_openai_client_is_cached_by_default(self, tmp_path: Path) -> None:
        client = get_llm_client("openai", openai_api_key="test-key", cache_dir=tmp_path / "cache")
        assert isinstance(client, CachedLLMProvider)
        assert (tmp_path / "cache").is_dir()

    def test_cache_can_be_disabled(self) -> None:
        client = get_llm_client(LLMProviderType.OPENAI, openai_api_key="test-key", enable_cache=False)
        assert isinstance(client, OpenAIProvider)

    def test_missing_openai_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            get_llm_client("openai", enable_cache=False)

    def test_provider_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEXICONBUILDER_LLM_PROVIDER", "ollama")
        with patch.object(OllamaProvider, "is_available", return_value=True):
            client = get_llm_client(enable_cache=False)
        assert isinstance(client, OllamaProvider)

    def test_unavailable_ollama_raises(self) -> None:
        with patch.object(OllamaProvider, "is_available", return_value=False):
            with pytest.raises(ValueError, match="not available"):
                get_llm_client("ollama", enable_cache=False)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            get_llm_client("anthropic")
