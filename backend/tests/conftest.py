"""
Pytest configuration for backend tests.

Shared fixtures: scripted LLM providers, a tiny reference lexicon on disk and
helpers for seeding stage directories.
"""
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from lexiconbuilder.lexicon.wordnet import _load_cached
from lexiconbuilder.llm.providers import LLMProviderType, LLMResponse


def llm_response(content: str, model: str = "test-model") -> LLMResponse:
    return LLMResponse(content=content, model=model, input_tokens=10, output_tokens=5, total_tokens=15)


# --- LLM Fixtures ---
@pytest.fixture
def make_llm() -> Callable[..., MagicMock]:
    """Build a mock provider.

    ``replies`` is either a list of completion strings (returned in order) or
    a callable receiving the messages and returning a string. ``embeddings``
    maps text to a vector; unknown text raises KeyError.
    """

    def factory(
        replies: list[str] | Callable[[list[dict[str, str]]], str] | None = None,
        embeddings: dict[str, list[float]] | None = None,
    ) -> MagicMock:
        llm = MagicMock()
        llm.provider_type = LLMProviderType.OPENAI
        llm.is_available.return_value = True

        if callable(replies):
            async def chat(messages, model, *args, **kwargs):
                return llm_response(replies(messages), model)

            llm.chat_completion = AsyncMock(side_effect=chat)
        else:
            llm.chat_completion = AsyncMock(side_effect=[llm_response(r) for r in replies or []])

        vectors = embeddings or {}

        async def embed(text, model):
            return vectors[text]

        llm.embed = AsyncMock(side_effect=embed)
        return llm

    return factory


# --- Reference Lexicon Fixtures ---
@pytest.fixture
def wordnet_dir(tmp_path: Path) -> Path:
    """A two-entry reference lexicon with three synsets."""
    directory = tmp_path / "wordnet"
    directory.mkdir()
    (directory / "entries-b.json").write_text(
        json.dumps({"bar": {"v": {"sense": []}}, "dog": {"n": {"sense": []}}})
    )
    (directory / "noun.animal.json").write_text(
        json.dumps(
            {
                "02086723-n": {
                    "partOfSpeech": "n",
                    "definition": ["a member of the genus Canis"],
                    "members": ["dog", "domestic dog"],
                }
            }
        )
    )
    (directory / "noun.artifact.json").write_text(
        json.dumps(
            {
                "02788689-n": {
                    "partOfSpeech": "n",
                    "definition": ["a rigid piece of metal or wood"],
                    "members": ["bar"],
                }
            }
        )
    )
    (directory / "verb.motion.json").write_text(
        json.dumps(
            {
                "01835496-v": {
                    "partOfSpeech": "v",
                    "definition": ["change location; move"],
                    "members": ["travel", "go"],
                }
            }
        )
    )
    (directory / "README.md").write_text("not a lexicon file")
    yield directory
    _load_cached.cache_clear()


# --- Stage Directory Helpers ---
def write_jsonl_lines(path: Path, rows: list[dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(row) + "\n" for row in rows), encoding="utf-8")
    return path


def read_jsonl_lines(path: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture
def jsonl_io() -> tuple[Callable[..., Path], Callable[..., list[dict[str, Any]]]]:
    """(write, read) helpers for JSONL files."""
    return write_jsonl_lines, read_jsonl_lines
