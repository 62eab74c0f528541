from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


class LLMProviderEnum(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OLLAMA = "ollama"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEXICONBUILDER_", extra="ignore")

    repo_root: Path = Field(default_factory=_default_repo_root)
    data_dir: Path | None = None
    wordnet_dir: Path | None = None
    synset_embeddings_path: Path | None = None
    db_path: Path | None = None

    # LLM Provider Configuration
    llm_provider: LLMProviderEnum = LLMProviderEnum.OPENAI
    llm_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-large"
    llm_cache_enabled: bool = True
    llm_cache_dir: Path | None = None

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"

    # Stage 01: fetch
    fetch_concurrency: int = 8
    fetch_timeout_s: float = 30.0
    fetch_retries: int = 4
    fetch_retry_base_delay_ms: int = 750
    user_agent: str = "anglish-pipeline/0.1"

    # Stage 03: normalize
    normalize_concurrency: int = 10

    # Stage 05: normalize_post
    post_concurrency: int = 100
    post_rate_per_minute: int = 1000
    post_model: str = "gpt-4o"

    # Stage 06: map
    map_concurrency: int = 100
    map_rate_per_minute: int = 5000
    map_k: int = 20
    map_category_bonus: float = 0.10
    map_embed_retries: int = 3

    def get_default_model_for_provider(self) -> str:
        """Get the default completion model for the configured provider."""
        defaults = {
            LLMProviderEnum.OPENAI: "gpt-4o-mini",
            LLMProviderEnum.OLLAMA: "llama3.1",
        }
        return defaults.get(self.llm_provider, "gpt-4o-mini")

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or (self.repo_root / "data")

    @property
    def resolved_wordnet_dir(self) -> Path:
        return self.wordnet_dir or (self.resolved_data_dir / "wordnet")

    @property
    def resolved_synset_embeddings_path(self) -> Path:
        return self.synset_embeddings_path or (self.resolved_data_dir / "wordnet" / "synset_embeddings.jsonl")

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or (self.resolved_data_dir / "index" / "lexicon.sqlite3")

    @property
    def resolved_llm_cache_dir(self) -> Path:
        return self.llm_cache_dir or (self.resolved_data_dir / "cache" / "llm")

    def stage_dir(self, stage: str) -> Path:
        """Directory of one stage, e.g. ``stage_dir("01_fetch")``."""
        return self.resolved_data_dir / stage

