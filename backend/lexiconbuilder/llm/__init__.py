"""LLM providers, response caching and structured extraction."""

from lexiconbuilder.llm.extraction import ExtractionResult, complete_text, extract_structured
from lexiconbuilder.llm.providers import (
    LLMProvider,
    LLMProviderType,
    LLMResponse,
    OllamaProvider,
    OpenAIProvider,
    get_llm_client,
)

__all__ = [
    "ExtractionResult",
    "LLMProvider",
    "LLMProviderType",
    "LLMResponse",
    "OllamaProvider",
    "OpenAIProvider",
    "complete_text",
    "extract_structured",
    "get_llm_client",
]
