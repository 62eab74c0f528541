"""Structured extraction over an LLM provider.

Callers get an ExtractionResult back instead of an exception: provider
errors, empty answers, malformed JSON and validator rejections all become
``ExtractionResult(error=...)`` so that stages can fall back to degraded
output and keep going.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from lexiconbuilder.errors import ExtractionError
from lexiconbuilder.llm.providers import LLMProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ExtractionResult(Generic[T]):
    value: T | None = None
    error: ExtractionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def json_schema_format(name: str, schema: dict[str, Any]) -> dict[str, Any]:
    return {"type": "json_schema", "json_schema": {"name": name, "strict": True, "schema": schema}}


async def extract_structured(
    llm: LLMProvider,
    *,
    system: str,
    prompt: str,
    schema_name: str,
    schema: dict[str, Any],
    validate: Callable[[Any], T],
    model: str,
    temperature: float = 0.0,
) -> ExtractionResult[T]:
    """Ask for JSON matching ``schema`` and run ``validate`` on the parsed answer.

    ``validate`` returns the typed value or raises ``ValueError`` (pydantic's
    ``ValidationError`` included) to reject it.
    """
    messages = [{"role": "system", "content": system}, {"role": "user", "content": prompt}]
    try:
        response = await llm.chat_completion(
            messages,
            model=model,
            temperature=temperature,
            response_format=json_schema_format(schema_name, schema),
        )
    except Exception as e:
        logger.warning("%s: LLM request failed: %s", schema_name, e)
        return ExtractionResult(error=ExtractionError(f"{schema_name}: request failed: {e}"))

    if not response.content.strip():
        return ExtractionResult(error=ExtractionError(f"{schema_name}: empty response"))

    try:
        parsed = json.loads(response.content)
    except json.JSONDecodeError as e:
        logger.warning("%s: invalid JSON from LLM: %s", schema_name, e)
        return ExtractionResult(error=ExtractionError(f"{schema_name}: invalid JSON: {e}"))

    try:
        return ExtractionResult(value=validate(parsed))
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning("%s: rejected LLM output: %s", schema_name, e)
        return ExtractionResult(error=ExtractionError(f"{schema_name}: rejected: {e}"))


async def complete_text(
    llm: LLMProvider,
    *,
    system: str,
    prompt: str,
    model: str,
    temperature: float = 0.0,
) -> ExtractionResult[str]:
    """Plain-text completion with the same no-raise policy."""
    messages = [{"role": "system", "content": system}, {"role": "user", "content": prompt}]
    try:
        response = await llm.chat_completion(messages, model=model, temperature=temperature)
    except Exception as e:
        logger.warning("LLM request failed: %s", e)
        return ExtractionResult(error=ExtractionError(f"request failed: {e}"))
    text = response.content.strip()
    if not text:
        return ExtractionResult(error=ExtractionError("empty response"))
    return ExtractionResult(value=text)
