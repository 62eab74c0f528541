"""Source adapters keyed by source name."""

from __future__ import annotations

from typing import TYPE_CHECKING

from lexiconbuilder.sources.anglish_moot import AnglishMootAdapter
from lexiconbuilder.sources.base import DEFAULT_MODEL, FetchRef, ParseInput, SourceAdapter
from lexiconbuilder.sources.hurlebatte import HurlebatteAdapter
from lexiconbuilder.sources.kaikki import KaikkiAdapter

if TYPE_CHECKING:
    from lexiconbuilder.llm.providers import LLMProvider

ADAPTERS: dict[str, type[SourceAdapter]] = {
    AnglishMootAdapter.name: AnglishMootAdapter,
    HurlebatteAdapter.name: HurlebatteAdapter,
    KaikkiAdapter.name: KaikkiAdapter,
}


def build_adapters(
    llm: LLMProvider | None = None,
    model: str = DEFAULT_MODEL,
    only: list[str] | None = None,
) -> dict[str, SourceAdapter]:
    """Instantiate adapters; ``only`` restricts to the named sources."""
    names = only or list(ADAPTERS)
    unknown = [n for n in names if n not in ADAPTERS]
    if unknown:
        raise ValueError(f"Unknown source(s): {', '.join(unknown)}")
    return {name: ADAPTERS[name](llm=llm, model=model) for name in names}


__all__ = [
    "ADAPTERS",
    "AnglishMootAdapter",
    "FetchRef",
    "HurlebatteAdapter",
    "KaikkiAdapter",
    "ParseInput",
    "SourceAdapter",
    "build_adapters",
]
