"""Synset definition embeddings.

``build_synset_embeddings`` embeds the first definition of every reference
synset and writes one JSON line per synset::

    {"id": "02086723-n", "pos": "n", "category": "animal", "headword": "dog", "embedding": [...]}

``load_synset_embeddings`` streams that file into a VectorIndex, tagging each
vector with its pos, category and headword.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.lexicon.wordnet import ReferenceLexicon, Synset
from lexiconbuilder.pipeline.io import read_jsonl
from lexiconbuilder.pipeline.scheduler import RateLimiter
from lexiconbuilder.vector_index import VectorIndex

if TYPE_CHECKING:
    from lexiconbuilder.llm.providers import LLMProvider

logger = logging.getLogger(__name__)


async def build_synset_embeddings(
    lexicon: ReferenceLexicon,
    llm: LLMProvider,
    out_path: Path,
    *,
    model: str,
    concurrency: int = 30,
    rate_per_minute: int | None = 4500,
) -> int:
    """Embed every synset with a definition; returns the number written.

    Synsets whose embedding fails are logged and left out.
    """
    limiter = RateLimiter(concurrency=concurrency, rate_per_minute=rate_per_minute)
    synsets = [s for s in lexicon.synsets.values() if s.definition]
    logger.info(f"Creating embeddings for {len(synsets)} synsets")

    out_path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with out_path.open("w", encoding="utf-8") as out:

        async def embed_one(synset: Synset) -> None:
            nonlocal written
            try:
                embedding = await llm.embed(synset.definition, model)
            except Exception as e:
                logger.warning("Embedding failed for synset %s: %s", synset.id, e)
                return
            row = {
                "id": synset.id,
                "pos": synset.pos,
                "category": synset.category,
                "headword": synset.headword,
                "embedding": embedding,
            }
            out.write(json.dumps(row, ensure_ascii=False) + "\n")
            written += 1

        await asyncio.gather(*(limiter.schedule(lambda s=s: embed_one(s)) for s in synsets))

    logger.info(f"Wrote {written} synset embeddings to {out_path}")
    return written


def load_synset_embeddings(index: VectorIndex, path: Path, *, dim: int | None = None) -> int:
    if not path.is_file():
        raise MissingArtifactError(path, "synset embeddings")
    count = 0
    for row in read_jsonl(path):
        if count == 0:
            index.create_index(dim or len(row["embedding"]))
        index.upsert(
            row["id"],
            row["embedding"],
            {"pos": row.get("pos", ""), "category": row.get("category", ""), "headword": row.get("headword", "")},
        )
        count += 1
        if count % 10000 == 0:
            logger.info(f"Loaded {count} synset embeddings")
    logger.info(f"Loaded {count} synset embeddings from {path}")
    return count

