"""Stage 06: Map - link each gloss to its closest reference synset.

For each post-normalized record:
1. Insert the lemma (and its origins) into the relational sink
2. Embed each gloss and search the synset index (same part of speech)
3. Rescore the candidates (min-max normalized distance, minus a bonus for a
   matching category) and insert a sense for the best one

Per-record failures are logged and counted; the stage keeps going. An audit
line per inserted sense goes to ``out/mapped_senses.jsonl``; a non-empty
``out/`` makes later runs skip unless forced.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

import anyio

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.models import Gloss, MapManifestRow, PostNormalizedRecord, WordnetPOS
from lexiconbuilder.pipeline.fetcher import utc_now_iso
from lexiconbuilder.pipeline.io import append_jsonl, dir_has_entries, read_jsonl, write_jsonl
from lexiconbuilder.pipeline.retry import with_retries
from lexiconbuilder.pipeline.scheduler import RateLimiter
from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s05_normalize_post import OUTPUT_NAME as POST_NAME
from lexiconbuilder.vector_index import VectorHit, VectorIndex

if TYPE_CHECKING:
    from lexiconbuilder.db import SqliteSink
    from lexiconbuilder.llm.providers import LLMProvider

logger = logging.getLogger(__name__)

STAGE_NAME = "06_map"
MANIFEST_NAME = "manifest.06_map.jsonl"
AUDIT_NAME = "mapped_senses.jsonl"

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"
CATEGORY_BONUS = 0.10
BONUS_POS = {WordnetPOS.NOUN.value, WordnetPOS.ADJECTIVE.value}


@dataclass(frozen=True)
class RankedCandidate:
    hit: VectorHit
    score: float
    category_match: bool


def rank_candidates(
    hits: list[VectorHit], category: str | None, bonus: float = CATEGORY_BONUS
) -> list[RankedCandidate]:
    """Rescore kNN hits, best (lowest score) first.

    Distances are min-max normalized over ``hits`` (a zero range divides by
    1). Noun and adjective candidates whose category equals ``category`` get
    ``bonus`` subtracted. Ties keep the index order.
    """
    if not hits:
        return []
    distances = [hit.distance for hit in hits]
    low = min(distances)
    spread = (max(distances) - low) or 1.0

    ranked: list[RankedCandidate] = []
    for hit in hits:
        score = (hit.distance - low) / spread
        match = bool(category) and hit.attrs.get("pos") in BONUS_POS and hit.attrs.get("category") == category
        if match:
            score -= bonus
        ranked.append(RankedCandidate(hit=hit, score=score, category_match=match))
    ranked.sort(key=lambda c: c.score)
    return ranked


@dataclass
class MapStageConfig:
    post_dir: Path
    stage_dir: Path
    force: bool = False
    concurrency: int = 100
    rate_per_minute: int | None = 5000
    k: int = 20
    category_bonus: float = CATEGORY_BONUS
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embed_retries: int = 3
    embed_retry_base_delay_ms: int = 1000


@dataclass
class MapOutput:
    out_dir: Path
    skipped: bool = False
    row: MapManifestRow | None = None


class MapStage(PipelineStage[None, MapOutput]):
    """Stage 06: Map - gloss to synset linking."""

    def __init__(
        self,
        config: MapStageConfig,
        llm: LLMProvider,
        index: VectorIndex,
        sink: SqliteSink,
    ) -> None:
        self._config = config
        self._llm = llm
        self._index = index
        self._sink = sink

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def _embed(self, text: str) -> list[float]:
        return await with_retries(
            lambda: self._llm.embed(text, self._config.embedding_model),
            retries=self._config.embed_retries,
            base_delay_ms=self._config.embed_retry_base_delay_ms,
            retry_on=lambda _e: True,
            label=f"embed {text[:40]!r}",
        )

    async def map_gloss(self, gloss: Gloss, pos: WordnetPOS) -> RankedCandidate | None:
        vector = await self._embed(gloss.text)
        hits = self._index.knn_search(vector, {"pos": pos.value}, self._config.k)
        ranked = rank_candidates(hits, gloss.category, self._config.category_bonus)
        return ranked[0] if ranked else None

    async def map_record(self, record: PostNormalizedRecord, audit_path: Path) -> tuple[int, int]:
        """Insert one record; returns (senses inserted, glosses without a candidate)."""
        lemma_id = await anyio.to_thread.run_sync(
            partial(self._sink.insert_lemma, record.lemma, record.pos.value, sources=record.sources)
        )
        for origin in record.origins:
            await anyio.to_thread.run_sync(
                self._sink.insert_origin, lemma_id, origin.lang.value, origin.kind.value, origin.form
            )

        senses = unmatched = 0
        seen: set[int] = set()
        for gloss in record.glosses:
            best = await self.map_gloss(gloss, record.pos)
            if best is None:
                unmatched += 1
                logger.warning("No synset candidates for %s (%s): %s", record.lemma, record.pos.value, gloss.text)
                continue
            sense_id = await anyio.to_thread.run_sync(
                partial(
                    self._sink.insert_sense,
                    lemma_id,
                    best.hit.key,
                    gloss=gloss.text,
                    category=gloss.category,
                    score=best.score,
                )
            )
            if sense_id in seen:
                continue
            seen.add(sense_id)
            senses += 1
            headword = best.hit.attrs.get("headword", "")
            logger.debug(f"Inserted sense {record.lemma} ({record.pos.value}) -> {headword}")
            append_jsonl(audit_path, _audit_row(record, gloss, best, lemma_id, sense_id))
        return senses, unmatched

    async def execute(self, input_data: None = None) -> MapOutput:
        config = self._config
        out_dir = config.stage_dir / "out"
        manifest_path = config.stage_dir / MANIFEST_NAME

        if dir_has_entries(out_dir) and not config.force:
            logger.info("Map output exists at %s, skipping (use --force to re-run)", out_dir)
            return MapOutput(out_dir=out_dir, skipped=True)

        input_path = config.post_dir / "out" / POST_NAME
        if not input_path.is_file():
            raise MissingArtifactError(input_path, "post-normalized records")

        out_dir.mkdir(parents=True, exist_ok=True)
        audit_path = out_dir / AUDIT_NAME
        audit_path.write_text("", encoding="utf-8")

        records = [PostNormalizedRecord.model_validate(data) for data in read_jsonl(input_path)]
        logger.info(f"Mapping {len(records)} records against {len(self._index)} synsets")

        limiter = RateLimiter(concurrency=config.concurrency, rate_per_minute=config.rate_per_minute)
        totals = {"lemmas": 0, "senses": 0, "unmatched": 0, "failed": 0}

        async def process(record: PostNormalizedRecord) -> None:
            try:
                senses, unmatched = await self.map_record(record, audit_path)
            except Exception as e:
                totals["failed"] += 1
                logger.error("Map failed for %s (%s): %s", record.lemma, record.pos.value, e)
                return
            totals["lemmas"] += 1
            totals["senses"] += senses
            totals["unmatched"] += unmatched

        await asyncio.gather(*(limiter.schedule(lambda r=r: process(r)) for r in records))

        row = MapManifestRow(
            id=f"map:{utc_now_iso()}",
            input_path=str(input_path),
            output_path=str(audit_path),
            records_in=len(records),
            lemmas=totals["lemmas"],
            senses=totals["senses"],
            unmatched=totals["unmatched"],
            failed=totals["failed"],
            mapped_at=utc_now_iso(),
        )
        write_jsonl(manifest_path, [row.to_json()])
        logger.info(
            "Map complete: %d lemmas, %d senses, %d unmatched glosses, %d failed records",
            totals["lemmas"],
            totals["senses"],
            totals["unmatched"],
            totals["failed"],
        )
        return MapOutput(out_dir=out_dir, row=row)


def _audit_row(
    record: PostNormalizedRecord, gloss: Gloss, best: RankedCandidate, lemma_id: int, sense_id: int
) -> dict[str, Any]:
    return {
        "lemma": record.lemma,
        "pos": record.pos.value,
        "gloss": gloss.text,
        "category": gloss.category,
        "synsetId": best.hit.key,
        "headword": best.hit.attrs.get("headword"),
        "score": round(best.score, 6),
        "categoryMatch": best.category_match,
        "lemmaId": lemma_id,
        "senseId": sense_id,
    }
