"""Stage 05: NormalizePost - LLM cleanup of merged glosses.

For each merged record:
1. Deduplicate its glosses into distinct senses with synonyms (LLM, structured)
2. For nouns and verbs, assign each sense one category from the closed vocabulary
3. Write the record as soon as it is done (output order is completion order)

LLM failures degrade the record instead of dropping it: a failed dedupe keeps
every gloss as its own sense, a failed or invalid category stays null.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.lexicon.wordnet import categories_for, match_category
from lexiconbuilder.llm.extraction import complete_text, extract_structured
from lexiconbuilder.models import Gloss, MergedRecord, PostNormalizedRecord, PostNormalizeManifestRow, WordnetPOS
from lexiconbuilder.pipeline.fetcher import utc_now_iso
from lexiconbuilder.pipeline.io import read_jsonl, write_jsonl
from lexiconbuilder.pipeline.scheduler import RateLimiter
from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s04_merge import OUTPUT_NAME as MERGED_NAME
from lexiconbuilder.sources.common import readable_pos

if TYPE_CHECKING:
    from lexiconbuilder.llm.providers import LLMProvider

logger = logging.getLogger(__name__)

STAGE_NAME = "05_normalize_post"
MANIFEST_NAME = "manifest.05_normalize_post.jsonl"
OUTPUT_NAME = "normalized_post_records.jsonl"

DEFAULT_MODEL = "gpt-4o"

CATEGORIZED_POS = (WordnetPOS.NOUN, WordnetPOS.VERB)

DEDUPE_SYSTEM_PROMPT = """You deduplicate dictionary glosses for a single Anglish lemma and part of speech.

Goal:
- Identify the distinct senses expressed by the glosses.
- Merge glosses only if they express the same sense.
- Keep one short, clear, descriptive gloss per sense.
- Do NOT introduce new senses.
- Do NOT keep glosses that are nonsensical for the lemma.
- Rephrase single-word glosses so they become brief descriptive definitions.
- Provide synonyms for each sense:
  - Include any glosses that were merged into that sense.
  - Include standard English synonyms if present.
  - Do NOT hallucinate new meanings."""

DEDUPE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "glosses": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "The gloss text."},
                    "synonyms": {
                        "type": "array",
                        "items": {
                            "type": "string",
                            "description": "A synonym that expresses the same sense as the gloss.",
                        },
                    },
                },
                "required": ["text", "synonyms"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["glosses"],
    "additionalProperties": False,
}

CATEGORIZE_SYSTEM_PROMPT = """You assign a dictionary gloss to a single WordNet filename category.

Valid categories:
{categories}

Given the gloss and part of speech, choose exactly ONE category from the list above that best matches the sense.

Rules:
- Answer with ONE category string from the list.
- Do NOT invent new categories.
- Do NOT add explanations or extra text."""


def _validate_deduped(parsed: Any) -> list[Gloss]:
    glosses: list[Gloss] = []
    for g in parsed["glosses"]:
        text = g.get("text")
        if not isinstance(text, str):
            raise ValueError(f"gloss text must be a string, got {type(text).__name__}")
        synonyms = g.get("synonyms") or []
        if not all(isinstance(s, str) for s in synonyms):
            raise ValueError("synonyms must be strings")
        glosses.append(Gloss(text=text.strip(), synonyms=list(synonyms)))
    glosses = [g for g in glosses if g.text]
    if not glosses:
        raise ValueError("no glosses returned")
    return glosses


@dataclass
class PostNormalizeStageConfig:
    merge_dir: Path
    stage_dir: Path
    force: bool = False
    concurrency: int = 100
    rate_per_minute: int | None = 1000
    model: str = DEFAULT_MODEL


@dataclass
class PostNormalizeOutput:
    output_path: Path
    skipped: bool = False
    row: PostNormalizeManifestRow | None = None


class PostNormalizeStage(PipelineStage[None, PostNormalizeOutput]):
    """Stage 05: NormalizePost - gloss deduplication and categorization."""

    def __init__(self, config: PostNormalizeStageConfig, llm: LLMProvider) -> None:
        self._config = config
        self._llm = llm

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def dedupe_glosses(self, lemma: str, pos: WordnetPOS, glosses: list[str]) -> list[Gloss] | None:
        prompt = "\n".join(f"{lemma} ({readable_pos(pos)}): {gloss}" for gloss in glosses)
        result = await extract_structured(
            self._llm,
            system=DEDUPE_SYSTEM_PROMPT,
            prompt=prompt,
            schema_name="deduplicated_glosses",
            schema=DEDUPE_SCHEMA,
            validate=_validate_deduped,
            model=self._config.model,
        )
        if not result.ok:
            return None
        deduped = result.value or []
        if len(deduped) != len(glosses):
            logger.debug(f"Deduplicated {len(glosses)} -> {len(deduped)} glosses for {lemma}:{pos.value}")
        return deduped

    async def categorize_gloss(self, gloss: str, pos: WordnetPOS) -> str | None:
        categories = categories_for(pos)
        result = await complete_text(
            self._llm,
            system=CATEGORIZE_SYSTEM_PROMPT.format(categories=", ".join(categories)),
            prompt=f"Gloss: {gloss}\nPOS: {readable_pos(pos)}",
            model=self._config.model,
        )
        if not result.ok:
            return None
        category = match_category(pos, result.value)
        if category is None:
            logger.warning("Invalid category %r for gloss %r", result.value, gloss)
        return category

    async def normalize_record(self, record: MergedRecord, normalized_at: str) -> tuple[PostNormalizedRecord, bool]:
        """Returns the record and whether the dedupe fell back to the raw glosses."""
        deduped = await self.dedupe_glosses(record.lemma, record.pos, record.glosses)
        fallback = deduped is None
        glosses = deduped if deduped is not None else [Gloss(text=g) for g in record.glosses]

        if record.pos in CATEGORIZED_POS:
            for gloss in glosses:
                gloss.category = await self.categorize_gloss(gloss.text, record.pos)

        return (
            PostNormalizedRecord(
                lemma=record.lemma,
                pos=record.pos,
                glosses=glosses,
                origins=record.origins,
                sources=record.sources,
                meta={"normalizedAt": normalized_at},
            ),
            fallback,
        )

    async def execute(self, input_data: None = None) -> PostNormalizeOutput:
        config = self._config
        output_path = config.stage_dir / "out" / OUTPUT_NAME
        manifest_path = config.stage_dir / MANIFEST_NAME

        if manifest_path.exists() and not config.force:
            logger.info("Post-normalize manifest exists at %s, skipping (use --force to re-run)", manifest_path)
            return PostNormalizeOutput(output_path=output_path, skipped=True)

        input_path = config.merge_dir / "out" / MERGED_NAME
        if not input_path.is_file():
            raise MissingArtifactError(input_path, "merged records")

        records: list[MergedRecord] = []
        for data in read_jsonl(input_path):
            try:
                records.append(MergedRecord.model_validate(data))
            except ValidationError as e:
                logger.warning("Skipping invalid merged record: %s", e)

        logger.info(f"Post-normalizing {len(records)} merged records")
        normalized_at = utc_now_iso()
        limiter = RateLimiter(concurrency=config.concurrency, rate_per_minute=config.rate_per_minute)
        counts = {"out": 0, "fallbacks": 0, "uncategorized": 0, "failed": 0}

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as out:

            async def process(record: MergedRecord) -> None:
                try:
                    normalized, fallback = await self.normalize_record(record, normalized_at)
                except Exception as e:
                    counts["failed"] += 1
                    logger.error("Post-normalize failed for %s:%s: %s", record.lemma, record.pos.value, e)
                    return
                out.write(normalized.model_dump_json(by_alias=True) + "\n")
                counts["out"] += 1
                counts["fallbacks"] += int(fallback)
                if record.pos in CATEGORIZED_POS:
                    counts["uncategorized"] += sum(1 for g in normalized.glosses if g.category is None)

            await asyncio.gather(*(limiter.schedule(lambda r=r: process(r)) for r in records))

        row = PostNormalizeManifestRow(
            id=f"normalize_post:{normalized_at}",
            input_path=str(input_path),
            output_path=str(output_path),
            records_in=len(records),
            records_out=counts["out"],
            dedupe_fallbacks=counts["fallbacks"],
            uncategorized=counts["uncategorized"],
            normalized_at=normalized_at,
        )
        write_jsonl(manifest_path, [row.to_json()])
        logger.info(
            "Post-normalize complete: %d/%d records (%d dedupe fallbacks, %d uncategorized glosses)",
            counts["out"],
            len(records),
            counts["fallbacks"],
            counts["uncategorized"],
        )
        return PostNormalizeOutput(output_path=output_path, row=row)
