"""Stage 04: Merge - fold normalized readings into one record per (lemma, pos).

1. Reads every ``*.normalized_records.jsonl`` (sorted by file name)
2. Drops readings the reference lexicon already has and readings without glosses
3. Merges glosses, origins, sources and meta per (lemma, pos)
4. Writes ``out/merged_records.jsonl`` and a one-row manifest
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.lexicon.wordnet import ReferenceLexicon
from lexiconbuilder.models import MergedRecord, MergeManifestRow, NormalizedRecord, WordnetPOS, WordOrigin
from lexiconbuilder.pipeline.fetcher import utc_now_iso
from lexiconbuilder.pipeline.io import read_jsonl, write_jsonl
from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s03_normalize import OUTPUT_SUFFIX as NORMALIZED_SUFFIX
from lexiconbuilder.sources.common import is_single_word

logger = logging.getLogger(__name__)

STAGE_NAME = "04_merge"
MANIFEST_NAME = "manifest.04_merge.jsonl"
OUTPUT_NAME = "merged_records.jsonl"


@dataclass
class MergeResult:
    records: list[MergedRecord] = field(default_factory=list)
    excluded_existing: int = 0
    dropped_empty: int = 0


Merger = Callable[[Iterable[NormalizedRecord], str], MergeResult]


def default_merge(
    records: Iterable[NormalizedRecord], merged_at: str, lexicon: ReferenceLexicon | None = None
) -> MergeResult:
    """Group by (lemma, pos) and merge each group."""
    result = MergeResult()
    groups: dict[tuple[str, WordnetPOS], list[NormalizedRecord]] = {}
    for record in records:
        if lexicon is not None and lexicon.has_entry(record.lemma, record.pos):
            result.excluded_existing += 1
            continue
        if not record.glosses:
            logger.error(f"No glosses for {record.lemma}:{record.pos.value}")
            result.dropped_empty += 1
            continue
        groups.setdefault((record.lemma, record.pos), []).append(record)

    for (lemma, pos), group in groups.items():
        glosses = sorted({gloss for record in group for gloss in record.glosses})

        origins: dict[tuple[str, str, str], WordOrigin] = {}
        for record in group:
            for origin in record.origins:
                origins.setdefault(origin.key, origin)

        meta: dict[str, Any] = {"mergedAt": merged_at}
        for record in group:
            for key, value in record.meta.items():
                if key != "normalizedAt":
                    meta[key] = value

        result.records.append(
            MergedRecord(
                lemma=lemma,
                pos=pos,
                glosses=glosses,
                origins=list(origins.values()),
                sources=sorted({record.source for record in group}),
                meta=meta,
            )
        )

    one_word = sum(1 for r in result.records if len(r.glosses) == 1 and is_single_word(r.glosses[0]))
    logger.info(f"{one_word} records with a one-word gloss")
    logger.info(f"{len(result.records) - one_word} records with descriptive or multiple glosses")
    return result


@dataclass
class MergeStageConfig:
    normalize_dir: Path
    stage_dir: Path
    force: bool = False


@dataclass
class MergeOutput:
    output_path: Path
    skipped: bool = False
    row: MergeManifestRow | None = None


class MergeStage(PipelineStage[None, MergeOutput]):
    """Stage 04: Merge - cross-source consolidation."""

    def __init__(
        self,
        config: MergeStageConfig,
        lexicon: ReferenceLexicon | None = None,
        merger: Merger | None = None,
    ) -> None:
        self._config = config
        self._lexicon = lexicon
        self._merger = merger

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def execute(self, input_data: None = None) -> MergeOutput:
        config = self._config
        out_dir = config.stage_dir / "out"
        output_path = out_dir / OUTPUT_NAME
        manifest_path = config.stage_dir / MANIFEST_NAME

        if manifest_path.exists() and not config.force:
            logger.info("Merge manifest exists at %s, skipping (use --force to re-run)", manifest_path)
            return MergeOutput(output_path=output_path, skipped=True)

        input_dir = config.normalize_dir / "out"
        if not input_dir.is_dir():
            raise MissingArtifactError(input_dir, "normalize output directory")

        input_paths = sorted(input_dir.glob(f"*{NORMALIZED_SUFFIX}"))
        records: list[NormalizedRecord] = []
        for path in input_paths:
            for data in read_jsonl(path):
                try:
                    records.append(NormalizedRecord.model_validate(data))
                except ValidationError as e:
                    logger.warning("Skipping invalid normalized record in %s: %s", path.name, e)

        logger.info(f"Merging {len(records)} normalized records from {len(input_paths)} sources")
        merged_at = utc_now_iso()
        if self._merger is not None:
            result = self._merger(records, merged_at)
        else:
            result = default_merge(records, merged_at, self._lexicon)

        write_jsonl(output_path, (record.to_json() for record in result.records))
        row = MergeManifestRow(
            id="merged_records",
            input_paths=[str(p) for p in input_paths],
            output_path=str(output_path),
            records_in=len(records),
            records_out=len(result.records),
            excluded_existing=result.excluded_existing,
            dropped_empty=result.dropped_empty,
            merged_at=merged_at,
        )
        write_jsonl(manifest_path, [row.to_json()])
        logger.info(
            "Merge complete: %d records (%d already in lexicon, %d without glosses)",
            len(result.records),
            result.excluded_existing,
            result.dropped_empty,
        )
        return MergeOutput(output_path=output_path, row=row)
