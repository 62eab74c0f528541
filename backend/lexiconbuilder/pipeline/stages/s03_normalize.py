"""Stage 03: Normalize - map source records to NormalizedRecords.

Each source's records are normalized concurrently (bounded by a RateLimiter)
and written back in input order. The manifest is written only when every
source is done, so its presence marks a completed run and later runs skip
unless forced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.models import NormalizedRecord, NormalizeManifestRow, SourceRecord
from lexiconbuilder.pipeline.fetcher import utc_now_iso
from lexiconbuilder.pipeline.io import read_jsonl, write_jsonl
from lexiconbuilder.pipeline.scheduler import RateLimiter
from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s02_parse import OUTPUT_SUFFIX as SOURCE_RECORDS_SUFFIX
from lexiconbuilder.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

STAGE_NAME = "03_normalize"
MANIFEST_NAME = "manifest.03_normalize.jsonl"
OUTPUT_SUFFIX = ".normalized_records.jsonl"


@dataclass
class NormalizeStageConfig:
    parse_dir: Path
    stage_dir: Path
    force: bool = False
    concurrency: int = 10


@dataclass
class NormalizeOutput:
    out_dir: Path
    skipped: bool = False
    rows: list[NormalizeManifestRow] = field(default_factory=list)


class NormalizeStage(PipelineStage[None, NormalizeOutput]):
    """Stage 03: Normalize - per-source record normalization."""

    def __init__(self, config: NormalizeStageConfig, adapters: Mapping[str, SourceAdapter]) -> None:
        self._config = config
        self._adapters = adapters

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def execute(self, input_data: None = None) -> NormalizeOutput:
        config = self._config
        out_dir = config.stage_dir / "out"
        manifest_path = config.stage_dir / MANIFEST_NAME

        if manifest_path.exists() and not config.force:
            logger.info("Normalize manifest exists at %s, skipping (use --force to re-run)", manifest_path)
            return NormalizeOutput(out_dir=out_dir, skipped=True)

        input_dir = config.parse_dir / "out"
        if not input_dir.is_dir():
            raise MissingArtifactError(input_dir, "parse output directory")

        out_dir.mkdir(parents=True, exist_ok=True)
        for stale in out_dir.glob(f"*{OUTPUT_SUFFIX}"):
            stale.unlink()

        output = NormalizeOutput(out_dir=out_dir)
        for input_path in sorted(input_dir.glob(f"*{SOURCE_RECORDS_SUFFIX}")):
            source = input_path.name[: -len(SOURCE_RECORDS_SUFFIX)]
            adapter = self._adapters.get(source)
            if adapter is None:
                logger.warning("No normalizer registered for source %s, skipping", source)
                continue
            output.rows.append(await self._normalize_source(adapter, source, input_path, out_dir))

        write_jsonl(manifest_path, (row.to_json() for row in output.rows))
        return output

    async def _normalize_source(
        self, adapter: SourceAdapter, source: str, input_path: Path, out_dir: Path
    ) -> NormalizeManifestRow:
        records: list[SourceRecord] = []
        failed = 0
        for data in read_jsonl(input_path):
            try:
                records.append(adapter.load_record(data))
            except ValidationError as e:
                failed += 1
                logger.warning("%s: invalid source record %s: %s", source, data.get("rawId"), e)

        normalized_at = utc_now_iso()
        limiter = RateLimiter(concurrency=self._config.concurrency)

        async def normalize_one(index: int, record: SourceRecord) -> tuple[int, list[NormalizedRecord] | None]:
            try:
                return index, await adapter.normalize(record, normalized_at)
            except Exception as e:
                logger.warning("%s: normalize failed for %s: %s", source, record.raw_id, e)
                return index, None

        results = await asyncio.gather(
            *(limiter.schedule(lambda i=i, r=r: normalize_one(i, r)) for i, r in enumerate(records))
        )
        results.sort(key=lambda pair: pair[0])

        out: list[NormalizedRecord] = []
        for _, normalized in results:
            if normalized is None:
                failed += 1
                continue
            out.extend(normalized)

        output_path = out_dir / f"{source}{OUTPUT_SUFFIX}"
        write_jsonl(output_path, (rec.to_json() for rec in out))
        logger.info(f"{source}: normalized {len(records)} records into {len(out)} ({failed} failed)")

        return NormalizeManifestRow(
            id=source,
            source=source,
            input_path=str(input_path),
            output_path=str(output_path),
            records_in=len(records),
            records_out=len(out),
            failed=failed,
            normalized_at=normalized_at,
        )
