"""Stage 02: Parse - turn fetched artifacts into source records.

1. Reads the (multi-run) fetch manifest
2. Keeps the latest successful row per ``source:requestId``
3. Hands each artifact to its source's parser, as content or as a stream
4. Writes ``out/<source>.source_records.jsonl`` and one manifest row per artifact

Unusable items inside an artifact are skipped and counted on its manifest
row. An artifact that cannot be decoded or validated at all is recorded with
its error and the stage moves on to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.models import FetchManifestRow, ParseManifestRow
from lexiconbuilder.pipeline.fetcher import utc_now_iso
from lexiconbuilder.pipeline.io import append_jsonl, read_jsonl, reset_file
from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s01_fetch import fetch_manifest_path
from lexiconbuilder.sources.base import FetchRef, ParseInput, SourceAdapter, iterate_records

logger = logging.getLogger(__name__)

STAGE_NAME = "02_parse"
MANIFEST_NAME = "manifest.02_parse.jsonl"
OUTPUT_SUFFIX = ".source_records.jsonl"


def source_records_path(out_dir: Path, source: str) -> Path:
    return out_dir / f"{source}{OUTPUT_SUFFIX}"


def _parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def select_latest(rows: Iterable[FetchManifestRow]) -> list[FetchManifestRow]:
    """Latest successful row per ``source:requestId``.

    Rows are compared by ``fetchedAt`` when both timestamps parse; otherwise
    the row appearing later in the manifest wins.
    """
    latest: dict[str, FetchManifestRow] = {}
    for row in rows:
        if not row.ok or not row.raw_path:
            continue
        key = f"{row.source}:{row.request_id}"
        current = latest.get(key)
        if current is None:
            latest[key] = row
            continue
        if _is_newer_or_same(row.fetched_at, current.fetched_at):
            latest[key] = row
    return list(latest.values())


def _is_newer_or_same(candidate: str, current: str) -> bool:
    new_ts = _parse_timestamp(candidate)
    cur_ts = _parse_timestamp(current)
    if new_ts is None or cur_ts is None:
        return True
    try:
        return new_ts >= cur_ts
    except TypeError:
        # naive vs aware timestamps
        return True


@dataclass
class ParseStageConfig:
    fetch_dir: Path
    stage_dir: Path


@dataclass
class ParseOutput:
    out_dir: Path
    manifest_path: Path
    records_by_source: dict[str, int] = field(default_factory=dict)
    skipped_sources: set[str] = field(default_factory=set)
    skipped_items: int = 0
    failed_artifacts: int = 0


class ParseStage(PipelineStage[None, ParseOutput]):
    """Stage 02: Parse - raw artifacts to source records."""

    def __init__(self, config: ParseStageConfig, adapters: Mapping[str, SourceAdapter]) -> None:
        self._config = config
        self._adapters = adapters

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def execute(self, input_data: None = None) -> ParseOutput:
        fetch_manifest = fetch_manifest_path(self._config.fetch_dir)
        if not fetch_manifest.exists():
            raise MissingArtifactError(fetch_manifest, "fetch manifest")

        out_dir = self._config.stage_dir / "out"
        manifest_path = self._config.stage_dir / MANIFEST_NAME
        out_dir.mkdir(parents=True, exist_ok=True)
        for stale in out_dir.glob(f"*{OUTPUT_SUFFIX}"):
            stale.unlink()
        reset_file(manifest_path)

        rows = select_latest(FetchManifestRow.model_validate(r) for r in read_jsonl(fetch_manifest))
        output = ParseOutput(out_dir=out_dir, manifest_path=manifest_path)

        for row in rows:
            adapter = self._adapters.get(row.source)
            if adapter is None:
                if row.source not in output.skipped_sources:
                    logger.warning("No parser registered for source %s, skipping", row.source)
                output.skipped_sources.add(row.source)
                continue

            raw_path = Path(row.raw_path or "")
            if not raw_path.is_file():
                raise MissingArtifactError(raw_path, "raw artifact")

            output_path = source_records_path(out_dir, row.source)
            count, skipped, error = await self._parse_artifact(adapter, row, raw_path, output_path)
            if error is not None:
                output.failed_artifacts += 1
            output.records_by_source[row.source] = output.records_by_source.get(row.source, 0) + count
            output.skipped_items += skipped

            append_jsonl(
                manifest_path,
                ParseManifestRow(
                    id=f"{row.source}:{row.request_id}",
                    source=row.source,
                    input_fetch_id=row.id,
                    input_raw_path=str(raw_path),
                    output_path=str(output_path),
                    records=count,
                    skipped=skipped,
                    error=error,
                    parsed_at=utc_now_iso(),
                ).to_json(),
            )
            if error is None:
                logger.info(f"{row.source}: parsed {count} records from {raw_path.name} ({skipped} skipped)")

        return output

    async def _parse_artifact(
        self, adapter: SourceAdapter, row: FetchManifestRow, raw_path: Path, output_path: Path
    ) -> tuple[int, int, str | None]:
        """Write the artifact's records; returns (records written, items skipped, error)."""
        ref = FetchRef(id=row.id, url=row.url, fetched_at=row.fetched_at)
        parse_input = ParseInput(fetch=ref, job_meta=dict(row.job_meta or {}))
        count = 0
        with output_path.open("a", encoding="utf-8") as out:
            try:
                if row.stream:
                    with raw_path.open("rb") as raw:
                        parse_input.stream = _decoded_lines(raw, parse_input, row.source)
                        async for record in iterate_records(adapter.parse(parse_input)):
                            out.write(record.model_dump_json(by_alias=True) + "\n")
                            count += 1
                else:
                    parse_input.content = raw_path.read_text(encoding="utf-8")
                    async for record in iterate_records(adapter.parse(parse_input)):
                        out.write(record.model_dump_json(by_alias=True) + "\n")
                        count += 1
            except ValueError as e:
                # Undecodable content or records the adapter could not validate.
                logger.error(f"{row.source}: failed to parse {raw_path.name} after {count} records: {e}")
                return count, parse_input.skipped, str(e)
        return count, parse_input.skipped, None


def _decoded_lines(raw: BinaryIO, parse_input: ParseInput, source: str) -> Iterator[str]:
    """UTF-8 lines of ``raw``; an undecodable line is skipped and yields a blank."""
    for line_no, line in enumerate(raw, start=1):
        try:
            yield line.decode("utf-8")
        except UnicodeDecodeError as e:
            parse_input.skip(source, f"undecodable line {line_no}: {e}")
            yield ""
