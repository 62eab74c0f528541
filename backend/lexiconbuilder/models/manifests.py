"""Fetch jobs and per-stage manifest rows.

Manifest rows are append-only JSONL lines; optional fields that are unset are
omitted from the serialized form.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FetchKind = Literal["html", "json", "jsonl", "text", "csv"]

KIND_EXTENSIONS: dict[str, str] = {
    "html": ".html",
    "json": ".json",
    "jsonl": ".jsonl",
    "text": ".txt",
    "csv": ".csv",
}


class ManifestRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FetchJob(BaseModel):
    """A single HTTP request a source adapter wants performed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str
    kind: FetchKind
    url: str
    method: Literal["GET", "POST"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    stream: bool = False
    timeout_ms: int | None = Field(default=None, alias="timeoutMs")
    meta: dict[str, Any] = Field(default_factory=dict)


class FetchPlan(BaseModel):
    source: str
    jobs: list[FetchJob] = Field(default_factory=list)


class FetchManifestRow(ManifestRow):
    id: str
    request_id: str = Field(alias="requestId")
    source: str
    kind: FetchKind
    url: str
    ok: bool
    status: int | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    bytes: int | None = None
    error: str | None = None
    fetched_at: str = Field(alias="fetchedAt")
    cache_hit: bool | None = Field(default=None, alias="cacheHit")
    stream: bool | None = None
    raw_path: str | None = Field(default=None, alias="rawPath")
    job_meta: dict[str, Any] | None = Field(default=None, alias="jobMeta")


class FetchRequestInfo(BaseModel):
    method: str
    headers: dict[str, str] = Field(default_factory=dict)


class FetchMetadata(ManifestRow):
    """Sidecar ``.meta.json`` written next to each raw artifact."""

    id: str
    request_id: str = Field(alias="requestId")
    source: str
    kind: FetchKind
    url: str
    status: int
    content_type: str | None = Field(default=None, alias="contentType")
    bytes: int
    fetched_at: str = Field(alias="fetchedAt")
    elapsed_ms: int = Field(alias="elapsedMs")
    request: FetchRequestInfo


class ParseManifestRow(ManifestRow):
    id: str
    source: str
    input_fetch_id: str = Field(alias="inputFetchId")
    input_raw_path: str = Field(alias="inputRawPath")
    output_path: str = Field(alias="outputPath")
    records: int
    skipped: int = 0
    error: str | None = None
    parsed_at: str = Field(alias="parsedAt")


class NormalizeManifestRow(ManifestRow):
    id: str
    source: str
    input_path: str = Field(alias="inputPath")
    output_path: str = Field(alias="outputPath")
    records_in: int = Field(alias="recordsIn")
    records_out: int = Field(alias="recordsOut")
    failed: int = 0
    normalized_at: str = Field(alias="normalizedAt")


class MergeManifestRow(ManifestRow):
    id: str
    input_paths: list[str] = Field(alias="inputPaths")
    output_path: str = Field(alias="outputPath")
    records_in: int = Field(alias="recordsIn")
    records_out: int = Field(alias="recordsOut")
    excluded_existing: int = Field(alias="excludedExisting")
    dropped_empty: int = Field(alias="droppedEmpty")
    merged_at: str = Field(alias="mergedAt")


class PostNormalizeManifestRow(ManifestRow):
    id: str
    input_path: str = Field(alias="inputPath")
    output_path: str = Field(alias="outputPath")
    records_in: int = Field(alias="recordsIn")
    records_out: int = Field(alias="recordsOut")
    dedupe_fallbacks: int = Field(alias="dedupeFallbacks")
    uncategorized: int
    normalized_at: str = Field(alias="normalizedAt")


class MapManifestRow(ManifestRow):
    id: str
    input_path: str = Field(alias="inputPath")
    output_path: str = Field(alias="outputPath")
    records_in: int = Field(alias="recordsIn")
    lemmas: int
    senses: int
    unmatched: int
    failed: int
    mapped_at: str = Field(alias="mappedAt")
