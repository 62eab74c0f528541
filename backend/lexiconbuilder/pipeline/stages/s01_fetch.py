"""Stage 01: Fetch - download every job of every source plan.

1. Receives one FetchPlan per source adapter
2. Runs jobs concurrently (bounded) with retries for transient failures
3. Stores each response content-addressed under ``raw/`` with a ``.meta.json`` sidecar
4. Appends one manifest row per job as soon as the job finishes

The manifest is append-only across runs; the parse stage picks the latest
successful row per request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from lexiconbuilder.models import FetchManifestRow, FetchPlan
from lexiconbuilder.pipeline.fetcher import DEFAULT_USER_AGENT, FetchOptions, fetch_job
from lexiconbuilder.pipeline.io import append_jsonl
from lexiconbuilder.pipeline.scheduler import RateLimiter
from lexiconbuilder.pipeline.stages.base import PipelineStage

if TYPE_CHECKING:
    from lexiconbuilder.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

STAGE_NAME = "01_fetch"
MANIFEST_NAME = "manifest.01_fetch.jsonl"


def fetch_manifest_path(stage_dir: Path) -> Path:
    return stage_dir / MANIFEST_NAME


@dataclass
class FetchInput:
    plans: list[FetchPlan]


@dataclass
class FetchOutput:
    manifest_path: Path
    rows: list[FetchManifestRow] = field(default_factory=list)

    @property
    def ok(self) -> int:
        return sum(1 for r in self.rows if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.rows if not r.ok)

    @property
    def cache_hits(self) -> int:
        return sum(1 for r in self.rows if r.cache_hit)


@dataclass
class FetchStageConfig:
    stage_dir: Path
    force: bool = False
    concurrency: int = 8
    timeout_s: float = 30.0
    retries: int = 4
    retry_base_delay_ms: int = 750
    user_agent: str = DEFAULT_USER_AGENT
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def make_http_client(user_agent: str = DEFAULT_USER_AGENT, timeout_s: float = 30.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout_s,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
    )


async def collect_plans(adapters: Iterable[SourceAdapter], client: httpx.AsyncClient) -> list[FetchPlan]:
    """Ask each adapter for its plan. A source whose plan fails is logged and left out."""
    plans: list[FetchPlan] = []
    for adapter in adapters:
        try:
            plan = await adapter.fetch_plan(client)
        except Exception as e:
            logger.error("Could not build fetch plan for %s: %s", adapter.name, e)
            continue
        logger.info(f"{adapter.name}: {len(plan.jobs)} jobs planned")
        plans.append(plan)
    return plans


class FetchStage(PipelineStage[FetchInput, FetchOutput]):
    """Stage 01: Fetch - content-addressed download of source artifacts."""

    def __init__(self, config: FetchStageConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def name(self) -> str:
        return STAGE_NAME

    async def execute(self, input_data: FetchInput) -> FetchOutput:
        config = self._config
        raw_dir = config.stage_dir / "raw"
        raw_dir.mkdir(parents=True, exist_ok=True)
        manifest_path = fetch_manifest_path(config.stage_dir)

        options = FetchOptions(
            raw_dir=raw_dir,
            force=config.force,
            timeout_s=config.timeout_s,
            retries=config.retries,
            retry_base_delay_ms=config.retry_base_delay_ms,
            user_agent=config.user_agent,
            sleep=config.sleep,
        )
        limiter = RateLimiter(concurrency=config.concurrency)
        output = FetchOutput(manifest_path=manifest_path)

        jobs = [job for plan in input_data.plans for job in plan.jobs]
        logger.info(f"Fetching {len(jobs)} jobs from {len(input_data.plans)} sources")

        owns_client = self._client is None
        client = self._client or make_http_client(config.user_agent, config.timeout_s)
        try:

            async def run(job):
                row = await fetch_job(client, job, options)
                append_jsonl(manifest_path, row.to_json())
                output.rows.append(row)
                return row

            await asyncio.gather(*(limiter.schedule(lambda job=job: run(job)) for job in jobs))
        finally:
            if owns_client:
                await client.aclose()

        logger.info(
            "Fetch complete: %d ok (%d cached), %d failed",
            output.ok,
            output.cache_hits,
            output.failed,
        )
        return output
