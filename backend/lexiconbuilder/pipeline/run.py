"""Stage runners: build each stage's dependencies from Settings and execute it.

External clients (HTTP, LLM, vector index, relational sink) are created here
once per run and handed to the stages explicitly.
"""

from __future__ import annotations

import logging
from typing import Any

from lexiconbuilder.db import SqliteSink
from lexiconbuilder.lexicon.embeddings import build_synset_embeddings, load_synset_embeddings
from lexiconbuilder.lexicon.wordnet import ReferenceLexicon
from lexiconbuilder.llm.providers import LLMProvider, get_llm_client
from lexiconbuilder.pipeline.stages.s01_fetch import (
    FetchInput,
    FetchStage,
    FetchStageConfig,
    collect_plans,
    make_http_client,
)
from lexiconbuilder.pipeline.stages.s01_fetch import STAGE_NAME as FETCH
from lexiconbuilder.pipeline.stages.s02_parse import STAGE_NAME as PARSE
from lexiconbuilder.pipeline.stages.s02_parse import ParseStage, ParseStageConfig
from lexiconbuilder.pipeline.stages.s03_normalize import STAGE_NAME as NORMALIZE
from lexiconbuilder.pipeline.stages.s03_normalize import NormalizeStage, NormalizeStageConfig
from lexiconbuilder.pipeline.stages.s04_merge import STAGE_NAME as MERGE
from lexiconbuilder.pipeline.stages.s04_merge import MergeStage, MergeStageConfig
from lexiconbuilder.pipeline.stages.s05_normalize_post import STAGE_NAME as POST
from lexiconbuilder.pipeline.stages.s05_normalize_post import PostNormalizeStage, PostNormalizeStageConfig
from lexiconbuilder.pipeline.stages.s06_map import STAGE_NAME as MAP
from lexiconbuilder.pipeline.stages.s06_map import MapStage, MapStageConfig
from lexiconbuilder.settings import Settings
from lexiconbuilder.sources import build_adapters
from lexiconbuilder.vector_index import InMemoryVectorIndex

logger = logging.getLogger(__name__)


def make_llm(settings: Settings) -> LLMProvider:
    return get_llm_client(
        settings.llm_provider.value,
        ollama_base_url=settings.ollama_base_url,
        enable_cache=settings.llm_cache_enabled,
        cache_dir=settings.resolved_llm_cache_dir,
    )


async def run_fetch(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    adapters = build_adapters(only=sources)
    async with make_http_client(settings.user_agent, settings.fetch_timeout_s) as client:
        plans = await collect_plans(adapters.values(), client)
        stage = FetchStage(
            FetchStageConfig(
                stage_dir=settings.stage_dir(FETCH),
                force=force,
                concurrency=settings.fetch_concurrency,
                timeout_s=settings.fetch_timeout_s,
                retries=settings.fetch_retries,
                retry_base_delay_ms=settings.fetch_retry_base_delay_ms,
                user_agent=settings.user_agent,
            ),
            client=client,
        )
        return await stage.execute(FetchInput(plans=plans))


async def run_parse(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    # Parse always re-runs; ``force`` is accepted for a uniform CLI.
    stage = ParseStage(
        ParseStageConfig(fetch_dir=settings.stage_dir(FETCH), stage_dir=settings.stage_dir(PARSE)),
        build_adapters(only=sources),
    )
    return await stage.execute()


async def run_normalize(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    try:
        llm: LLMProvider | None = make_llm(settings)
    except ValueError as e:
        logger.warning(f"No LLM available, normalizing without LLM fallbacks: {e}")
        llm = None
    stage = NormalizeStage(
        NormalizeStageConfig(
            parse_dir=settings.stage_dir(PARSE),
            stage_dir=settings.stage_dir(NORMALIZE),
            force=force,
            concurrency=settings.normalize_concurrency,
        ),
        build_adapters(llm, settings.llm_model, only=sources),
    )
    return await stage.execute()


async def run_merge(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    lexicon = ReferenceLexicon.load(settings.resolved_wordnet_dir)
    stage = MergeStage(
        MergeStageConfig(
            normalize_dir=settings.stage_dir(NORMALIZE),
            stage_dir=settings.stage_dir(MERGE),
            force=force,
        ),
        lexicon=lexicon,
    )
    return await stage.execute()


async def run_normalize_post(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    stage = PostNormalizeStage(
        PostNormalizeStageConfig(
            merge_dir=settings.stage_dir(MERGE),
            stage_dir=settings.stage_dir(POST),
            force=force,
            concurrency=settings.post_concurrency,
            rate_per_minute=settings.post_rate_per_minute,
            model=settings.post_model,
        ),
        make_llm(settings),
    )
    return await stage.execute()


async def run_map(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    index = InMemoryVectorIndex()
    load_synset_embeddings(index, settings.resolved_synset_embeddings_path)
    stage = MapStage(
        MapStageConfig(
            post_dir=settings.stage_dir(POST),
            stage_dir=settings.stage_dir(MAP),
            force=force,
            concurrency=settings.map_concurrency,
            rate_per_minute=settings.map_rate_per_minute,
            k=settings.map_k,
            category_bonus=settings.map_category_bonus,
            embedding_model=settings.embedding_model,
            embed_retries=settings.map_embed_retries,
        ),
        make_llm(settings),
        index,
        SqliteSink(settings.resolved_db_path),
    )
    return await stage.execute()


async def run_embed_lexicon(settings: Settings, *, force: bool = False, sources: list[str] | None = None) -> Any:
    out_path = settings.resolved_synset_embeddings_path
    if out_path.is_file() and not force:
        logger.info("Synset embeddings exist at %s, skipping (use --force to rebuild)", out_path)
        return 0
    lexicon = ReferenceLexicon.load(settings.resolved_wordnet_dir)
    return await build_synset_embeddings(lexicon, make_llm(settings), out_path, model=settings.embedding_model)


RUNNERS = {
    "fetch": run_fetch,
    "parse": run_parse,
    "normalize": run_normalize,
    "merge": run_merge,
    "normalize-post": run_normalize_post,
    "map": run_map,
    "embed-lexicon": run_embed_lexicon,
}
