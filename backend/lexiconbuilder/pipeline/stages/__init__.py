"""Pipeline stages module.

Contains the PipelineStage base class and all stage implementations.

Stage order:
- 01: Fetch - Content-addressed downloads
- 02: Parse - Raw artifacts to source records
- 03: Normalize - Source records to NormalizedRecords
- 04: Merge - Group by (lemma, pos) across sources
- 05: NormalizePost - LLM gloss dedupe and categorization
- 06: Map - Gloss to synset linking
"""

from lexiconbuilder.pipeline.stages.base import PipelineStage
from lexiconbuilder.pipeline.stages.s01_fetch import (
    FetchInput,
    FetchOutput,
    FetchStage,
    FetchStageConfig,
)
from lexiconbuilder.pipeline.stages.s02_parse import (
    ParseOutput,
    ParseStage,
    ParseStageConfig,
)
from lexiconbuilder.pipeline.stages.s03_normalize import (
    NormalizeOutput,
    NormalizeStage,
    NormalizeStageConfig,
)
from lexiconbuilder.pipeline.stages.s04_merge import (
    MergeOutput,
    MergeStage,
    MergeStageConfig,
)
from lexiconbuilder.pipeline.stages.s05_normalize_post import (
    PostNormalizeOutput,
    PostNormalizeStage,
    PostNormalizeStageConfig,
)
from lexiconbuilder.pipeline.stages.s06_map import (
    MapOutput,
    MapStage,
    MapStageConfig,
)

__all__ = [
    "PipelineStage",
    "FetchInput",
    "FetchOutput",
    "FetchStage",
    "FetchStageConfig",
    "ParseOutput",
    "ParseStage",
    "ParseStageConfig",
    "NormalizeOutput",
    "NormalizeStage",
    "NormalizeStageConfig",
    "MergeOutput",
    "MergeStage",
    "MergeStageConfig",
    "PostNormalizeOutput",
    "PostNormalizeStage",
    "PostNormalizeStageConfig",
    "MapOutput",
    "MapStage",
    "MapStageConfig",
]
