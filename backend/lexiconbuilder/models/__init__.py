"""Pydantic models for lexical records and stage manifests."""

from lexiconbuilder.models.manifests import (
    KIND_EXTENSIONS,
    FetchJob,
    FetchKind,
    FetchManifestRow,
    FetchMetadata,
    FetchPlan,
    MapManifestRow,
    MergeManifestRow,
    NormalizeManifestRow,
    ParseManifestRow,
    PostNormalizeManifestRow,
)
from lexiconbuilder.models.records import (
    Gloss,
    MergedRecord,
    NormalizedRecord,
    OriginKind,
    OriginLanguage,
    PostNormalizedRecord,
    SourceRecord,
    WordnetPOS,
    WordOrigin,
)

__all__ = [
    "KIND_EXTENSIONS",
    "FetchJob",
    "FetchKind",
    "FetchManifestRow",
    "FetchMetadata",
    "FetchPlan",
    "Gloss",
    "MapManifestRow",
    "MergeManifestRow",
    "MergedRecord",
    "NormalizeManifestRow",
    "NormalizedRecord",
    "OriginKind",
    "OriginLanguage",
    "ParseManifestRow",
    "PostNormalizeManifestRow",
    "PostNormalizedRecord",
    "SourceRecord",
    "WordOrigin",
    "WordnetPOS",
]
