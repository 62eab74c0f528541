"""Source adapter contract.

A source adapter bundles everything the pipeline needs to know about one
upstream dataset:

- fetch_plan(): which HTTP jobs to run (may itself fetch index pages)
- parse(): turn one fetched artifact into source records
- normalize(): turn one source record into zero or more NormalizedRecords

Parsers receive either the decoded content or an iterator over the decoded
lines of the raw file, depending on whether the job was streamed; asking for
the wrong one raises ParseInputError. Unusable items inside an artifact are
dropped through ParseInput.skip() so the stage can count them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from lexiconbuilder.errors import ParseInputError
from lexiconbuilder.models import FetchPlan, NormalizedRecord, SourceRecord

if TYPE_CHECKING:
    import httpx

    from lexiconbuilder.llm.providers import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

ParseResult = Iterable[SourceRecord] | AsyncIterable[SourceRecord]


@dataclass(frozen=True)
class FetchRef:
    id: str
    url: str
    fetched_at: str


@dataclass
class ParseInput:
    fetch: FetchRef
    job_meta: dict[str, Any] = field(default_factory=dict)
    content: str | None = None
    stream: Iterable[str] | None = None
    skipped: int = 0

    def require_content(self, source: str) -> str:
        if self.content is None:
            raise ParseInputError(f"{source}: parser expects content but was given a stream")
        return self.content

    def require_stream(self, source: str) -> Iterable[str]:
        if self.stream is None:
            raise ParseInputError(f"{source}: parser expects a stream but was given content")
        return self.stream

    def skip(self, source: str, reason: str) -> None:
        """Drop one unusable item of the artifact and count it."""
        self.skipped += 1
        logger.warning(f"{source}: skipping {reason}")


async def iterate_records(result: ParseResult):
    """Iterate sync or async parser output uniformly."""
    if isinstance(result, AsyncIterable):
        async for record in result:
            yield record
    else:
        for record in result:
            yield record


class SourceAdapter(ABC):
    name: ClassVar[str]
    record_model: ClassVar[type[SourceRecord]]

    def __init__(self, llm: LLMProvider | None = None, model: str = DEFAULT_MODEL) -> None:
        self._llm = llm
        self._model = model

    @abstractmethod
    async def fetch_plan(self, client: httpx.AsyncClient) -> FetchPlan:
        ...

    @abstractmethod
    def parse(self, input_data: ParseInput) -> ParseResult:
        ...

    @abstractmethod
    async def normalize(self, record: SourceRecord, normalized_at: str) -> list[NormalizedRecord]:
        ...

    def load_record(self, data: dict[str, Any]) -> SourceRecord:
        return self.record_model.model_validate(data)
