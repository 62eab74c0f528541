"""Kaikki.org English Wiktionary extract (one JSON object per line).

The dump is several gigabytes, so it is fetched as a stream and parsed
lazily; only entries whose etymology points at Germanic sources (and at no
Latin, French or Greek ones) become records.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Iterator
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lexiconbuilder.models import FetchJob, FetchPlan, NormalizedRecord, OriginKind, SourceRecord, WordnetPOS, WordOrigin
from lexiconbuilder.pipeline.hashing import short_hash
from lexiconbuilder.sources.base import ParseInput, SourceAdapter
from lexiconbuilder.sources.common import match_origin_tokens

SOURCE = "kaikki"
DUMP_URL = "https://kaikki.org/dictionary/English/kaikki.org-dictionary-English.jsonl"

TEMPLATE_KINDS: dict[OriginKind, frozenset[str]] = {
    OriginKind.INHERITED: frozenset({"inh", "inherited", "inh+"}),
    OriginKind.DERIVED: frozenset({"der", "derived", "der+"}),
    OriginKind.BORROWED: frozenset({"bor", "borrowed", "bor+", "lbor", "learned borrowing"}),
    OriginKind.CALQUE: frozenset({"cal", "calque", "clq"}),
    OriginKind.COGNATE: frozenset({"cog", "cognate", "ncog", "noncognate"}),
}
_SOURCE_KINDS = (OriginKind.INHERITED, OriginKind.DERIVED, OriginKind.BORROWED, OriginKind.CALQUE)

_GERMANIC_RE = re.compile(r"English|Germanic|Norse|Saxon|Frankish", re.IGNORECASE)
_COGNATE_GERMANIC_RE = re.compile(r"English|German|Norse|Saxon|Frankish|Danish", re.IGNORECASE)
_ROMANCE_RE = re.compile(r"French|Latin|Greek", re.IGNORECASE)

_POS: dict[str, WordnetPOS] = {
    "noun": WordnetPOS.NOUN,
    "verb": WordnetPOS.VERB,
    "adj": WordnetPOS.ADJECTIVE,
    "adv": WordnetPOS.ADVERB,
}


class EtymologyTemplate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    expansion: str = ""
    args: dict[str, str] = Field(default_factory=dict)


class KaikkiRecord(SourceRecord):
    source: Literal["kaikki"] = SOURCE
    pos: str
    word: str
    senses: list[str] = Field(default_factory=list)
    etym_text: str = ""
    etym_templates: list[EtymologyTemplate] = Field(default_factory=list)


def template_kind(name: str) -> OriginKind | None:
    for kind, names in TEMPLATE_KINDS.items():
        if name in names:
            return kind
    return None


def is_anglish(entry: dict[str, Any]) -> bool:
    """True when the etymology names a Germanic source and no Latin/French/Greek one.

    Inherited, derived, borrowed and calque templates are consulted first;
    cognate templates only when none of those exist.
    """
    templates = entry.get("etymology_templates")
    if not isinstance(templates, list):
        return False

    germanic = romance = False
    first_tier = [t for t in templates if template_kind(t.get("name", "")) in _SOURCE_KINDS]
    if first_tier:
        for template in first_tier:
            expansion = template.get("expansion", "")
            if _GERMANIC_RE.search(expansion):
                germanic = True
            elif _ROMANCE_RE.search(expansion):
                romance = True
    else:
        for template in templates:
            if template_kind(template.get("name", "")) is not OriginKind.COGNATE:
                continue
            expansion = template.get("expansion", "")
            if _COGNATE_GERMANIC_RE.search(expansion):
                germanic = True
            elif _ROMANCE_RE.search(expansion):
                romance = True
    return germanic and not romance


def template_origins(templates: list[EtymologyTemplate]) -> list[WordOrigin]:
    """One origin per template whose name gives a kind and whose expansion names a language."""
    origins: list[WordOrigin] = []
    for template in templates:
        kind = template_kind(template.name)
        if kind is None or not template.expansion:
            continue
        matched = match_origin_tokens(template.expansion, kind=kind, by_name=True)
        if matched:
            origins.append(matched[0])
    return origins


class KaikkiAdapter(SourceAdapter):
    name = SOURCE
    record_model = KaikkiRecord

    async def fetch_plan(self, client: httpx.AsyncClient) -> FetchPlan:
        job = FetchJob(
            source=SOURCE,
            kind="jsonl",
            url=DUMP_URL,
            headers={"accept": "text/plain,*/*;q=0.9"},
            stream=True,
        )
        return FetchPlan(source=SOURCE, jobs=[job])

    def parse(self, input_data: ParseInput) -> Iterator[KaikkiRecord]:
        stream = input_data.require_stream(SOURCE)
        return self._iter_records(stream, input_data)

    def _iter_records(self, stream: Iterable[str], input_data: ParseInput) -> Iterator[KaikkiRecord]:
        for line_no, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                input_data.skip(SOURCE, f"malformed line {line_no}: {e}")
                continue
            if not isinstance(entry, dict):
                input_data.skip(SOURCE, f"line {line_no}: expected an object, got {type(entry).__name__}")
                continue
            try:
                record = _to_record(entry)
            except (ValidationError, TypeError, AttributeError, KeyError) as e:
                input_data.skip(SOURCE, f"unusable entry on line {line_no}: {e}")
                continue
            if record is not None:
                yield record

    async def normalize(self, record: KaikkiRecord, normalized_at: str) -> list[NormalizedRecord]:
        pos = _POS.get(record.pos.lower())
        if pos is None:
            return []
        return [
            NormalizedRecord(
                source=SOURCE,
                raw_id=record.raw_id,
                lemma=record.word,
                pos=pos,
                glosses=record.senses,
                origins=template_origins(record.etym_templates),
                meta={"normalizedAt": normalized_at},
            )
        ]


def _to_record(entry: dict[str, Any]) -> KaikkiRecord | None:
    if not is_anglish(entry):
        return None
    senses = [s["glosses"][-1] for s in entry.get("senses") or [] if s.get("glosses")]
    word = entry.get("word", "")
    pos = entry.get("pos", "")
    etym_text = entry.get("etymology_text") or ""
    return KaikkiRecord(
        raw_id=short_hash(word, pos, etym_text, length=20),
        pos=pos,
        word=word,
        senses=senses,
        etym_text=etym_text,
        etym_templates=entry.get("etymology_templates") or [],
    )
