"""Hurlebatte wordbook (public Google spreadsheet exported as CSV).

Columns: WORD, SPELLING, DEFINITION, WORD CLASS, ETYMOLOGY, LANG. ORIGIN,
NOTES, TAGS. A row may list several word classes and definitions separated
by ``᛭``; within a definition, ``᛫`` separates alternative glosses.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Literal

import httpx
from pydantic import Field

from lexiconbuilder.llm.extraction import complete_text
from lexiconbuilder.models import FetchJob, FetchPlan, NormalizedRecord, SourceRecord, WordnetPOS
from lexiconbuilder.pipeline.hashing import short_hash
from lexiconbuilder.sources.base import ParseInput, SourceAdapter
from lexiconbuilder.sources.common import (
    extract_origins_with_llm,
    match_origin_tokens,
    pos_from_name,
    readable_pos,
)

logger = logging.getLogger(__name__)

SOURCE = "hurlebatte"
SPREADSHEET_ID = "1y8_11RDvuCRyUK_MXj5K7ZjccgCUDapsPDI5PjaEkMw"
EXPORT_URL = f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/export?format=csv&id={SPREADSHEET_ID}"

_ENTRY_SEPARATOR = re.compile(r"\s*᛭\s*")
_GLOSS_SEPARATOR = re.compile(r"\s*᛫\s*")
_NUMBERING = re.compile(r"^\d+\.\s*")

_POS_CODES: dict[str, WordnetPOS] = {
    "n": WordnetPOS.NOUN,
    "n(p)": WordnetPOS.NOUN,
    "pn": WordnetPOS.NOUN,
    "n(pro)": WordnetPOS.NOUN,
    "v": WordnetPOS.VERB,
    "aj": WordnetPOS.ADJECTIVE,
    "aj(p)": WordnetPOS.ADJECTIVE,
    "adj": WordnetPOS.ADJECTIVE,
    "av": WordnetPOS.ADVERB,
    "adv": WordnetPOS.ADVERB,
    "ad": WordnetPOS.ADVERB,
}

FILL_DEFINITIONS_SYSTEM_PROMPT = (
    "You are a dictionary editor. The word you are working with is Anglish (linguistically pure, "
    "Germanic English). Given a word, its parts of speech, and some existing definitions, provide "
    "definitions for ALL parts of speech in order. Match the existing definitions to the appropriate "
    "parts of speech, and generate definitions for the missing ones. Return exactly {count} definitions, "
    "one per line, in the same order as the parts of speech. Each definition should be a concise "
    "dictionary-style definition. Do not number or format the definitions."
)

FILL_PARTS_SYSTEM_PROMPT = (
    "You are a dictionary editor. The word you are working with is Anglish (linguistically pure, "
    "Germanic English). Given a word, some existing parts of speech, and all definitions, determine "
    "the part of speech for each definition in order. Return exactly {count} parts of speech, one per "
    "line, using the full names noun, verb, adjective or adverb. Do not number or format."
)


class HurlebatteRecord(SourceRecord):
    source: Literal["hurlebatte"] = SOURCE
    lemma_raw: str
    pos_raw: str
    occurrence_index: int
    definition_raw: str = ""
    etymology_raw: str = ""
    origin_raw: str = ""
    notes_raw: str = ""
    tags_raw: str = ""
    meta: dict = Field(default_factory=dict)


def normalize_pos_code(code: str) -> WordnetPOS | None:
    """Word-class code from the sheet; conjunctions, prefixes and the like map to None."""
    return _POS_CODES.get(code.strip().lower())


def format_gloss(definition: str) -> str:
    parts = (
        part.replace("( ", "(").replace(" )", ")")
        for part in _GLOSS_SEPARATOR.split(definition)
    )
    return ", ".join(p for p in parts if p)


def _split_entries(value: str) -> list[str]:
    return [s for s in _ENTRY_SEPARATOR.split(value) if s]


def _answer_lines(text: str) -> list[str]:
    lines = (line.strip() for line in text.splitlines())
    return [_NUMBERING.sub("", line) for line in lines if line]


class HurlebatteAdapter(SourceAdapter):
    name = SOURCE
    record_model = HurlebatteRecord

    async def fetch_plan(self, client: httpx.AsyncClient) -> FetchPlan:
        job = FetchJob(
            source=SOURCE,
            kind="csv",
            url=EXPORT_URL,
            headers={"accept": "text/csv,*/*;q=0.9"},
            meta={"spreadsheetId": SPREADSHEET_ID, "format": "csv"},
        )
        return FetchPlan(source=SOURCE, jobs=[job])

    def parse(self, input_data: ParseInput) -> list[HurlebatteRecord]:
        content = input_data.require_content(SOURCE)
        rows = [row for row in csv.reader(io.StringIO(content)) if any(cell.strip() for cell in row)]
        if not rows:
            return []

        header = [cell.strip().upper() for cell in rows[0]]

        def column(name: str) -> int:
            return header.index(name) if name in header else -1

        idx = {
            "lemma": column("WORD"),
            "definition": column("DEFINITION"),
            "pos": column("WORD CLASS"),
            "etymology": column("ETYMOLOGY"),
            "origin": next((i for i, h in enumerate(header) if h.startswith("LANG")), -1),
            "notes": column("NOTES"),
            "tags": column("TAGS"),
        }

        def get(row: list[str], key: str) -> str:
            i = idx[key]
            return row[i] if 0 <= i < len(row) else ""

        occurrences: dict[str, int] = {}
        records: list[HurlebatteRecord] = []
        for row in rows[1:]:
            lemma = get(row, "lemma")
            if not lemma:
                continue
            pos = get(row, "pos")
            origin = get(row, "origin")

            identity = f"{lemma}:{pos}:{origin}"
            occurrence = occurrences.get(identity, 0)
            occurrences[identity] = occurrence + 1

            records.append(
                HurlebatteRecord(
                    raw_id=short_hash(SOURCE, lemma, pos, origin, occurrence, length=20),
                    lemma_raw=lemma,
                    pos_raw=pos,
                    occurrence_index=occurrence,
                    definition_raw=get(row, "definition"),
                    etymology_raw=get(row, "etymology"),
                    origin_raw=origin,
                    notes_raw=get(row, "notes"),
                    tags_raw=get(row, "tags"),
                )
            )
        return records

    async def normalize(self, record: HurlebatteRecord, normalized_at: str) -> list[NormalizedRecord]:
        parts = [p for p in (normalize_pos_code(c) for c in _split_entries(record.pos_raw)) if p is not None]
        defs = _split_entries(record.definition_raw)

        if parts and len(parts) != len(defs):
            aligned = await self._align(record.lemma_raw, parts, defs)
            if aligned is None:
                logger.error(
                    f"{SOURCE}: {len(parts)} word classes but {len(defs)} definitions for "
                    f"{record.lemma_raw!r}, discarding"
                )
                return []
            parts, defs = aligned

        origins = match_origin_tokens(record.origin_raw)
        if not origins:
            llm_origins = await extract_origins_with_llm(
                self._llm, record.origin_raw, record.lemma_raw, model=self._model, source=SOURCE
            )
            if llm_origins:
                origins = llm_origins
            elif record.origin_raw.strip():
                logger.warning(f"{SOURCE}: could not extract origins for {record.lemma_raw!r}")

        meta = {
            "normalizedAt": normalized_at,
            "etymology_raw": record.etymology_raw,
            "notes_raw": record.notes_raw,
            "tags_raw": record.tags_raw,
            "occurrence_index": record.occurrence_index,
        }
        out: list[NormalizedRecord] = []
        for pos, definition in zip(parts, defs):
            gloss = format_gloss(definition)
            if not gloss:
                logger.warning(f"{SOURCE}: no definition for {record.lemma_raw}:{pos.value}")
                continue
            out.append(
                NormalizedRecord(
                    source=SOURCE,
                    raw_id=record.raw_id,
                    lemma=record.lemma_raw,
                    pos=pos,
                    glosses=[gloss],
                    origins=origins,
                    meta=dict(meta),
                )
            )
        return out

    async def _align(
        self, lemma: str, parts: list[WordnetPOS], defs: list[str]
    ) -> tuple[list[WordnetPOS], list[str]] | None:
        """Ask the LLM to fill whichever side is short; None unless the counts come back equal."""
        if self._llm is None:
            return None
        numbered = "\n".join(f"{i + 1}. {d}" for i, d in enumerate(defs))
        labels = ", ".join(readable_pos(p) for p in parts)

        if len(parts) > len(defs):
            result = await complete_text(
                self._llm,
                system=FILL_DEFINITIONS_SYSTEM_PROMPT.format(count=len(parts)),
                prompt=(
                    f"Word: {lemma}\n\nParts of speech (in order): {labels}\n\n"
                    f"Existing definitions (may not be in order):\n{numbered}\n\n"
                    f"Provide definitions for all {len(parts)} parts of speech in order, one per line."
                ),
                model=self._model,
            )
            lines = _answer_lines(result.value) if result.ok and result.value else []
            if len(lines) != len(parts):
                return None
            logger.info(f"{SOURCE}: LLM filled missing definitions for {lemma!r}")
            return parts, lines

        result = await complete_text(
            self._llm,
            system=FILL_PARTS_SYSTEM_PROMPT.format(count=len(defs)),
            prompt=(
                f"Word: {lemma}\n\nExisting parts of speech (may not be in order): {labels}\n\n"
                f"All definitions (in order):\n{numbered}\n\n"
                f"Provide the part of speech for all {len(defs)} definitions in order, one per line."
            ),
            model=self._model,
        )
        lines = _answer_lines(result.value) if result.ok and result.value else []
        filled = [pos_from_name(line) or normalize_pos_code(line) for line in lines]
        if len(filled) != len(defs) or any(p is None for p in filled):
            return None
        logger.info(f"{SOURCE}: LLM filled missing word classes for {lemma!r}")
        return [p for p in filled if p is not None], defs
