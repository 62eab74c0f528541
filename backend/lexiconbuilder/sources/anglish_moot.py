"""Anglish Moot wordbooks (wiki tables).

Two dictionaries live on the wiki:

- English -> Anglish (``/wiki/English_Wordbook``): rows of
  ``word | pos | attested | unattested``; the Anglish words sit in the last
  two cells, optionally followed by a parenthesized origin.
- Anglish -> English (``/wiki/Anglish_Wordbook``): rows of
  ``word | pos | definition``.

Every fetch job carries ``meta.dictionary`` so the parser knows which table
layout to expect.
"""

from __future__ import annotations

import logging
import re
from typing import Literal

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from lexiconbuilder.models import FetchJob, FetchPlan, NormalizedRecord, SourceRecord, WordnetPOS
from lexiconbuilder.pipeline.hashing import short_hash
from lexiconbuilder.sources.base import ParseInput, SourceAdapter
from lexiconbuilder.sources.common import (
    WORD_PATTERN,
    WORD_RE,
    clean_word_string,
    extract_origins_with_llm,
    is_origin_abbreviation,
    match_origin_tokens,
)

logger = logging.getLogger(__name__)

SOURCE = "anglish_moot"
BASE_URL = "https://anglish.fandom.com"
ENGLISH_INDEX_URL = f"{BASE_URL}/wiki/English_Wordbook"
ANGLISH_INDEX_URL = f"{BASE_URL}/wiki/Anglish_Wordbook"
HTML_HEADERS = {"accept": "text/html,*/*;q=0.9"}

Dictionary = Literal["english_to_anglish", "anglish_to_english"]

_POS_CODES: dict[str, WordnetPOS | None] = {
    "noun": WordnetPOS.NOUN,
    "n": WordnetPOS.NOUN,
    "p": WordnetPOS.NOUN,
    "verb": WordnetPOS.VERB,
    "vb": WordnetPOS.VERB,
    "vt": WordnetPOS.VERB,
    "v": WordnetPOS.VERB,
    "adj": WordnetPOS.ADJECTIVE,
    "adv": WordnetPOS.ADVERB,
    "conj": None,
    "prep": None,
}

_ENTRY_RE = re.compile(
    rf"(?<!\()(?P<words>{WORD_PATTERN}(?:, (?:{WORD_PATTERN})?)*)(?!\))(?:\s?\((?P<origin>[^)]*)\))?",
    re.IGNORECASE,
)
_LABEL_RE = re.compile(r"(?:^|\n).*?:")


class Cell(BaseModel):
    text: str
    html: str = ""


class AnglishMootRecord(SourceRecord):
    source: Literal["anglish_moot"] = SOURCE
    dictionary: Dictionary
    page_id: str
    occurrence_index: int
    lemma_raw: str
    pos_raw: str
    cells_raw: dict[str, Cell] = Field(default_factory=dict)
    attested_raw: Cell | None = None
    unattested_raw: Cell | None = None
    definition_raw: Cell | None = None
    origin_raw: Cell | None = None
    meta: dict = Field(default_factory=dict)


def absolutize_wiki_href(href: str) -> str:
    if href.startswith(("http://", "https://")):
        return href
    if not href.startswith("/"):
        return f"{BASE_URL}/{href}"
    return f"{BASE_URL}{href}"


def wordbook_hrefs(html: str, container: str) -> list[str]:
    """Unique ``/wiki/`` links under the first ``container`` element, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    root = soup.find(container)
    if root is None:
        return []
    hrefs = [a.get("href", "") for a in root.find_all("a", href=True)]
    return list(dict.fromkeys(h for h in hrefs if h.startswith("/wiki/")))


def normalize_pos(pos_raw: str) -> list[WordnetPOS]:
    """Distinct parts of speech named in a POS cell ("n/vb", "Adj, Adv")."""
    parts: list[WordnetPOS] = []
    for token in re.split(r"\W", re.sub(r"\s", "", pos_raw)):
        pos = _POS_CODES.get(token.lower()) if token else None
        if pos is not None and pos not in parts:
            parts.append(pos)
    return parts


def extract_anglish_entries(anglish_gloss: str, english_word: str) -> list[tuple[str, str, str | None]]:
    """(anglish word, english gloss, origin) triples from an attested/unattested cell."""
    text = _LABEL_RE.sub("", anglish_gloss).strip()
    entries: list[tuple[str, str, str | None]] = []
    for match in _ENTRY_RE.finditer(text):
        words = match.group("words")
        origin = match.group("origin")
        if not words:
            continue
        for word_string in re.split(r"[,;]", words):
            word = clean_word_string(word_string)
            if not word or is_origin_abbreviation(word):
                continue
            entries.append((word, english_word, origin))
    return entries


class AnglishMootAdapter(SourceAdapter):
    name = SOURCE
    record_model = AnglishMootRecord

    async def fetch_plan(self, client: httpx.AsyncClient) -> FetchPlan:
        english_html = await self._get(client, ENGLISH_INDEX_URL)
        anglish_html = await self._get(client, ANGLISH_INDEX_URL)
        english_hrefs = wordbook_hrefs(english_html, "big")
        anglish_hrefs = wordbook_hrefs(anglish_html, "tbody")

        jobs = [
            self._job(ENGLISH_INDEX_URL, "english_to_anglish"),
            self._job(ANGLISH_INDEX_URL, "anglish_to_english"),
        ]
        jobs += [self._job(absolutize_wiki_href(h), "english_to_anglish") for h in english_hrefs]
        jobs += [self._job(absolutize_wiki_href(h), "anglish_to_english") for h in anglish_hrefs]
        return FetchPlan(source=SOURCE, jobs=jobs)

    @staticmethod
    async def _get(client: httpx.AsyncClient, url: str) -> str:
        resp = await client.get(url, headers=HTML_HEADERS)
        resp.raise_for_status()
        return resp.text

    @staticmethod
    def _job(url: str, dictionary: Dictionary) -> FetchJob:
        return FetchJob(source=SOURCE, kind="html", url=url, headers=HTML_HEADERS, meta={"dictionary": dictionary})

    def parse(self, input_data: ParseInput) -> list[AnglishMootRecord]:
        content = input_data.require_content(SOURCE)
        dictionary = input_data.job_meta.get("dictionary")
        if dictionary not in ("english_to_anglish", "anglish_to_english"):
            return []
        expected_cells = 4 if dictionary == "english_to_anglish" else 3

        fetch = input_data.fetch
        soup = BeautifulSoup(content, "html.parser")
        occurrences: dict[str, int] = {}
        records: list[AnglishMootRecord] = []

        for row in soup.select("table > tbody > tr, table > tr"):
            cells = [
                Cell(text=td.get_text().strip(), html=td.decode_contents().strip())
                for td in row.find_all("td", recursive=False)
            ]
            if len(cells) != expected_cells or not cells[0].text:
                continue
            word, pos = cells[0], cells[1]

            identity = f"{word.text}:{pos.text}"
            occurrence = occurrences.get(identity, 0)
            occurrences[identity] = occurrence + 1

            fields: dict = {}
            if dictionary == "english_to_anglish":
                fields["attested_raw"], fields["unattested_raw"] = cells[2], cells[3]
                cells_raw = {"word": word, "pos": pos, "attested": cells[2], "unattested": cells[3]}
            else:
                fields["definition_raw"] = cells[2]
                cells_raw = {"word": word, "pos": pos, "definition": cells[2]}

            records.append(
                AnglishMootRecord(
                    raw_id=short_hash(SOURCE, fetch.url, word.text, pos.text, occurrence, length=20),
                    dictionary=dictionary,
                    page_id=fetch.id,
                    occurrence_index=occurrence,
                    lemma_raw=word.text,
                    pos_raw=pos.text,
                    cells_raw=cells_raw,
                    meta={
                        **input_data.job_meta,
                        "fetchId": fetch.id,
                        "fetchUrl": fetch.url,
                        "fetchedAt": fetch.fetched_at,
                    },
                    **fields,
                )
            )
        return records

    async def normalize(self, record: AnglishMootRecord, normalized_at: str) -> list[NormalizedRecord]:
        cleaned = clean_word_string(record.lemma_raw)
        if cleaned is None or not WORD_RE.match(cleaned):
            return []
        if cleaned != record.lemma_raw:
            logger.debug(f"{SOURCE}: {record.lemma_raw!r} -> {cleaned!r}")

        records: list[NormalizedRecord] = []
        for pos in normalize_pos(record.pos_raw):
            if record.dictionary == "english_to_anglish":
                records.extend(self._invert_english_row(record, cleaned, pos, normalized_at))
            else:
                records.append(await self._anglish_row(record, cleaned, pos, normalized_at))
        return records

    def _invert_english_row(
        self, record: AnglishMootRecord, english_word: str, pos: WordnetPOS, normalized_at: str
    ) -> list[NormalizedRecord]:
        cells = [c.text for c in (record.attested_raw, record.unattested_raw) if c is not None]
        out: list[NormalizedRecord] = []
        for cell_text in cells:
            for anglish_word, gloss, origin in extract_anglish_entries(cell_text, english_word):
                out.append(
                    NormalizedRecord(
                        source=SOURCE,
                        raw_id=record.raw_id,
                        lemma=anglish_word,
                        pos=pos,
                        glosses=[gloss],
                        origins=match_origin_tokens(origin) if origin else [],
                        meta={"normalizedAt": normalized_at},
                    )
                )
        return out

    async def _anglish_row(
        self, record: AnglishMootRecord, lemma: str, pos: WordnetPOS, normalized_at: str
    ) -> NormalizedRecord:
        definition = record.definition_raw.text if record.definition_raw else ""
        gloss = re.split(r"[\[\]]", definition, maxsplit=1)[0].strip()
        origins = await extract_origins_with_llm(self._llm, definition, lemma, model=self._model, source=SOURCE)
        return NormalizedRecord(
            source=SOURCE,
            raw_id=record.raw_id,
            lemma=lemma,
            pos=pos,
            glosses=[gloss] if gloss else [],
            origins=origins or [],
            meta={"normalizedAt": normalized_at},
        )
