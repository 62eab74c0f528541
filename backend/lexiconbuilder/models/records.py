"""Lexical record models written between pipeline stages.

Every stage persists its records as JSONL. Field aliases keep the wire names
camelCase (``rawId``) while Python code uses snake_case attributes.

SourceRecord: source-specific raw row produced by a parser.
NormalizedRecord: one (lemma, pos) reading produced by a source normalizer.
MergedRecord: all normalized readings of one (lemma, pos) folded together.
PostNormalizedRecord: merged record with deduplicated, categorized glosses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WordnetPOS(str, Enum):
    """Part-of-speech codes used by the reference lexicon."""

    NOUN = "n"
    VERB = "v"
    ADJECTIVE = "a"
    ADVERB = "r"
    SATELLITE = "s"


class OriginKind(str, Enum):
    INHERITED = "inherited"
    DERIVED = "derived"
    BORROWED = "borrowed"
    COGNATE = "cognate"
    COMPOUND = "compound"
    CALQUE = "calque"


class OriginLanguage(str, Enum):
    """Source languages of word origins.

    Member names are the abbreviations sources write (``OE``); values are
    the full names that get serialized (``Old English``).
    """

    PIE = "Proto-Indo-European"
    PG = "Proto-Germanic"
    PWG = "Proto-West Germanic"
    OE = "Old English"
    ME = "Middle English"
    NE = "English"
    ON = "Old Norse"
    OS = "Old Saxon"
    OFris = "Old Frisian"
    Fris = "West Frisian"
    ODu = "Old Dutch"
    MDu = "Middle Dutch"
    Du = "Dutch"
    LG = "Low German"
    OHG = "Old High German"
    MHG = "Middle High German"
    NHG = "German"
    Goth = "Gothic"
    Frank = "Frankish"
    Sc = "Scots"
    Ice = "Icelandic"
    Far = "Faroese"
    Nor = "Norwegian"
    Dan = "Danish"
    Swe = "Swedish"
    Lat = "Latin"
    Gk = "Ancient Greek"
    Fr = "French"
    AN = "Anglo-Norman"
    OF = "Old French"

    @classmethod
    def from_abbreviation(cls, abbreviation: str) -> OriginLanguage | None:
        return cls.__members__.get(abbreviation)


class WordOrigin(BaseModel):
    """Attested origin of a word."""

    model_config = ConfigDict(frozen=True)

    lang: OriginLanguage
    kind: OriginKind
    form: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.lang.value, self.kind.value, self.form)


class Record(BaseModel):
    """Base for all records persisted as JSONL lines."""

    model_config = ConfigDict(populate_by_name=True)

    v: int = 1

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SourceRecord(Record):
    """Raw row from one source. Each adapter subclasses this with its own fields."""

    source: str
    raw_id: str = Field(alias="rawId")


class NormalizedRecord(Record):
    source: str
    raw_id: str = Field(alias="rawId")
    lemma: str
    pos: WordnetPOS
    glosses: list[str] = Field(default_factory=list)
    origins: list[WordOrigin] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class MergedRecord(Record):
    lemma: str
    pos: WordnetPOS
    glosses: list[str] = Field(default_factory=list)
    origins: list[WordOrigin] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class Gloss(BaseModel):
    """One sense description with its synonyms and semantic category."""

    text: str
    category: str | None = None
    synonyms: list[str] = Field(default_factory=list)


class PostNormalizedRecord(Record):
    lemma: str
    pos: WordnetPOS
    glosses: list[Gloss] = Field(default_factory=list)
    origins: list[WordOrigin] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
