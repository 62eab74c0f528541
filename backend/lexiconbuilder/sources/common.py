"""Helpers shared by the source adapters.

WORD_PATTERN matches a lemma of up to five letter groups joined by a
hyphen, space or apostrophe ("well-being", "ere long", "o'clock").
"""

from __future__ import annotations

import logging
import re
from typing import Any

from lexiconbuilder.llm.extraction import extract_structured
from lexiconbuilder.llm.providers import LLMProvider
from lexiconbuilder.models import OriginKind, OriginLanguage, WordnetPOS, WordOrigin

logger = logging.getLogger(__name__)

_LETTER = r"[^\W\d_]"
WORD_PATTERN = rf"{_LETTER}+(?:[-\s']{_LETTER}+){{0,4}}"
WORD_RE = re.compile(rf"^{WORD_PATTERN}$", re.IGNORECASE)
_LEADING_WORD_RE = re.compile(rf"^{WORD_PATTERN}(?=\s*[/,])", re.IGNORECASE)

_READABLE_POS = {
    WordnetPOS.NOUN: "noun",
    WordnetPOS.VERB: "verb",
    WordnetPOS.ADJECTIVE: "adjective",
    WordnetPOS.ADVERB: "adverb",
    WordnetPOS.SATELLITE: "satellite",
}


def is_single_word(text: str) -> bool:
    return bool(WORD_RE.match(text))


def readable_pos(pos: WordnetPOS | None) -> str:
    if pos is None:
        return "unknown"
    return _READABLE_POS[pos]


def pos_from_name(name: str) -> WordnetPOS | None:
    """Map a spelled-out part of speech ("noun", "adjective", "adv.") to WordnetPOS."""
    normalized = name.strip().lower()
    if normalized.startswith("noun"):
        return WordnetPOS.NOUN
    if normalized.startswith("verb"):
        return WordnetPOS.VERB
    if normalized.startswith("adj"):
        return WordnetPOS.ADJECTIVE
    if normalized.startswith("adv"):
        return WordnetPOS.ADVERB
    return None


def clean_word_string(word: str) -> str | None:
    """Strip annotations from a raw lemma cell; None when no lemma is left.

    Parenthesized and bracketed text and everything after the first newline
    are dropped. If the rest is not a valid lemma, a leading lemma followed by
    ``/`` or ``,`` is accepted ("hale, whole" -> "hale").
    """
    word = word.split("\n", 1)[0]
    word = re.sub(r"\([^)]*\)", "", word)
    word = re.sub(r"\[[^\]]*\]", "", word)
    word = re.sub(r"\s+", " ", word).strip()

    if not WORD_RE.match(word):
        match = _LEADING_WORD_RE.match(word)
        if not match:
            return None
        word = match.group(0)

    return word


def _token_pattern(token: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![^\W\d_]){re.escape(token)}(?![^\W\d_])")


# Longest first so "PWG" is consumed before "PG" and "Old English" before "English".
_ABBREVIATION_TOKENS = sorted(OriginLanguage.__members__.items(), key=lambda kv: len(kv[0]), reverse=True)
_NAME_TOKENS = sorted(((lang.value, lang) for lang in OriginLanguage), key=lambda kv: len(kv[0]), reverse=True)


def match_origin_tokens(
    origin_str: str,
    *,
    kind: OriginKind = OriginKind.INHERITED,
    by_name: bool = False,
) -> list[WordOrigin]:
    """Origins for every language token found in ``origin_str``.

    Tokens are language abbreviations ("OE"), or full names with ``by_name``.
    Each matched token is removed before shorter tokens are tried. Every
    origin keeps the whole string as its ``form``.
    """
    origins: list[WordOrigin] = []
    remaining = origin_str
    for token, lang in _NAME_TOKENS if by_name else _ABBREVIATION_TOKENS:
        pattern = _token_pattern(token)
        if pattern.search(remaining):
            origins.append(WordOrigin(lang=lang, kind=kind, form=origin_str))
            remaining = pattern.sub("", remaining, count=1)
    return origins


def is_origin_abbreviation(text: str) -> bool:
    wanted = text.replace(".", "").strip().lower()
    return any(name.lower() == wanted for name in OriginLanguage.__members__)


ORIGINS_SYSTEM_PROMPT = (
    "You are a linguistic data extraction assistant. Your task is to parse etymology/origin strings "
    "from an Anglish dictionary and extract structured word origin information.\n"
    "The origin string may contain:\n"
    '- Language abbreviations (e.g., "PG", "OE", "ON") that map to specific languages\n'
    '- Source word forms (e.g., "*bōtuz", "bōt")\n'
    "- Origin kinds: inherited, derived, borrowed, cognate, compound, or calque\n"
    "- Multiple origins separated by commas or other delimiters\n"
    'Return an object with an "origins" array. Each origin has:\n'
    "- lang: one of the language abbreviations listed below\n"
    '- kind: one of "inherited", "derived", "borrowed", "cognate", "compound", "calque"\n'
    '- form: the source word form, or an empty string if not provided\n'
    "Available languages:\n"
    "{languages}\n"
    'If you cannot extract valid origins, return {{"origins": []}}.'
)

ORIGINS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "origins": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "lang": {"type": "string", "enum": list(OriginLanguage.__members__)},
                    "kind": {"type": "string", "enum": [k.value for k in OriginKind]},
                    "form": {"type": "string"},
                },
                "required": ["lang", "kind", "form"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["origins"],
    "additionalProperties": False,
}


def _validate_origins(parsed: Any) -> list[WordOrigin]:
    origins: list[WordOrigin] = []
    for item in parsed["origins"]:
        lang = OriginLanguage.from_abbreviation(str(item.get("lang", "")))
        kind = item.get("kind")
        if lang is None or kind not in {k.value for k in OriginKind}:
            continue
        form = item.get("form")
        origins.append(WordOrigin(lang=lang, kind=OriginKind(kind), form=form if isinstance(form, str) else ""))
    return origins


async def extract_origins_with_llm(
    llm: LLMProvider | None,
    origin_str: str,
    word: str,
    *,
    model: str,
    source: str,
) -> list[WordOrigin] | None:
    """LLM fallback for origin strings the token matcher could not read.

    Entries naming an unknown language or kind are dropped. Returns None when
    no LLM is configured or extraction fails.
    """
    if llm is None or not origin_str.strip():
        return None
    languages = ", ".join(f"{name} ({lang.value})" for name, lang in OriginLanguage.__members__.items())
    result = await extract_structured(
        llm,
        system=ORIGINS_SYSTEM_PROMPT.format(languages=languages),
        prompt=(
            f'Extract word origins from this etymology string: "{origin_str}"\n'
            "If the string contains multiple origins, extract all of them."
        ),
        schema_name="word_origins",
        schema=ORIGINS_SCHEMA,
        validate=_validate_origins,
        model=model,
    )
    if not result.ok:
        return None
    origins = result.value or []
    logger.info(f"{source}: LLM extracted {len(origins)} origin(s) for {word!r} ({origin_str})")
    return origins
