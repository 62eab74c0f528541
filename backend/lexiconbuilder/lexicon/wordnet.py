"""Reference lexicon loader (English WordNet JSON export).

The export directory holds two kinds of files:

- ``entries-*.json``: ``{lemma: {pos: {"sense": [...], ...}}}``
- ``{adj|adv|noun|verb}.<category>.json``: ``{synsetId: {definition, members, partOfSpeech, ...}}``

The lexicographer category of a synset is taken from its file name.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.models import WordnetPOS

logger = logging.getLogger(__name__)

_SYNSET_FILE_RE = re.compile(r"^(?:adj|adv|noun|verb)\.\w+\.json$", re.IGNORECASE)

NOUN_CATEGORIES: tuple[str, ...] = (
    "act", "animal", "artifact", "attribute", "body", "cognition", "communication",
    "event", "feeling", "food", "group", "location", "motive", "object", "person",
    "phenomenon", "plant", "possession", "process", "quantity", "relation", "shape",
    "state", "substance", "time", "Tops",
)

VERB_CATEGORIES: tuple[str, ...] = (
    "body", "change", "cognition", "communication", "competition", "consumption",
    "contact", "creation", "emotion", "motion", "perception", "possession", "social",
    "stative", "weather",
)

ADJECTIVE_CATEGORIES: tuple[str, ...] = ("all", "pert", "ppl")

ADVERB_CATEGORIES: tuple[str, ...] = ("all",)


def categories_for(pos: WordnetPOS) -> tuple[str, ...]:
    """Closed category vocabulary for a part of speech."""
    if pos == WordnetPOS.NOUN:
        return NOUN_CATEGORIES
    if pos == WordnetPOS.VERB:
        return VERB_CATEGORIES
    if pos in (WordnetPOS.ADJECTIVE, WordnetPOS.SATELLITE):
        return ADJECTIVE_CATEGORIES
    return ADVERB_CATEGORIES


def match_category(pos: WordnetPOS, value: str | None) -> str | None:
    """Canonical category for ``value`` or None when it is not in the vocabulary."""
    if not value:
        return None
    wanted = value.strip().lower()
    for category in categories_for(pos):
        if category.lower() == wanted:
            return category
    return None


@dataclass(frozen=True)
class Synset:
    id: str
    pos: str
    category: str
    definitions: list[str] = field(default_factory=list)
    members: list[str] = field(default_factory=list)

    @property
    def headword(self) -> str:
        return self.members[0] if self.members else ""

    @property
    def definition(self) -> str:
        return self.definitions[0] if self.definitions else ""


@dataclass
class ReferenceLexicon:
    entries: dict[str, dict[str, Any]]
    synsets: dict[str, Synset]

    def has_entry(self, lemma: str, pos: WordnetPOS | str) -> bool:
        entry = self.entries.get(lemma)
        if not entry:
            return False
        key = pos.value if isinstance(pos, WordnetPOS) else pos
        return key in entry

    @classmethod
    def load(cls, directory: Path) -> ReferenceLexicon:
        return _load_cached(directory.resolve())


@lru_cache(maxsize=4)
def _load_cached(directory: Path) -> ReferenceLexicon:
    if not directory.is_dir():
        raise MissingArtifactError(directory, "reference lexicon directory")

    entries: dict[str, dict[str, Any]] = {}
    synsets: dict[str, Synset] = {}
    for path in sorted(directory.iterdir()):
        name = path.name
        if name.startswith("entries-") and name.endswith(".json"):
            entries.update(json.loads(path.read_text(encoding="utf-8")))
        elif _SYNSET_FILE_RE.match(name):
            category = name.split(".")[1]
            for synset_id, raw in json.loads(path.read_text(encoding="utf-8")).items():
                synsets[synset_id] = Synset(
                    id=synset_id,
                    pos=str(raw.get("partOfSpeech", "")),
                    category=category,
                    definitions=list(raw.get("definition") or []),
                    members=list(raw.get("members") or []),
                )

    logger.info(f"Loaded reference lexicon: {len(entries)} entries, {len(synsets)} synsets from {directory}")
    return ReferenceLexicon(entries=entries, synsets=synsets)
