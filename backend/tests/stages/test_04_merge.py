"""Tests for Stage 04: Merge.

The Merge stage consolidates normalized records across sources:
1. Drops (lemma, pos) pairs the reference lexicon already has
2. Drops records without glosses
3. Groups by (lemma, pos), unions glosses/origins/sources deterministically
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from lexiconbuilder.errors import MissingArtifactError
from lexiconbuilder.lexicon.wordnet import ReferenceLexicon
from lexiconbuilder.models import NormalizedRecord, OriginKind, OriginLanguage, WordnetPOS, WordOrigin
from lexiconbuilder.pipeline.stages.s04_merge import MergeResult, MergeStage, MergeStageConfig, default_merge


def _record(source: str, lemma: str, glosses: list[str], pos: WordnetPOS = WordnetPOS.NOUN, **kwargs) -> NormalizedRecord:
    return NormalizedRecord(source=source, raw_id=f"{source}-{lemma}", lemma=lemma, pos=pos, glosses=glosses, **kwargs)


OE = WordOrigin(lang=OriginLanguage.OE, kind=OriginKind.INHERITED, form="OE bær")
ON = WordOrigin(lang=OriginLanguage.ON, kind=OriginKind.BORROWED, form="ON barri")


class TestDefaultMerge:
    def test_two_sources_merge_into_one_sorted_record(self, wordnet_dir: Path) -> None:
        lexicon = ReferenceLexicon.load(wordnet_dir)
        records = [
            _record("s1", "bar", ["a rod"]),
            _record("s2", "bar", ["a rod", "a metal rod"]),
        ]

        result = default_merge(records, "2024-01-01T00:00:00.000+00:00", lexicon)

        [merged] = result.records
        assert merged.lemma == "bar"
        assert merged.pos == WordnetPOS.NOUN
        assert merged.glosses == ["a metal rod", "a rod"]
        assert merged.sources == ["s1", "s2"]
        assert merged.meta["mergedAt"] == "2024-01-01T00:00:00.000+00:00"

    def test_existing_lexicon_entries_are_excluded(self, wordnet_dir: Path) -> None:
        lexicon = ReferenceLexicon.load(wordnet_dir)
        records = [
            _record("s1", "dog", ["a hound"]),
            _record("s1", "bar", ["to bolt"], pos=WordnetPOS.VERB),
            _record("s1", "bar", ["a rod"]),
        ]

        result = default_merge(records, "t", lexicon)

        assert [(r.lemma, r.pos) for r in result.records] == [("bar", WordnetPOS.NOUN)]
        assert result.excluded_existing == 2

    def test_records_without_glosses_are_dropped(self) -> None:
        result = default_merge([_record("s1", "hollow", [])], "t")
        assert result.records == []
        assert result.dropped_empty == 1

    def test_origins_are_deduplicated_in_first_seen_order(self) -> None:
        records = [
            _record("s2", "bar", ["a rod"], origins=[ON, OE]),
            _record("s1", "bar", ["a rod"], origins=[OE]),
        ]
        [merged] = default_merge(records, "t").records
        assert merged.origins == [ON, OE]

    def test_later_meta_wins_and_normalized_at_is_dropped(self) -> None:
        records = [
            _record("s1", "bar", ["a rod"], meta={"normalizedAt": "x", "note": "first", "tags": "a"}),
            _record("s2", "bar", ["a rod"], meta={"normalizedAt": "y", "note": "second"}),
        ]
        [merged] = default_merge(records, "t").records
        assert merged.meta == {"mergedAt": "t", "note": "second", "tags": "a"}

    def test_merge_is_order_independent_for_glosses_and_sources(self) -> None:
        records = [
            _record("s2", "bar", ["b", "a"]),
            _record("s1", "bar", ["c"]),
        ]
        forward = default_merge(records, "t").records[0]
        backward = default_merge(list(reversed(records)), "t").records[0]
        assert forward.glosses == backward.glosses == ["a", "b", "c"]
        assert forward.sources == backward.sources == ["s1", "s2"]


class TestMergeStage:
    def _seed(self, normalize_dir: Path, by_source: dict[str, list[NormalizedRecord]]) -> None:
        out = normalize_dir / "out"
        out.mkdir(parents=True, exist_ok=True)
        for source, records in by_source.items():
            (out / f"{source}.normalized_records.jsonl").write_text(
                "".join(json.dumps(r.to_json()) + "\n" for r in records)
            )

    def test_merge_stage_name(self, tmp_path: Path) -> None:
        stage = MergeStage(MergeStageConfig(normalize_dir=tmp_path, stage_dir=tmp_path))
        assert stage.name == "04_merge"

    @pytest.mark.asyncio
    async def test_missing_normalize_output_is_fatal(self, tmp_path: Path) -> None:
        stage = MergeStage(MergeStageConfig(normalize_dir=tmp_path / "03", stage_dir=tmp_path / "04"))
        with pytest.raises(MissingArtifactError):
            await stage.execute()

    @pytest.mark.asyncio
    async def test_writes_merged_records_and_manifest(self, tmp_path: Path, wordnet_dir: Path) -> None:
        self._seed(
            tmp_path / "03_normalize",
            {
                "s1": [_record("s1", "bar", ["a rod"]), _record("s1", "dog", ["a hound"])],
                "s2": [_record("s2", "bar", ["a rod", "a metal rod"])],
            },
        )
        stage = MergeStage(
            MergeStageConfig(normalize_dir=tmp_path / "03_normalize", stage_dir=tmp_path / "04_merge"),
            lexicon=ReferenceLexicon.load(wordnet_dir),
        )

        output = await stage.execute()

        [line] = output.output_path.read_text().splitlines()
        merged = json.loads(line)
        assert merged["glosses"] == ["a metal rod", "a rod"]
        assert merged["sources"] == ["s1", "s2"]
        assert output.row.records_in == 3
        assert output.row.records_out == 1
        assert output.row.excluded_existing == 1

        again = await stage.execute()
        assert again.skipped is True

    @pytest.mark.asyncio
    async def test_custom_merger_is_used(self, tmp_path: Path) -> None:
        self._seed(tmp_path / "03_normalize", {"s1": [_record("s1", "bar", ["a rod"])]})
        seen: list[int] = []

        def merger(records, merged_at):
            seen.append(len(list(records)))
            return MergeResult()

        stage = MergeStage(
            MergeStageConfig(normalize_dir=tmp_path / "03_normalize", stage_dir=tmp_path / "04_merge"),
            merger=merger,
        )
        output = await stage.execute()

        assert seen == [1]
        assert output.output_path.read_text() == ""
