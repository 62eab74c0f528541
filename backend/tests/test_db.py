"""Tests for the SQLite relational sink and schema ordering."""
from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from lexiconbuilder.db import SCHEMA_UNITS, SchemaUnit, SqliteSink, init_db, insert, schema_order
from lexiconbuilder.errors import SchemaOrderError


class TestSchemaOrder:
    def test_dependencies_come_first(self) -> None:
        names = [unit.name for unit in schema_order(SCHEMA_UNITS)]
        assert names.index("lemma") < names.index("sense")
        assert names.index("lemma") < names.index("lemma_origin")

    def test_unknown_dependency_raises(self) -> None:
        units = [SchemaUnit("sense", "", depends_on=("lemma",))]
        with pytest.raises(SchemaOrderError, match="unknown unit 'lemma'"):
            schema_order(units)

    def test_cycle_raises(self) -> None:
        units = [
            SchemaUnit("a", "", depends_on=("b",)),
            SchemaUnit("b", "", depends_on=("a",)),
        ]
        with pytest.raises(SchemaOrderError, match="cycle"):
            schema_order(units)

    def test_init_db_refuses_bad_graph_before_touching_the_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "db.sqlite3"
        with pytest.raises(SchemaOrderError):
            init_db(db_path, [SchemaUnit("x", "CREATE TABLE x (id INTEGER)", depends_on=("y",))])
        assert not db_path.exists()


class TestSqliteSink:
    def test_init_creates_tables(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "db.sqlite3"
        SqliteSink(db_path)
        with sqlite3.connect(db_path) as conn:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"lemma", "lemma_origin", "sense"} <= tables

    def test_inserts_are_idempotent(self, tmp_path: Path) -> None:
        sink = SqliteSink(tmp_path / "db.sqlite3")

        lemma_id = sink.insert_lemma("hound", "n", sources=["kaikki"])
        assert sink.insert_lemma("hound", "n") == lemma_id
        assert sink.insert_lemma("hound", "v") != lemma_id

        sink.insert_origin(lemma_id, "Old English", "inherited", "hund")
        sink.insert_origin(lemma_id, "Old English", "inherited", "hund")

        sense_id = sink.insert_sense(lemma_id, "02086723-n", gloss="a dog", category="animal", score=0.0)
        assert sink.insert_sense(lemma_id, "02086723-n", gloss="a dog") == sense_id
        assert sink.insert_sense(lemma_id, "02086723-n", gloss="a hunting dog") != sense_id

        assert sink.count_rows("lemma") == 2
        assert sink.count_rows("lemma_origin") == 1
        assert sink.count_rows("sense") == 2

    def test_sense_requires_existing_lemma(self, tmp_path: Path) -> None:
        sink = SqliteSink(tmp_path / "db.sqlite3")
        with pytest.raises(sqlite3.IntegrityError):
            sink.insert_sense(999, "02086723-n")

    def test_unknown_table(self, tmp_path: Path) -> None:
        sink = SqliteSink(tmp_path / "db.sqlite3")
        with pytest.raises(ValueError):
            sink.count_rows("users")


class TestInsert:
    def test_returns_record_with_id(self, tmp_path: Path) -> None:
        db_path = tmp_path / "db.sqlite3"
        init_db(db_path)

        row = insert(db_path, "lemma", {"lemma": "hound", "pos": "n", "created_at_utc": "t"})

        assert row["id"] == 1
        assert row["lemma"] == "hound"

    def test_unknown_table(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            insert(tmp_path / "db.sqlite3", "users", {"name": "x"})
