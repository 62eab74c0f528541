"""SQLite relational sink for mapped lemmas and senses.

The schema is split into units (one table each) that declare the units they
depend on. ``init_db`` applies them in dependency order and refuses to start
when a unit references an unknown unit or the graph has a cycle.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Any

from lexiconbuilder.errors import SchemaOrderError

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


@dataclass(frozen=True)
class SchemaUnit:
    name: str
    sql: str
    depends_on: tuple[str, ...] = ()


SCHEMA_UNITS: tuple[SchemaUnit, ...] = (
    SchemaUnit(
        "sense",
        """
        CREATE TABLE IF NOT EXISTS sense (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          lemma_id INTEGER NOT NULL REFERENCES lemma(id) ON DELETE CASCADE,
          synset_id TEXT NOT NULL,
          gloss TEXT NOT NULL DEFAULT '',
          category TEXT,
          score REAL,
          created_at_utc TEXT NOT NULL,
          UNIQUE(lemma_id, synset_id, gloss)
        )
        """,
        depends_on=("lemma",),
    ),
    SchemaUnit(
        "lemma_origin",
        """
        CREATE TABLE IF NOT EXISTS lemma_origin (
          lemma_id INTEGER NOT NULL REFERENCES lemma(id) ON DELETE CASCADE,
          lang TEXT NOT NULL,
          kind TEXT NOT NULL,
          form TEXT NOT NULL,
          PRIMARY KEY (lemma_id, lang, kind, form)
        )
        """,
        depends_on=("lemma",),
    ),
    SchemaUnit(
        "lemma",
        """
        CREATE TABLE IF NOT EXISTS lemma (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          lemma TEXT NOT NULL,
          pos TEXT NOT NULL,
          lang TEXT NOT NULL DEFAULT 'anglish',
          sources TEXT,
          created_at_utc TEXT NOT NULL,
          UNIQUE(lemma, pos, lang)
        )
        """,
    ),
)


def schema_order(units: tuple[SchemaUnit, ...] | list[SchemaUnit]) -> list[SchemaUnit]:
    """Units sorted so every unit comes after the units it depends on."""
    by_name = {unit.name: unit for unit in units}
    sorter: TopologicalSorter[str] = TopologicalSorter()
    for unit in units:
        for dep in unit.depends_on:
            if dep not in by_name:
                raise SchemaOrderError(f"Schema unit {unit.name!r} depends on unknown unit {dep!r}")
        sorter.add(unit.name, *unit.depends_on)
    try:
        return [by_name[name] for name in sorter.static_order()]
    except CycleError as e:
        raise SchemaOrderError(f"Schema dependency cycle: {' -> '.join(e.args[1])}") from e


def _connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection with foreign keys enforced and IMMEDIATE transactions."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(db_path),
        timeout=30.0,
        isolation_level="IMMEDIATE",  # Acquire write lock at BEGIN
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: Path, units: tuple[SchemaUnit, ...] | list[SchemaUnit] = SCHEMA_UNITS) -> None:
    ordered = schema_order(units)
    with _connect(db_path) as conn:
        for unit in ordered:
            conn.execute(unit.sql)
    logger.debug("Initialized schema %s at %s", [u.name for u in ordered], db_path)


_TABLES = {unit.name for unit in SCHEMA_UNITS}


def insert(db_path: Path, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
    """Insert ``record`` into ``table`` and return it with the generated ``id``."""
    if table not in _TABLES:
        raise ValueError(f"Unknown table: {table}")
    columns = list(record)
    placeholders = ", ".join("?" for _ in columns)
    with _connect(db_path) as conn:
        cur = conn.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            [record[c] for c in columns],
        )
        return {**record, "id": cur.lastrowid}


class SqliteSink:
    """Relational sink used by the map stage. Every call opens its own connection."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        init_db(db_path)

    def insert_lemma(self, lemma: str, pos: str, *, lang: str = "anglish", sources: list[str] | None = None) -> int:
        """Id of the (lemma, pos, lang) row, inserting it if needed."""
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO lemma(lemma, pos, lang, sources, created_at_utc)
                VALUES(?, ?, ?, ?, ?)
                """,
                (lemma, pos, lang, ",".join(sources or []), utc_now_iso()),
            )
            row = conn.execute(
                "SELECT id FROM lemma WHERE lemma = ? AND pos = ? AND lang = ?",
                (lemma, pos, lang),
            ).fetchone()
        return int(row["id"])

    def insert_origin(self, lemma_id: int, lang: str, kind: str, form: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO lemma_origin(lemma_id, lang, kind, form) VALUES(?, ?, ?, ?)",
                (lemma_id, lang, kind, form),
            )

    def insert_sense(
        self,
        lemma_id: int,
        synset_id: str,
        *,
        gloss: str = "",
        category: str | None = None,
        score: float | None = None,
    ) -> int:
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO sense(lemma_id, synset_id, gloss, category, score, created_at_utc)
                VALUES(?, ?, ?, ?, ?, ?)
                """,
                (lemma_id, synset_id, gloss, category, score, utc_now_iso()),
            )
            row = conn.execute(
                "SELECT id FROM sense WHERE lemma_id = ? AND synset_id = ? AND gloss = ?",
                (lemma_id, synset_id, gloss),
            ).fetchone()
        return int(row["id"])

    def count_rows(self, table: str) -> int:
        if table not in _TABLES:
            raise ValueError(f"Unknown table: {table}")
        with _connect(self.db_path) as conn:
            return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
