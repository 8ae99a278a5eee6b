from __future__ import annotations

import logging
import sqlite3
import warnings
from io import StringIO
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import db_path
from .scoring import COMPLETENESS_KEYS, SCORE_KEYS
from .submission import StoreError

log = logging.getLogger(__name__)

RECORD_COLUMNS = ("team_id", "judge_id", "site_number", *SCORE_KEYS, *COMPLETENESS_KEYS, "created_at")


# -----------------------
# DB helpers
# -----------------------
def db(path: Optional[str] = None) -> sqlite3.Connection:
    conn = sqlite3.connect(path or db_path())
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: Optional[str] = None) -> None:
    completeness_cols = "\n".join(f"                {k} INTEGER NOT NULL DEFAULT 0," for k in COMPLETENESS_KEYS)
    with db(path) as conn:
        conn.executescript(
            f"""
            CREATE TABLE IF NOT EXISTS teams (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                site_number TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS judges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL
            );

            -- one row per save; rows are never updated or deleted here
            CREATE TABLE IF NOT EXISTS onsite_scores (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                team_id INTEGER NOT NULL,
                judge_id INTEGER NOT NULL,
                site_number TEXT NOT NULL,
                appearance INTEGER,
                color INTEGER,
                skin INTEGER,
                moisture INTEGER,
                taste INTEGER,
{completeness_cols}
                created_at TEXT NOT NULL
            );
            """
        )
    log.info("database ready at %s", path or db_path())


# -----------------------
# Reference data
# -----------------------
def list_teams(path: Optional[str] = None) -> List[Dict[str, Any]]:
    with db(path) as conn:
        rows = conn.execute("SELECT id, name, site_number FROM teams ORDER BY name, id").fetchall()
    return [dict(r) for r in rows]


def list_judges(path: Optional[str] = None) -> List[Dict[str, Any]]:
    with db(path) as conn:
        rows = conn.execute("SELECT id, name FROM judges ORDER BY name, id").fetchall()
    return [dict(r) for r in rows]


class ReferenceDataError(ValueError):
    """A pasted team or judge list that cannot be read without losing data."""


def parse_reference_csv(text: str, columns: List[str]) -> pd.DataFrame:
    """Parse pasted lines (no header) into the given columns.

    A single-column list takes each line whole, commas included. Wider lists
    are CSV; a row with more fields than ``columns`` is rejected rather than
    truncated. Values are kept literally ("NA" and "None" are names too).
    Blank names are dropped, repeated names keep their first row.
    """
    if not text.strip():
        return pd.DataFrame(columns=columns)
    if len(columns) == 1:
        df = pd.DataFrame({columns[0]: text.splitlines()}, dtype=str)
    else:
        try:
            with warnings.catch_warnings():
                # pandas only warns when index_col=False drops extra fields
                warnings.simplefilter("error", pd.errors.ParserWarning)
                df = pd.read_csv(
                    StringIO(text),
                    header=None,
                    names=columns,
                    dtype=str,
                    skipinitialspace=True,
                    skip_blank_lines=True,
                    index_col=False,
                    keep_default_na=False,
                    na_filter=False,
                    on_bad_lines="error",
                )
        except (pd.errors.ParserError, pd.errors.ParserWarning) as e:
            raise ReferenceDataError(
                f"Could not read list: expected at most {len(columns)} fields per line ({e})"
            ) from e
    df = df.fillna("")
    for c in columns:
        df[c] = df[c].astype(str).str.strip()
    df = df[df["name"] != ""]
    return df.drop_duplicates(subset=["name"], keep="first").reset_index(drop=True)


def replace_teams(text: str, path: Optional[str] = None) -> int:
    df = parse_reference_csv(text, ["name", "site_number"])
    with db(path) as conn:
        conn.execute("DELETE FROM teams")
        conn.executemany(
            "INSERT INTO teams(name, site_number) VALUES(?,?)",
            list(df[["name", "site_number"]].itertuples(index=False, name=None)),
        )
    log.info("replaced team list with %d teams", len(df))
    return len(df)


def replace_judges(text: str, path: Optional[str] = None) -> int:
    df = parse_reference_csv(text, ["name"])
    with db(path) as conn:
        conn.execute("DELETE FROM judges")
        conn.executemany("INSERT INTO judges(name) VALUES(?)", [(n,) for n in df["name"]])
    log.info("replaced judge list with %d judges", len(df))
    return len(df)


def scores_dataframe(path: Optional[str] = None) -> pd.DataFrame:
    """All persisted score records in insert order, one row each."""
    cols = ", ".join(("id",) + RECORD_COLUMNS)
    with db(path) as conn:
        return pd.read_sql_query(f"SELECT {cols} FROM onsite_scores ORDER BY id", conn)


# -----------------------
# Score store
# -----------------------
class SqliteScoreStore:
    """Score store over the ``onsite_scores`` table.

    Every call queries live; nothing from earlier saves is cached.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def _query(self, sql: str, params: tuple) -> List[Dict[str, Any]]:
        try:
            with db(self.path) as conn:
                return [dict(r) for r in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def query_by_team_and_site(self, team_id: int, site_number: str) -> List[Dict[str, Any]]:
        return self._query(
            "SELECT * FROM onsite_scores WHERE team_id=? AND site_number=?",
            (team_id, site_number),
        )

    def query_by_team_judge_and_category(
        self, team_id: int, judge_id: int, category: str, value: int
    ) -> List[Dict[str, Any]]:
        if category not in SCORE_KEYS:
            raise ValueError(f"Unknown score category: {category!r}")
        return self._query(
            f"SELECT * FROM onsite_scores WHERE team_id=? AND judge_id=? AND {category}=?",
            (team_id, judge_id, value),
        )

    def insert(self, record: Dict[str, Any]) -> None:
        placeholders = ",".join(["?"] * len(RECORD_COLUMNS))
        try:
            with db(self.path) as conn:
                conn.execute(
                    f"INSERT INTO onsite_scores({', '.join(RECORD_COLUMNS)}) VALUES({placeholders})",
                    tuple(record.get(c) for c in RECORD_COLUMNS),
                )
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
