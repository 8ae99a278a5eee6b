"""
Tests for store.py - sqlite schema, reference data and the score store.
"""

import sqlite3

import pytest

from onsite.store import (
    ReferenceDataError,
    SqliteScoreStore,
    init_db,
    list_judges,
    list_teams,
    parse_reference_csv,
    replace_judges,
    replace_teams,
    scores_dataframe,
)
from onsite.submission import StoreError


def record(**kwargs):
    base = {
        "team_id": 1, "judge_id": 2, "site_number": "A",
        "appearance": None, "color": None, "skin": None, "moisture": None, "taste": None,
        "site_clean": 0, "knives": 0, "sauce_cups": 0, "drinks_towels": 0, "thermometers": 0,
        "created_at": "2026-05-02T14:30:00+00:00",
    }
    base.update(kwargs)
    return base


class TestInit:
    """Test schema creation."""

    def test_init_creates_tables(self, tmp_path):
        path = str(tmp_path / "test.sqlite")
        init_db(path)
        with sqlite3.connect(path) as conn:
            names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"teams", "judges", "onsite_scores"} <= names

    def test_init_is_idempotent(self, db_file):
        init_db()
        assert list_teams() == []


class TestReferenceData:
    """Test team and judge lists."""

    def test_parse_drops_blanks_and_repeats(self):
        df = parse_reference_csv("Smoke Signals, A\n\n , C\nSmoke Signals,B\nPit Masters", ["name", "site_number"])
        assert list(df["name"]) == ["Smoke Signals", "Pit Masters"]
        assert list(df["site_number"]) == ["A", ""]

    def test_parse_empty_text(self):
        assert parse_reference_csv("   ", ["name"]).empty

    def test_judge_lines_keep_commas(self):
        df = parse_reference_csv("Smith, John\nLee", ["name"])
        assert list(df["name"]) == ["Smith, John", "Lee"]

    def test_na_like_names_are_kept(self, db_file):
        assert replace_judges("NA\nNone\nPat") == 3
        assert [j["name"] for j in list_judges()] == ["NA", "None", "Pat"]

    def test_na_like_team_fields_are_kept(self):
        df = parse_reference_csv("NA,None\nnull,B", ["name", "site_number"])
        assert list(df["name"]) == ["NA", "null"]
        assert list(df["site_number"]) == ["None", "B"]

    def test_quoted_team_name_with_comma(self):
        df = parse_reference_csv('"Smith, John",A', ["name", "site_number"])
        assert list(df["name"]) == ["Smith, John"]
        assert list(df["site_number"]) == ["A"]

    @pytest.mark.parametrize("text", [
        "Smith, John, A",
        "Pit Masters,B\nSmith, John, A",
    ])
    def test_extra_team_fields_rejected(self, text):
        with pytest.raises(ReferenceDataError):
            parse_reference_csv(text, ["name", "site_number"])

    def test_rejected_team_list_leaves_old_list(self, db_file):
        replace_teams("Pit Masters,B")
        with pytest.raises(ReferenceDataError):
            replace_teams("Smoke Signals,A\nSmith, John, C")
        assert [t["name"] for t in list_teams()] == ["Pit Masters"]

    def test_replace_teams(self, db_file):
        assert replace_teams("Smoke Signals,A\nPit Masters,B") == 2
        teams = list_teams()
        assert [(t["name"], t["site_number"]) for t in teams] == [("Pit Masters", "B"), ("Smoke Signals", "A")]
        assert all(isinstance(t["id"], int) for t in teams)

    def test_replace_judges_keeps_scores(self, db_file):
        SqliteScoreStore().insert(record())
        replace_judges("Pat\nLee")
        assert [j["name"] for j in list_judges()] == ["Lee", "Pat"]
        assert len(scores_dataframe()) == 1

    def test_replaced_ids_are_not_reused(self, db_file):
        replace_judges("Pat")
        first = list_judges()[0]["id"]
        replace_judges("Lee")
        assert list_judges()[0]["id"] != first


class TestSqliteScoreStore:
    """Test the query and insert operations the duplicate check relies on."""

    def test_insert_and_query_by_site(self, db_file):
        store = SqliteScoreStore()
        store.insert(record(knives=8))
        rows = store.query_by_team_and_site(1, "A")
        assert len(rows) == 1
        assert rows[0]["knives"] == 8
        assert store.query_by_team_and_site(1, "B") == []

    def test_query_by_category_matches_value(self, db_file):
        store = SqliteScoreStore()
        store.insert(record(appearance=10))
        assert len(store.query_by_team_judge_and_category(1, 2, "appearance", 10)) == 1
        assert store.query_by_team_judge_and_category(1, 2, "appearance", 12) == []
        assert store.query_by_team_judge_and_category(1, 3, "appearance", 10) == []

    def test_unknown_category_rejected(self, db_file):
        with pytest.raises(ValueError):
            SqliteScoreStore().query_by_team_judge_and_category(1, 2, "id; DROP TABLE teams", 1)

    def test_insert_failure_raises_store_error(self, db_file):
        with pytest.raises(StoreError) as exc:
            SqliteScoreStore().insert(record(team_id=None))
        assert "NOT NULL" in exc.value.detail

    def test_missing_table_raises_store_error(self, tmp_path):
        store = SqliteScoreStore(str(tmp_path / "empty.sqlite"))
        with pytest.raises(StoreError):
            store.query_by_team_and_site(1, "A")

    def test_scores_dataframe_columns(self, db_file):
        SqliteScoreStore().insert(record(taste=78))
        df = scores_dataframe()
        assert list(df.columns)[:4] == ["id", "team_id", "judge_id", "site_number"]
        assert int(df.loc[0, "taste"]) == 78
