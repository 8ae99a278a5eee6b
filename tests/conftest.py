"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from onsite.submission import StoreError


class FakeStore:
    """In-memory score store that records every call made against it."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None, fail_with: Optional[str] = None):
        self.records = list(records or [])
        self.fail_with = fail_with
        self.calls: List[tuple] = []

    def query_by_team_and_site(self, team_id, site_number):
        self.calls.append(("query_by_team_and_site", team_id, site_number))
        return [r for r in self.records if r.get("team_id") == team_id and r.get("site_number") == site_number]

    def query_by_team_judge_and_category(self, team_id, judge_id, category, value):
        self.calls.append(("query_by_team_judge_and_category", team_id, judge_id, category, value))
        return [
            r for r in self.records
            if r.get("team_id") == team_id and r.get("judge_id") == judge_id and r.get(category) == value
        ]

    def insert(self, record):
        self.calls.append(("insert", record))
        if self.fail_with:
            raise StoreError(self.fail_with)
        self.records.append(dict(record))


@pytest.fixture
def teams() -> List[Dict[str, Any]]:
    return [
        {"id": 1, "name": "Smoke Signals", "site_number": "A"},
        {"id": 2, "name": "Pit Masters", "site_number": "B"},
        {"id": 3, "name": "No Site Yet", "site_number": None},
    ]


@pytest.fixture
def judges() -> List[Dict[str, Any]]:
    return [
        {"id": 2, "name": "Pat"},
        {"id": 5, "name": "Lee"},
    ]


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fixed_clock():
    stamp = datetime(2026, 5, 2, 14, 30, tzinfo=timezone.utc)
    return lambda: stamp


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    """Point the app at a fresh sqlite file and create the schema."""
    from onsite.store import init_db

    path = tmp_path / "onsite.sqlite"
    monkeypatch.setenv("ONSITE_DB_PATH", str(path))
    init_db()
    return path


@pytest.fixture
def make_store():
    """Factory for stores preloaded with records or set up to fail on insert."""
    return FakeStore
