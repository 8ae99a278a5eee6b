from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from .scoring import (
    COMPLETENESS_CATEGORIES,
    SCORE_KEYS,
    ScoringError,
    SubmissionEntry,
    apply_gate,
    is_blank,
    missing_required,
)

REQUIRED_MESSAGE = "Please fill out Team, Site, Judge, and Suitability."
SITE_DUPLICATE_MESSAGE = "Duplicate team/site entry!"
SAVED_MESSAGE = "Saved!"


def category_duplicate_message(category: str) -> str:
    return f"Duplicate score for {category} by this team/judge!"


class ValidationError(ScoringError):
    def __init__(self, missing: List[str]):
        super().__init__(REQUIRED_MESSAGE)
        self.missing = missing


class DuplicateError(ScoringError):
    def __init__(self, message: str, category: Optional[str] = None):
        super().__init__(message)
        # None means the team/site rule fired.
        self.category = category


class StoreError(ScoringError):
    def __init__(self, detail: str):
        super().__init__(f"Error saving: {detail}")
        self.detail = detail


class ScoreStore(Protocol):
    def query_by_team_and_site(self, team_id: int, site_number: str) -> List[Dict[str, Any]]: ...

    def query_by_team_judge_and_category(
        self, team_id: int, judge_id: int, category: str, value: int
    ) -> List[Dict[str, Any]]: ...

    def insert(self, record: Dict[str, Any]) -> None:
        """Persist one record or raise StoreError with the store's detail."""
        ...


# -----------------------
# Validation
# -----------------------
def validate_required(entry: SubmissionEntry) -> None:
    missing = missing_required(entry)
    if missing:
        raise ValidationError(missing)


def check_duplicates(entry: SubmissionEntry, store: ScoreStore) -> None:
    """Reject an entry that conflicts with what the store holds right now.

    One record per team per site, whoever the judge. Per category, a judge
    may not give a team the *same value* twice; a different value for the
    same category passes. The check is not atomic with the later insert:
    two judges saving at once can both get through.
    """
    if store.query_by_team_and_site(entry.team_id, entry.site_number):
        raise DuplicateError(SITE_DUPLICATE_MESSAGE)

    for category in SCORE_KEYS:
        value = getattr(entry, category)
        if is_blank(value):
            continue
        if store.query_by_team_judge_and_category(entry.team_id, entry.judge_id, category, value):
            raise DuplicateError(category_duplicate_message(category), category=category)


# -----------------------
# Building + persisting
# -----------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_record(entry: SubmissionEntry, now: Optional[datetime] = None) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "team_id": entry.team_id,
        "judge_id": entry.judge_id,
        "site_number": entry.site_number,
    }
    for category in SCORE_KEYS:
        value = getattr(entry, category)
        record[category] = None if is_blank(value) else value
    for cat in COMPLETENESS_CATEGORIES:
        record[cat.key] = cat.bonus_value if entry.completeness.get(cat.key) else 0
    record["created_at"] = (now or utcnow()).isoformat()
    return record


def submit(
    entry: SubmissionEntry,
    store: ScoreStore,
    clock: Callable[[], datetime] = utcnow,
) -> Dict[str, Any]:
    """Validate, build and insert one record. Returns the inserted record.

    Raises ValidationError before any store access, DuplicateError after the
    duplicate queries, StoreError when the insert fails.
    """
    # A gated entry never carries scores into the store, whatever the caller did.
    entry = apply_gate(entry)
    validate_required(entry)
    check_duplicates(entry, store)
    record = build_record(entry, clock())
    store.insert(record)
    return record
