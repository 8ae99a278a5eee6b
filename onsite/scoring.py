from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

log = logging.getLogger(__name__)


# -----------------------
# Score domain
# -----------------------
PAIR_SCORES: Tuple[int, ...] = tuple(range(2, 41, 2))  # 2,4,...,40
EXTRA_SCORES: Tuple[int, ...] = (70, 74, 78)
# Union, not concatenation: an extra that is already a multiple of 4 must not repeat.
GRADUATED_SCORES: Tuple[int, ...] = tuple(sorted(set(range(4, 81, 4)) | set(EXTRA_SCORES)))

COMPLETENESS_BONUS = 8


class ScoreField(NamedTuple):
    key: str
    label: str
    scores: Tuple[int, ...]


class CompletenessCategory(NamedTuple):
    key: str
    label: str
    bonus_value: int = COMPLETENESS_BONUS


# Order matters: duplicate checks walk the categories in this order.
SCORE_FIELDS: Tuple[ScoreField, ...] = (
    ScoreField("appearance", "Appearance", PAIR_SCORES),
    ScoreField("color", "Color", PAIR_SCORES),
    ScoreField("skin", "Skin", GRADUATED_SCORES),
    ScoreField("moisture", "Moisture", GRADUATED_SCORES),
    ScoreField("taste", "Meat & Sauce", GRADUATED_SCORES),
)
SCORE_KEYS: Tuple[str, ...] = tuple(f.key for f in SCORE_FIELDS)

COMPLETENESS_CATEGORIES: Tuple[CompletenessCategory, ...] = (
    CompletenessCategory("site_clean", "Site Clean"),
    CompletenessCategory("knives", "Knives"),
    CompletenessCategory("sauce_cups", "Sauce Cups"),
    CompletenessCategory("drinks_towels", "Drinks & Towels"),
    CompletenessCategory("thermometers", "Thermometers"),
)
COMPLETENESS_KEYS: Tuple[str, ...] = tuple(c.key for c in COMPLETENESS_CATEGORIES)

SUITABLE_CHOICES: Tuple[str, ...] = ("", "Yes", "No")

_SCORES_BY_KEY: Dict[str, Tuple[int, ...]] = {f.key: f.scores for f in SCORE_FIELDS}


def score_field(key: str) -> ScoreField:
    for f in SCORE_FIELDS:
        if f.key == key:
            return f
    raise KeyError(key)


class ScoringError(Exception):
    """Base for every failure that goes back to the judge as a message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FieldError(ScoringError, ValueError):
    """An edit the scoring sheet cannot accept."""


# -----------------------
# Submission entry
# -----------------------
@dataclass(frozen=True)
class SubmissionEntry:
    team_id: Optional[int] = None
    site_number: str = ""
    judge_id: Optional[int] = None
    appearance: Optional[int] = None
    color: Optional[int] = None
    skin: Optional[int] = None
    moisture: Optional[int] = None
    taste: Optional[int] = None
    completeness: Dict[str, bool] = field(default_factory=dict)
    suitable: str = ""
    fail_override: bool = False

    def scores(self) -> Dict[str, Optional[int]]:
        return {k: getattr(self, k) for k in SCORE_KEYS}

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "team_id": self.team_id,
            "site_number": self.site_number,
            "judge_id": self.judge_id,
        }
        data.update(self.scores())
        data["completeness"] = {k: bool(self.completeness.get(k)) for k in COMPLETENESS_KEYS}
        data["suitable"] = self.suitable
        data["fail_override"] = self.fail_override
        return data


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_int(name: str, value: Any) -> Optional[int]:
    if is_blank(value):
        return None
    if isinstance(value, bool):
        raise FieldError(f"Invalid value for {name}: {value!r}.")
    try:
        return int(str(value).strip())
    except ValueError:
        raise FieldError(f"Invalid value for {name}: {value!r}.") from None


def site_for_team(team_id: Optional[int], teams: Iterable[Dict[str, Any]]) -> str:
    """Site number of the matching team, or "" when nothing matches."""
    if team_id is None:
        return ""
    for t in teams:
        if t.get("id") == team_id:
            site = t.get("site_number")
            return "" if site is None else str(site)
    return ""


# -----------------------
# Suitability gate
# -----------------------
def is_gated(entry: SubmissionEntry) -> bool:
    return entry.suitable == "No" and not entry.fail_override


def apply_gate(entry: SubmissionEntry) -> SubmissionEntry:
    """Clear every score and completeness flag while the entry is gated.

    Clearing is destructive; the old values are not kept for an override.
    """
    if not is_gated(entry):
        return entry
    cleared = replace(entry, completeness={}, **{k: None for k in SCORE_KEYS})
    if cleared != entry:
        log.debug("gate closed, cleared scores for team=%s judge=%s", entry.team_id, entry.judge_id)
    return cleared


# -----------------------
# Transitions
# -----------------------
def set_field(
    entry: SubmissionEntry,
    name: str,
    value: Any,
    teams: Iterable[Dict[str, Any]] = (),
) -> SubmissionEntry:
    if name == "team_id":
        team_id = _coerce_int(name, value)
        return replace(entry, team_id=team_id, site_number=site_for_team(team_id, teams))

    if name == "site_number":
        return replace(entry, site_number="" if is_blank(value) else str(value).strip())

    if name == "judge_id":
        return replace(entry, judge_id=_coerce_int(name, value))

    if name == "suitable":
        suitable = "" if value is None else str(value).strip()
        if suitable not in SUITABLE_CHOICES:
            raise FieldError(f"Invalid value for suitable: {value!r}.")
        return apply_gate(replace(entry, suitable=suitable))

    if name in _SCORES_BY_KEY:
        score = _coerce_int(name, value)
        if score is not None:
            if is_gated(entry):
                raise FieldError(f"{score_field(name).label} is locked while the entry is marked not suitable.")
            if score not in _SCORES_BY_KEY[name]:
                raise FieldError(f"{score} is not a valid {score_field(name).label} score.")
        return replace(entry, **{name: score})

    raise FieldError(f"Unknown field: {name!r}.")


def set_completeness(entry: SubmissionEntry, key: str, satisfied: bool) -> SubmissionEntry:
    if key not in COMPLETENESS_KEYS:
        raise FieldError(f"Unknown completeness category: {key!r}.")
    if is_gated(entry):
        if satisfied:
            raise FieldError("Completeness is locked while the entry is marked not suitable.")
        return entry
    flags = dict(entry.completeness)
    flags[key] = bool(satisfied)
    return replace(entry, completeness=flags)


def set_fail_override(entry: SubmissionEntry) -> SubmissionEntry:
    # Sticky until reset; a later "No" will not gate again.
    if entry.suitable == "No" and not entry.fail_override:
        log.debug("fail override for team=%s judge=%s", entry.team_id, entry.judge_id)
    return apply_gate(replace(entry, fail_override=True))


def reset() -> SubmissionEntry:
    return SubmissionEntry()


def missing_required(entry: SubmissionEntry) -> List[str]:
    missing = []
    for name in ("team_id", "site_number", "judge_id", "suitable"):
        if is_blank(getattr(entry, name)):
            missing.append(name)
    return missing
