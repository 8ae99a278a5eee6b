from __future__ import annotations

import logging
import secrets
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import config, scoring
from .scoring import (
    COMPLETENESS_KEYS,
    SCORE_KEYS,
    ScoringError,
    SubmissionEntry,
    is_gated,
    missing_required,
)
from .submission import (
    SAVED_MESSAGE,
    DuplicateError,
    ScoreStore,
    StoreError,
    ValidationError,
    submit,
    utcnow,
)

log = logging.getLogger(__name__)


class SaveInProgressError(ScoringError):
    def __init__(self):
        super().__init__("Save already in progress.")


class ScoringSession:
    """One judge's scoring sheet: owns a single entry and applies every edit to it.

    Teams and judges are loaded once when the session is opened. Saves are
    serialized per session; a second save while one is in flight is refused.
    """

    def __init__(
        self,
        store: ScoreStore,
        teams: List[Dict[str, Any]],
        judges: List[Dict[str, Any]],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.teams = list(teams)
        self.judges = list(judges)
        self.clock = clock
        self.entry: SubmissionEntry = scoring.reset()
        self.message = ""
        self._edit_lock = threading.Lock()
        self._save_lock = threading.Lock()

    @property
    def gated(self) -> bool:
        return is_gated(self.entry)

    @property
    def saving(self) -> bool:
        return self._save_lock.locked()

    # -----------------------
    # Edits
    # -----------------------
    def set_field(self, name: str, value: Any) -> SubmissionEntry:
        with self._edit_lock:
            self.entry = scoring.set_field(self.entry, name, value, self.teams)
            return self.entry

    def set_completeness(self, key: str, satisfied: bool) -> SubmissionEntry:
        with self._edit_lock:
            self.entry = scoring.set_completeness(self.entry, key, satisfied)
            return self.entry

    def set_fail_override(self) -> SubmissionEntry:
        with self._edit_lock:
            self.entry = scoring.set_fail_override(self.entry)
            return self.entry

    def reset(self) -> SubmissionEntry:
        with self._edit_lock:
            self.entry = scoring.reset()
            return self.entry

    # -----------------------
    # Save
    # -----------------------
    def save(self) -> bool:
        if not self._save_lock.acquire(blocking=False):
            self.message = SaveInProgressError().message
            log.warning("save refused, another save is in flight")
            return False
        try:
            return self._save()
        finally:
            self._save_lock.release()

    def _save(self) -> bool:
        self.message = ""
        entry = self.entry
        try:
            record = submit(entry, self.store, self.clock)
        except ValidationError as e:
            log.warning("save rejected, missing %s", ", ".join(e.missing))
            self.message = e.message
            return False
        except DuplicateError as e:
            log.warning(
                "save rejected for team=%s judge=%s site=%s: %s",
                entry.team_id, entry.judge_id, entry.site_number, e.message,
            )
            self.message = e.message
            return False
        except StoreError as e:
            # Entry stays as it was so the judge can retry.
            log.error("insert failed for team=%s judge=%s: %s", entry.team_id, entry.judge_id, e.detail)
            self.message = e.message
            return False

        log.info(
            "saved score for team=%s judge=%s site=%s suitable=%s",
            record["team_id"], record["judge_id"], record["site_number"], entry.suitable,
        )
        with self._edit_lock:
            self.entry = scoring.reset()
        self.message = SAVED_MESSAGE
        return True

    # -----------------------
    # Presentation
    # -----------------------
    def team_name(self, team_id: Optional[int]) -> str:
        for t in self.teams:
            if t.get("id") == team_id:
                return str(t.get("name") or "")
        return ""

    def judge_name(self, judge_id: Optional[int]) -> str:
        for j in self.judges:
            if j.get("id") == judge_id:
                return str(j.get("name") or "")
        return ""

    def view(self) -> Dict[str, Any]:
        entry = self.entry
        gated = is_gated(entry)
        saving = self.saving
        enabled: Dict[str, bool] = {k: not gated for k in SCORE_KEYS}
        enabled.update({k: not gated for k in COMPLETENESS_KEYS})
        enabled["override"] = gated
        enabled["save"] = not missing_required(entry) and not saving
        return {
            "entry": entry.as_dict(),
            "team_name": self.team_name(entry.team_id),
            "judge_name": self.judge_name(entry.judge_id),
            "gated": gated,
            "enabled": enabled,
            "message": self.message,
            "saving": saving,
        }


class SessionRegistry:
    """In-memory token -> ScoringSession map for the web app.

    Bounded two ways: sessions idle longer than ``idle_seconds`` expire, and
    past ``max_sessions`` the least recently used one is dropped.
    """

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max_sessions or config.max_sessions()
        self.idle_seconds = idle_seconds or config.session_idle_seconds()
        self.clock = clock
        # token -> (session, last used); oldest first
        self._sessions: "OrderedDict[str, Tuple[ScoringSession, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict(self, now: float) -> None:
        expired = [t for t, (_, seen) in self._sessions.items() if now - seen > self.idle_seconds]
        for token in expired:
            del self._sessions[token]
        while len(self._sessions) > self.max_sessions:
            self._sessions.popitem(last=False)
        if expired:
            log.debug("expired %d idle scoring sessions", len(expired))

    def open(self, session: ScoringSession) -> str:
        token = secrets.token_urlsafe(16)
        with self._lock:
            now = self.clock()
            self._sessions[token] = (session, now)
            self._evict(now)
        return token

    def get(self, token: str) -> Optional[ScoringSession]:
        with self._lock:
            now = self.clock()
            self._evict(now)
            item = self._sessions.get(token)
            if item is None:
                return None
            self._sessions[token] = (item[0], now)
            self._sessions.move_to_end(token)
            return item[0]

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
