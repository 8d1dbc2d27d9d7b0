"""
In-memory reference ledger.

Implements the ledger side of the submission contract: re-validate, re-enforce
the cooldown with its own gate, recompute the composite score against its own
bonus context, then update per-user lifetime aggregates and append the raw
session. Nothing is persisted.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Optional

from .bonuses import build_bonus_context
from .gate import SubmissionGate, SubmissionRecord
from .scoring import ChallengeClaims, ChallengeSpec, ScoreBreakdown, ScoreInputs
from .settings import DEFAULT_POLICY, Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionEntry:
    user: str
    record: SubmissionRecord
    score: int
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        out = self.record.to_dict()
        out.update({"user": self.user, "score": self.score, "timestamp": self.timestamp})
        return out


@dataclass(frozen=True)
class UserAggregate:
    user: str
    total_reps: int = 0
    average_form_accuracy: int = 0
    best_streak: int = 0
    sessions_completed: int = 0
    total_score: int = 0
    last_timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _fold(agg: UserAggregate, record: SubmissionRecord, score: int, now: float) -> UserAggregate:
    total_reps = agg.total_reps + record.reps
    # rep-weighted running mean, truncated like the rest of the ledger math
    weighted = agg.average_form_accuracy * agg.total_reps + record.average_form_accuracy * record.reps
    return replace(
        agg,
        total_reps=total_reps,
        average_form_accuracy=weighted // total_reps if total_reps else 0,
        best_streak=max(agg.best_streak, record.best_streak),
        sessions_completed=agg.sessions_completed + 1,
        total_score=agg.total_score + score,
        last_timestamp=now,
    )


def score_inputs_from_record(record: SubmissionRecord) -> ScoreInputs:
    """The score inputs the ledger sees from a submitted record."""
    return ScoreInputs(
        total_reps=record.reps,
        average_form_accuracy=record.average_form_accuracy,
        best_streak=record.best_streak,
        elapsed_seconds=record.duration_seconds,
    )


class InMemoryLedger:
    def __init__(
        self,
        policy: Policy = DEFAULT_POLICY,
        month_of: Optional[Callable[[float], int]] = None,
    ):
        self.policy = policy
        self.gate = SubmissionGate(policy)
        self.claims = ChallengeClaims()
        self.challenge: Optional[ChallengeSpec] = None
        self._month_of = month_of or _utc_month
        self._lock = threading.Lock()
        self._users: dict[str, UserAggregate] = {}
        self._sessions: list[SessionEntry] = []

    def set_challenge(self, challenge: Optional[ChallengeSpec], now: Optional[float] = None) -> None:
        """Install the current challenge and drop claims on challenges that have expired."""
        now = time.time() if now is None else now
        with self._lock:
            self.challenge = challenge
        self.claims.prune(now)
        if challenge is not None:
            logger.info(
                "ledger: challenge %s target=%s multiplier=%sbps expires_at=%s",
                challenge.kind.name.lower(), challenge.target,
                challenge.multiplier_bps, challenge.expires_at,
            )

    def submit(self, user: str, record: SubmissionRecord, now: float) -> tuple[SessionEntry, ScoreBreakdown]:
        """Accept a session. Raises GateError subclasses exactly like the client gate."""
        self.gate.try_submit(user, record, now)
        with self._lock:
            challenge = self.challenge
        ctx = build_bonus_context(self._month_of(now), record.region, challenge, now=now)
        breakdown = self.claims.score_and_claim(user, score_inputs_from_record(record), ctx, self.policy)
        entry = SessionEntry(user=user, record=record, score=breakdown.total, timestamp=now)
        with self._lock:
            agg = self._users.get(user) or UserAggregate(user=user)
            self._users[user] = _fold(agg, record, breakdown.total, now)
            self._sessions.append(entry)
        logger.info("ledger: stored session for %s score=%s", user, breakdown.total)
        return entry, breakdown

    def user(self, user: str) -> Optional[UserAggregate]:
        with self._lock:
            return self._users.get(user)

    def user_sessions(self, user: str) -> list[SessionEntry]:
        with self._lock:
            return [s for s in self._sessions if s.user == user]

    def sessions(self) -> list[SessionEntry]:
        with self._lock:
            return list(self._sessions)

    def leaderboard(self, limit: Optional[int] = None) -> list[UserAggregate]:
        with self._lock:
            rows = sorted(
                self._users.values(),
                key=lambda a: (-a.total_score, -a.total_reps, a.user),
            )
        return rows[:limit] if limit is not None else rows


def _utc_month(ts: float) -> int:
    return time.gmtime(ts).tm_mon
