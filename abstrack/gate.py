"""
Submission gate: bounds checks and per-user cooldown before a session leaves
for the ledger. This is an optimistic client-side check; the ledger enforces
the same rules again.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import asdict, dataclass
from typing import Any

from .session import SessionStats
from .settings import DEFAULT_POLICY, Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionRecord:
    reps: int
    average_form_accuracy: int
    best_streak: int
    duration_seconds: int
    region: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class GateError(ValueError):
    code = "GATE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class RepsOutOfRange(GateError):
    code = "REPS_OUT_OF_RANGE"

    def __init__(self, reps: int, max_reps: int):
        self.reps = reps
        self.max_reps = max_reps
        super().__init__(f"reps must be within 1..{max_reps}, got {reps}")


class AccuracyOutOfRange(GateError):
    code = "ACCURACY_OUT_OF_RANGE"

    def __init__(self, accuracy: int):
        self.accuracy = accuracy
        super().__init__(f"average form accuracy must be within 0..100, got {accuracy}")


class StreakOutOfRange(GateError):
    code = "STREAK_OUT_OF_RANGE"

    def __init__(self, streak: int, reps: int):
        self.streak = streak
        self.reps = reps
        super().__init__(f"best streak {streak} cannot exceed reps {reps}")


class CooldownActive(GateError):
    code = "COOLDOWN_ACTIVE"

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(f"please wait {remaining_seconds} seconds before next submission")

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["remaining_seconds"] = self.remaining_seconds
        return out


def validate_record(record: SubmissionRecord, policy: Policy = DEFAULT_POLICY) -> None:
    if record.reps <= 0 or record.reps > policy.max_reps:
        raise RepsOutOfRange(record.reps, policy.max_reps)
    if record.average_form_accuracy < 0 or record.average_form_accuracy > 100:
        raise AccuracyOutOfRange(record.average_form_accuracy)
    if record.best_streak < 0 or record.best_streak > record.reps:
        raise StreakOutOfRange(record.best_streak, record.reps)


def record_from_stats(stats: SessionStats, region: str) -> SubmissionRecord:
    return SubmissionRecord(
        reps=stats.total_reps,
        average_form_accuracy=stats.average_form_accuracy,
        best_streak=stats.best_streak,
        duration_seconds=stats.elapsed_seconds,
        region=region,
    )


class SubmissionGate:
    """Per-user cooldown state; check and set run under one lock."""

    def __init__(self, policy: Policy = DEFAULT_POLICY):
        self.policy = policy
        self._lock = threading.Lock()
        self._last_submission: dict[str, float] = {}

    def _remaining(self, user: str, now: float) -> int:
        last = self._last_submission.get(user)
        if last is None:
            return 0
        remaining = last + self.policy.cooldown_seconds - now
        if remaining <= 0:
            return 0
        return max(1, math.ceil(remaining))

    def remaining_cooldown(self, user: str, now: float) -> int:
        with self._lock:
            return self._remaining(user, now)

    def last_submission(self, user: str) -> float | None:
        with self._lock:
            return self._last_submission.get(user)

    def try_submit(self, user: str, record: SubmissionRecord, now: float) -> SubmissionRecord:
        """Validate and stamp a submission. Raises a GateError subclass on rejection."""
        try:
            validate_record(record, self.policy)
        except GateError as e:
            logger.warning("gate: rejected %s: %s", user, e)
            raise
        with self._lock:
            remaining = self._remaining(user, now)
            if remaining > 0:
                logger.info("gate: cooldown for %s (%ss left)", user, remaining)
                raise CooldownActive(remaining)
            self._last_submission[user] = now
        logger.info(
            "gate: accepted %s reps=%s accuracy=%s streak=%s duration=%ss region=%s",
            user, record.reps, record.average_form_accuracy, record.best_streak,
            record.duration_seconds, record.region,
        )
        return record
