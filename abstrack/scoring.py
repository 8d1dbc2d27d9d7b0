"""
Composite score: one deterministic integer per finished session.

All bonus math is integer basis points (10000 = 100%) with truncating
division, so a client estimate and the ledger's recomputation agree bit for
bit. The client copy is advisory only; the ledger's result is authoritative.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from .session import SessionStats
from .settings import DEFAULT_POLICY, Policy

logger = logging.getLogger(__name__)

BPS_SCALE = 10000
REPS_WEIGHT = 2
STREAK_WEIGHT = 5
# Combo challenges also require this average accuracy.
COMBO_MIN_ACCURACY = 90


class ChallengeKind(enum.IntEnum):
    REPS = 0
    DURATION = 1
    STREAK = 2
    ACCURACY = 3
    COMBO = 4


@dataclass(frozen=True)
class ChallengeSpec:
    kind: ChallengeKind
    target: int
    multiplier_bps: int
    expires_at: int

    def is_active(self, now: float) -> bool:
        return now < self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.name.lower(),
            "target": self.target,
            "multiplier_bps": self.multiplier_bps,
            "expires_at": self.expires_at,
            "description": describe_challenge(self),
        }


@dataclass(frozen=True)
class BonusContext:
    seasonal_bonus_bps: int = 0
    regional_bonus_bps: int = 0
    challenge: Optional[ChallengeSpec] = None
    challenge_claimed: bool = False
    evaluated_at: float = 0.0

    def __post_init__(self) -> None:
        if self.seasonal_bonus_bps < 0 or self.regional_bonus_bps < 0:
            raise ValueError("bonus basis points must be non-negative")
        if self.challenge is not None and self.challenge.multiplier_bps < 0:
            raise ValueError("challenge multiplier must be non-negative")


@dataclass(frozen=True)
class ScoreBreakdown:
    base: int
    weather_multiplier_bps: int
    after_weather: int
    challenge_met: bool
    challenge_applied: bool
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "base": self.base,
            "weather_multiplier_bps": self.weather_multiplier_bps,
            "after_weather": self.after_weather,
            "challenge_met": self.challenge_met,
            "challenge_applied": self.challenge_applied,
            "total": self.total,
        }


@dataclass(frozen=True)
class ScoreInputs:
    """The session metrics the composite score reads, without per-rep history."""
    total_reps: int
    average_form_accuracy: int
    best_streak: int = 0
    elapsed_seconds: int = 0

    @classmethod
    def from_stats(cls, stats: SessionStats) -> ScoreInputs:
        return cls(
            total_reps=stats.total_reps,
            average_form_accuracy=stats.average_form_accuracy,
            best_streak=stats.best_streak,
            elapsed_seconds=stats.elapsed_seconds,
        )


# Anything carrying the four scored metrics.
Scorable = Union[SessionStats, ScoreInputs]


def base_score(stats: Scorable, policy: Policy = DEFAULT_POLICY) -> int:
    reps = stats.total_reps
    return (
        REPS_WEIGHT * reps
        + (stats.average_form_accuracy * reps) // 100
        + STREAK_WEIGHT * stats.best_streak
        + stats.elapsed_seconds // policy.time_bonus_divisor
    )


def challenge_met(stats: Scorable, challenge: ChallengeSpec) -> bool:
    """Whether the session's metric for the challenge kind reaches the target."""
    kind = challenge.kind
    if kind is ChallengeKind.REPS:
        return stats.total_reps >= challenge.target
    if kind is ChallengeKind.DURATION:
        return stats.elapsed_seconds >= challenge.target
    if kind is ChallengeKind.STREAK:
        return stats.best_streak >= challenge.target
    if kind is ChallengeKind.ACCURACY:
        return stats.average_form_accuracy >= challenge.target
    if kind is ChallengeKind.COMBO:
        return (
            stats.total_reps >= challenge.target
            and stats.average_form_accuracy >= COMBO_MIN_ACCURACY
        )
    raise ValueError(f"unknown challenge kind: {kind!r}")


def score_breakdown(
    stats: Scorable,
    ctx: BonusContext,
    policy: Policy = DEFAULT_POLICY,
) -> ScoreBreakdown:
    base = base_score(stats, policy)
    multiplier = BPS_SCALE + ctx.seasonal_bonus_bps + ctx.regional_bonus_bps
    after_weather = base * multiplier // BPS_SCALE

    met = False
    applied = False
    total = after_weather
    challenge = ctx.challenge
    if challenge is not None and challenge.is_active(ctx.evaluated_at):
        met = challenge_met(stats, challenge)
        if met and not ctx.challenge_claimed:
            total = after_weather * challenge.multiplier_bps // BPS_SCALE
            applied = True
    return ScoreBreakdown(
        base=base,
        weather_multiplier_bps=multiplier,
        after_weather=after_weather,
        challenge_met=met,
        challenge_applied=applied,
        total=total,
    )


def composite_score(
    stats: Scorable,
    ctx: BonusContext,
    policy: Policy = DEFAULT_POLICY,
) -> int:
    return score_breakdown(stats, ctx, policy).total


class ChallengeClaims:
    """
    Per-user claim flags for challenge instances. A flag is set at most once;
    claiming again is a no-op that reports False.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed: set[tuple[ChallengeSpec, str]] = set()

    def is_claimed(self, challenge: ChallengeSpec, user: str) -> bool:
        with self._lock:
            return (challenge, user) in self._claimed

    def claim(self, challenge: ChallengeSpec, user: str) -> bool:
        with self._lock:
            key = (challenge, user)
            if key in self._claimed:
                return False
            self._claimed.add(key)
        logger.info("challenge: %s claimed by %s", challenge.kind.name.lower(), user)
        return True

    def prune(self, now: float) -> int:
        """Forget claims on challenges that expired at or before now. Returns how many were dropped."""
        with self._lock:
            expired = {key for key in self._claimed if not key[0].is_active(now)}
            self._claimed -= expired
        if expired:
            logger.info("challenge: pruned %s expired claims", len(expired))
        return len(expired)

    def score_and_claim(
        self,
        user: str,
        stats: Scorable,
        ctx: BonusContext,
        policy: Policy = DEFAULT_POLICY,
    ) -> ScoreBreakdown:
        """
        Score with this registry's claim flag and, if the challenge bonus
        applies, record the claim. Check and set happen under one lock so
        concurrent sessions of one user get the bonus once.
        """
        challenge = ctx.challenge
        with self._lock:
            claimed = challenge is not None and (challenge, user) in self._claimed
            effective = replace(ctx, challenge_claimed=claimed or ctx.challenge_claimed)
            result = score_breakdown(stats, effective, policy)
            if result.challenge_applied and challenge is not None:
                self._claimed.add((challenge, user))
        if result.challenge_applied:
            logger.info("challenge: %s claimed by %s", challenge.kind.name.lower(), user)
        return result


def describe_challenge(challenge: ChallengeSpec) -> str:
    target = challenge.target
    kind = challenge.kind
    if kind is ChallengeKind.REPS:
        return f"Complete {target} reps in your workout"
    if kind is ChallengeKind.DURATION:
        return f"Workout for at least {target // 60}:{target % 60:02d} minutes"
    if kind is ChallengeKind.STREAK:
        return f"Achieve a streak of {target} consecutive reps"
    if kind is ChallengeKind.ACCURACY:
        return f"Maintain {target}% form accuracy"
    if kind is ChallengeKind.COMBO:
        return f"Complete {target} reps with {COMBO_MIN_ACCURACY}%+ accuracy"
    return f"Complete the challenge target: {target}"
