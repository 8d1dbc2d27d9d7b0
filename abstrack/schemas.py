"""Request/response bodies for the web service."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .gate import SubmissionRecord
from .scoring import BonusContext, ChallengeKind, ChallengeSpec, ScoreInputs


class StatsIn(BaseModel):
    reps: int = Field(ge=0)
    average_form_accuracy: int = Field(ge=0, le=100)
    best_streak: int = Field(default=0, ge=0)
    duration_seconds: int = Field(default=0, ge=0)

    def to_inputs(self) -> ScoreInputs:
        return ScoreInputs(
            total_reps=self.reps,
            average_form_accuracy=self.average_form_accuracy,
            best_streak=self.best_streak,
            elapsed_seconds=self.duration_seconds,
        )


class ChallengeIn(BaseModel):
    kind: str
    target: int = Field(ge=0)
    multiplier_bps: int = Field(ge=0)
    expires_at: int

    def to_spec(self) -> ChallengeSpec:
        return ChallengeSpec(
            kind=ChallengeKind[self.kind.strip().upper()],
            target=self.target,
            multiplier_bps=self.multiplier_bps,
            expires_at=self.expires_at,
        )


class ScoreRequest(BaseModel):
    stats: StatsIn
    seasonal_bonus_bps: int = Field(default=0, ge=0)
    regional_bonus_bps: int = Field(default=0, ge=0)
    challenge: Optional[ChallengeIn] = None
    challenge_claimed: bool = False
    evaluated_at: Optional[float] = None

    def to_context(self, now: float) -> BonusContext:
        return BonusContext(
            seasonal_bonus_bps=self.seasonal_bonus_bps,
            regional_bonus_bps=self.regional_bonus_bps,
            challenge=self.challenge.to_spec() if self.challenge else None,
            challenge_claimed=self.challenge_claimed,
            evaluated_at=self.evaluated_at if self.evaluated_at is not None else now,
        )


class SubmissionIn(BaseModel):
    user: str = Field(min_length=1)
    reps: int
    average_form_accuracy: int
    best_streak: int = 0
    duration_seconds: int = Field(default=0, ge=0)
    region: Optional[str] = None

    def to_record(self, default_region: str) -> SubmissionRecord:
        return SubmissionRecord(
            reps=self.reps,
            average_form_accuracy=self.average_form_accuracy,
            best_streak=self.best_streak,
            duration_seconds=self.duration_seconds,
            region=self.region or default_region,
        )
