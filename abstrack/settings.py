"""
Policy constants for scoring, streaks and submission gating.
Defaults live here; environment variables (ABSTRACK_*) override them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

# Per-rep accuracy (0..100) needed to extend a streak.
STREAK_ACCURACY_THRESHOLD = 80
# Duration component of the base score: one point per this many seconds.
TIME_BONUS_DIVISOR = 10
# Minimum wait between accepted submissions for one user.
COOLDOWN_SECONDS = 60
# Hard ceiling on reps in one submitted session.
MAX_REPS = 500
# Landmark visibility below this rejects the frame.
MIN_VISIBILITY = 0.5
# Region used when the caller does not name one.
DEFAULT_REGION = "temperate"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("ignoring %s=%r (not an integer), using %s", name, raw, default)
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("ignoring %s=%r (not a number), using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Policy:
    streak_threshold: int = STREAK_ACCURACY_THRESHOLD
    time_bonus_divisor: int = TIME_BONUS_DIVISOR
    cooldown_seconds: int = COOLDOWN_SECONDS
    max_reps: int = MAX_REPS
    min_visibility: float = MIN_VISIBILITY
    default_region: str = DEFAULT_REGION

    def __post_init__(self) -> None:
        if self.time_bonus_divisor <= 0:
            raise ValueError("time_bonus_divisor must be positive")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative")
        if self.max_reps <= 0:
            raise ValueError("max_reps must be positive")
        if not 0 <= self.streak_threshold <= 100:
            raise ValueError("streak_threshold must be within 0..100")


def load_policy(environ: Optional[Mapping[str, str]] = None) -> Policy:
    """Build a Policy from ABSTRACK_* environment variables (or a given mapping)."""
    env = os.environ if environ is None else environ
    return Policy(
        streak_threshold=_env_int(env, "ABSTRACK_STREAK_THRESHOLD", STREAK_ACCURACY_THRESHOLD),
        time_bonus_divisor=_env_int(env, "ABSTRACK_TIME_BONUS_DIVISOR", TIME_BONUS_DIVISOR),
        cooldown_seconds=_env_int(env, "ABSTRACK_COOLDOWN_SECONDS", COOLDOWN_SECONDS),
        max_reps=_env_int(env, "ABSTRACK_MAX_REPS", MAX_REPS),
        min_visibility=_env_float(env, "ABSTRACK_MIN_VISIBILITY", MIN_VISIBILITY),
        default_region=env.get("ABSTRACK_DEFAULT_REGION") or DEFAULT_REGION,
    )


DEFAULT_POLICY = Policy()
