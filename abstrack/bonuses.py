"""
Default bonus tables and BonusContext assembly.
Live values come from the bonus-refresh and challenge services; these tables
are what those services publish when they have nothing newer.
"""
from __future__ import annotations

import time
from typing import Optional

from .scoring import BonusContext, ChallengeKind, ChallengeSpec

# Refresh interval of the seasonal/regional bonus service.
BONUS_REFRESH_SECONDS = 6 * 60 * 60
# Lifetime of one daily challenge.
CHALLENGE_LIFETIME_SECONDS = 24 * 60 * 60

# Regional bonuses (bps) by climate region.
REGIONAL_BONUS_BPS = {
    "temperate": 200,
    "tropical": 600,
    "desert": 1000,
    "arctic": 1200,
    "mountain": 800,
    "coastal": 300,
}


def seasonal_bonus_bps(month: int) -> int:
    """Seasonal bonus for a calendar month (1..12). Winter pays most."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be within 1..12, got {month}")
    if month == 12 or month <= 2:
        return 1000
    if 6 <= month <= 8:
        return 800
    if month in (3, 11):
        return 500
    return 200


def regional_bonus_bps(region: Optional[str]) -> int:
    if not region:
        return 0
    return REGIONAL_BONUS_BPS.get(region.strip().lower(), 0)


def new_challenge(
    kind: ChallengeKind | int | str,
    target: int,
    multiplier_bps: int,
    issued_at: float,
    lifetime_seconds: int = CHALLENGE_LIFETIME_SECONDS,
) -> ChallengeSpec:
    if isinstance(kind, str):
        kind = ChallengeKind[kind.strip().upper()]
    if target < 0:
        raise ValueError("challenge target must be non-negative")
    return ChallengeSpec(
        kind=ChallengeKind(kind),
        target=int(target),
        multiplier_bps=int(multiplier_bps),
        expires_at=int(issued_at) + lifetime_seconds,
    )


def build_bonus_context(
    month: int,
    region: Optional[str],
    challenge: Optional[ChallengeSpec] = None,
    claimed: bool = False,
    now: Optional[float] = None,
) -> BonusContext:
    return BonusContext(
        seasonal_bonus_bps=seasonal_bonus_bps(month),
        regional_bonus_bps=regional_bonus_bps(region),
        challenge=challenge,
        challenge_claimed=claimed,
        evaluated_at=time.time() if now is None else now,
    )
