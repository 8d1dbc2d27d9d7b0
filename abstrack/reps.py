"""
Two-phase repetition state machine for the hinge angle.
A rep is counted on DOWN -> UP (peak contraction); UP -> DOWN only re-arms.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

# Hinge angle (deg) below which a DOWN user is considered UP (rep counted).
UP_ANGLE_DEG = 55.0
# Hinge angle (deg) above which an UP user returns to DOWN.
DOWN_ANGLE_DEG = 105.0
# Ideal angle per phase and the band around it that scores full accuracy.
IDEAL_UP_DEG = 55.0
IDEAL_DOWN_DEG = 105.0
ACCURACY_TOLERANCE_DEG = 10.0
# Accuracy points lost per degree outside the band's center.
ACCURACY_PENALTY_PER_DEG = 2.0


class Phase(str, enum.Enum):
    DOWN = "down"
    UP = "up"


@dataclass(frozen=True)
class ExerciseState:
    rep_count: int = 0
    phase: Phase = Phase.DOWN
    last_angle: float = 0.0
    last_form_accuracy: int = 100

    def to_dict(self) -> dict:
        return {
            "rep_count": self.rep_count,
            "phase": self.phase.value,
            "angle": self.last_angle,
            "form_accuracy": self.last_form_accuracy,
        }


def form_accuracy(phase: Phase, angle: float) -> int:
    """100 within +/-10 deg of the phase's ideal angle, then linear decay to 0."""
    ideal = IDEAL_UP_DEG if phase is Phase.UP else IDEAL_DOWN_DEG
    deviation = abs(angle - ideal)
    if deviation <= ACCURACY_TOLERANCE_DEG:
        return 100
    raw = max(0.0, 100.0 - ACCURACY_PENALTY_PER_DEG * deviation)
    # half-up so .5 never depends on float banker's rounding
    return max(0, min(100, int(raw + 0.5)))


def step(state: ExerciseState, angle: float) -> tuple[ExerciseState, bool]:
    """Advance the machine by one angle. Returns (new_state, rep_completed)."""
    phase = state.phase
    count = state.rep_count
    completed = False
    if phase is Phase.DOWN:
        if angle < UP_ANGLE_DEG:
            phase = Phase.UP
            count += 1
            completed = True
    elif angle > DOWN_ANGLE_DEG:
        phase = Phase.DOWN
    new_state = replace(
        state,
        rep_count=count,
        phase=phase,
        last_angle=float(angle),
        last_form_accuracy=form_accuracy(phase, angle),
    )
    if completed:
        logger.debug("rep %s at angle %.1f (accuracy %s)", count, angle, new_state.last_form_accuracy)
    return new_state, completed


def replay(
    angles: Iterable[float],
    state: Optional[ExerciseState] = None,
) -> tuple[ExerciseState, list[int]]:
    """
    Fold a sequence of angles through the machine.
    Returns the final state and the accuracy reported at each completed rep.
    """
    current = state if state is not None else ExerciseState()
    rep_accuracies: list[int] = []
    for angle in angles:
        current, completed = step(current, angle)
        if completed:
            rep_accuracies.append(current.last_form_accuracy)
    return current, rep_accuracies
