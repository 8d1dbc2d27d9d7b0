"""
Session aggregation: the one stateful stage of the pipeline.
Holds the ExerciseState / stats pair behind a single lock so frames delivered
from several callbacks are still applied one at a time, in order.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from .geometry import hinge_angle
from .pose import JointFrame
from .reps import ExerciseState, step
from .settings import DEFAULT_POLICY, Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepDelta:
    state: ExerciseState
    rep_completed: bool


@dataclass(frozen=True)
class SessionStats:
    total_reps: int = 0
    accuracy_history: tuple[int, ...] = ()
    current_streak: int = 0
    best_streak: int = 0
    start_timestamp: float = 0.0
    elapsed_seconds: int = 0
    average_form_accuracy: int = 100
    finalized: bool = False

    def __post_init__(self) -> None:
        if len(self.accuracy_history) != self.total_reps:
            raise ValueError(
                f"accuracy history has {len(self.accuracy_history)} entries for {self.total_reps} reps"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_reps": self.total_reps,
            "accuracy_history": list(self.accuracy_history),
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "start_timestamp": self.start_timestamp,
            "elapsed_seconds": self.elapsed_seconds,
            "average_form_accuracy": self.average_form_accuracy,
            "finalized": self.finalized,
        }


def average_accuracy(history: tuple[int, ...] | list[int]) -> int:
    """Mean of the history rounded half-up, in integers; 100 for an empty history."""
    if not history:
        return 100
    n = len(history)
    return (2 * sum(history) + n) // (2 * n)


class SessionAggregator:
    """
    Running statistics for one session.
    process_frame/process_angle drive geometry -> state machine -> stats
    under the lock; finalize freezes the snapshot.
    """

    def __init__(self, start_timestamp: float, policy: Policy = DEFAULT_POLICY):
        self.policy = policy
        self._lock = threading.Lock()
        self._start_timestamp = float(start_timestamp)
        self._state = ExerciseState()
        self._history: list[int] = []
        self._current_streak = 0
        self._best_streak = 0
        self._final: Optional[SessionStats] = None

    @property
    def state(self) -> ExerciseState:
        with self._lock:
            return self._state

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._final is not None

    def reset(self, now: float) -> None:
        with self._lock:
            self._start_timestamp = float(now)
            self._state = ExerciseState()
            self._history.clear()
            self._current_streak = 0
            self._best_streak = 0
            self._final = None
        logger.info("session: reset at %s", now)

    def process_frame(self, frame: JointFrame) -> ExerciseState:
        """
        Run one frame through the pipeline. InsufficientConfidence propagates
        and leaves every piece of state untouched.
        """
        angle = hinge_angle(frame, self.policy.min_visibility)
        return self.process_angle(angle)

    def process_angle(self, angle: float) -> ExerciseState:
        with self._lock:
            if self._final is not None:
                return self._state
            new_state, completed = step(self._state, angle)
            self._state = new_state
            self._apply(RepDelta(new_state, completed))
            return new_state

    def on_frame_processed(self, delta: RepDelta) -> None:
        """
        Fold an externally computed transition into the stats. The delta must
        continue from the current state: rep_count stays put, or grows by one
        when a rep completed. Anything else raises ValueError.
        """
        with self._lock:
            if self._final is not None:
                return
            expected = self._state.rep_count + (1 if delta.rep_completed else 0)
            if delta.state.rep_count != expected:
                raise ValueError(
                    f"delta rep_count {delta.state.rep_count} does not follow {self._state.rep_count}"
                    f" (rep_completed={delta.rep_completed})"
                )
            self._state = delta.state
            self._apply(delta)

    def _apply(self, delta: RepDelta) -> None:
        if not delta.rep_completed:
            return
        accuracy = delta.state.last_form_accuracy
        self._history.append(accuracy)
        if accuracy >= self.policy.streak_threshold:
            self._current_streak += 1
            if self._current_streak > self._best_streak:
                self._best_streak = self._current_streak
        else:
            self._current_streak = 0
        logger.info(
            "session: rep %s accuracy=%s streak=%s best=%s",
            len(self._history), accuracy, self._current_streak, self._best_streak,
        )

    def _stats(self, elapsed: int, finalized: bool) -> SessionStats:
        history = tuple(self._history)
        return SessionStats(
            total_reps=len(history),
            accuracy_history=history,
            current_streak=self._current_streak,
            best_streak=self._best_streak,
            start_timestamp=self._start_timestamp,
            elapsed_seconds=elapsed,
            average_form_accuracy=average_accuracy(history),
            finalized=finalized,
        )

    def _elapsed(self, now: float) -> int:
        return max(0, int(round(now - self._start_timestamp)))

    def snapshot(self, now: Optional[float] = None) -> SessionStats:
        with self._lock:
            if self._final is not None:
                return self._final
            elapsed = self._elapsed(now) if now is not None else 0
            return self._stats(elapsed, finalized=False)

    def finalize(self, now: float) -> SessionStats:
        """Freeze and return the session stats. Later calls return the same snapshot."""
        with self._lock:
            if self._final is None:
                self._final = self._stats(self._elapsed(now), finalized=True)
                logger.info(
                    "session: finalized reps=%s avg_accuracy=%s best_streak=%s elapsed=%ss",
                    self._final.total_reps,
                    self._final.average_form_accuracy,
                    self._final.best_streak,
                    self._final.elapsed_seconds,
                )
            return self._final
