import threading

import pytest

from abstrack.geometry import InsufficientConfidence
from abstrack.pose import Landmark, LandmarkIdx
from abstrack.reps import ExerciseState, Phase
from abstrack.session import RepDelta, SessionAggregator, average_accuracy
from abstrack.settings import Policy


def _feed(agg, angles):
    for a in angles:
        agg.process_angle(a)
        snap = agg.snapshot()
        assert snap.best_streak >= snap.current_streak
        assert len(snap.accuracy_history) == snap.total_reps


def test_streaks_follow_accuracy_threshold():
    agg = SessionAggregator(start_timestamp=0.0)
    # reps 1, 2 good; rep 3 at 30 deg scores 50; rep 4 good again
    _feed(agg, [50, 110, 50, 110, 30, 110, 52])
    snap = agg.snapshot()
    assert snap.total_reps == 4
    assert snap.accuracy_history == (100, 100, 50, 100)
    assert snap.current_streak == 1
    assert snap.best_streak == 2


def test_streak_threshold_is_policy():
    agg = SessionAggregator(start_timestamp=0.0, policy=Policy(streak_threshold=40))
    _feed(agg, [50, 110, 30])
    assert agg.snapshot().current_streak == 2


def test_finalize_computes_duration_and_average():
    agg = SessionAggregator(start_timestamp=1000.0)
    _feed(agg, [50, 110, 30])
    stats = agg.finalize(1125.4)
    assert stats.finalized
    assert stats.elapsed_seconds == 125
    assert stats.average_form_accuracy == 75
    assert stats.total_reps == 2


def test_finalize_is_idempotent():
    agg = SessionAggregator(start_timestamp=0.0)
    _feed(agg, [50, 110, 50])
    first = agg.finalize(60.0)
    second = agg.finalize(60.0)
    third = agg.finalize(999.0)
    assert first == second == third
    agg.process_angle(110)
    agg.process_angle(40)
    assert agg.finalize(60.0).total_reps == 2


def test_empty_session_average_is_100():
    stats = SessionAggregator(start_timestamp=5.0).finalize(5.0)
    assert stats.total_reps == 0
    assert stats.average_form_accuracy == 100
    assert stats.elapsed_seconds == 0


def test_elapsed_never_negative():
    assert SessionAggregator(start_timestamp=100.0).finalize(50.0).elapsed_seconds == 0


@pytest.mark.parametrize(
    "history,expected",
    [([], 100), ([100, 95], 98), ([90, 91], 91), ([1, 2], 2), ([0], 0), ([80, 81, 81], 81)],
)
def test_average_rounds_half_up(history, expected):
    assert average_accuracy(history) == expected


def test_rejected_frame_leaves_state_untouched(make_frame):
    agg = SessionAggregator(start_timestamp=0.0)
    agg.process_frame(make_frame(50.0))
    before_state = agg.state
    before_stats = agg.snapshot()
    faint = make_frame(110.0, overrides={LandmarkIdx.LEFT_HIP: Landmark(0.5, 0.5, 0.0, 0.1)})
    with pytest.raises(InsufficientConfidence):
        agg.process_frame(faint)
    assert agg.state == before_state
    assert agg.snapshot() == before_stats


def test_process_frame_runs_full_pipeline(make_frame):
    agg = SessionAggregator(start_timestamp=0.0)
    for angle in (170.0, 100.0, 50.0, 110.0, 52.0):
        state = agg.process_frame(make_frame(angle))
    assert state.rep_count == 2
    assert agg.snapshot().total_reps == 2


def test_reset_clears_everything():
    agg = SessionAggregator(start_timestamp=0.0)
    _feed(agg, [50, 110, 50])
    agg.finalize(10.0)
    agg.reset(20.0)
    assert not agg.finalized
    assert agg.state == ExerciseState()
    stats = agg.finalize(50.0)
    assert stats.total_reps == 0
    assert stats.elapsed_seconds == 30


def test_on_frame_processed_ignores_non_completions():
    agg = SessionAggregator(start_timestamp=0.0)
    agg.on_frame_processed(RepDelta(ExerciseState(phase=Phase.DOWN, last_form_accuracy=40), False))
    assert agg.snapshot().total_reps == 0
    agg.on_frame_processed(RepDelta(ExerciseState(rep_count=1, phase=Phase.UP, last_form_accuracy=40), True))
    snap = agg.snapshot()
    assert snap.total_reps == 1
    assert snap.current_streak == 0


def test_concurrent_events_are_serialized():
    agg = SessionAggregator(start_timestamp=0.0)
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(50):
            agg.process_angle(50.0)
            agg.process_angle(110.0)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    snap = agg.snapshot()
    assert 1 <= snap.total_reps <= 400
    assert snap.total_reps == agg.state.rep_count
    assert len(snap.accuracy_history) == snap.total_reps
    assert snap.best_streak == snap.current_streak == snap.total_reps


def test_on_frame_processed_rejects_deltas_that_skip_or_rewind():
    agg = SessionAggregator(start_timestamp=0.0)
    for n in (1, 2, 3):
        agg.on_frame_processed(RepDelta(ExerciseState(rep_count=n, phase=Phase.UP), True))
        agg.on_frame_processed(RepDelta(ExerciseState(rep_count=n, phase=Phase.DOWN), False))
    with pytest.raises(ValueError):
        agg.on_frame_processed(RepDelta(ExerciseState(rep_count=0), False))
    with pytest.raises(ValueError):
        agg.on_frame_processed(RepDelta(ExerciseState(rep_count=3, phase=Phase.UP), True))
    with pytest.raises(ValueError):
        agg.on_frame_processed(RepDelta(ExerciseState(rep_count=5, phase=Phase.UP), True))
    assert agg.state.rep_count == 3
    assert agg.snapshot().total_reps == 3
