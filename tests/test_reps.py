import random

import pytest

from abstrack.reps import ExerciseState, Phase, form_accuracy, replay, step


def test_concrete_angle_sequence_counts_two_reps():
    state, accuracies = replay([170.0, 100.0, 50.0, 110.0, 52.0])
    assert state.rep_count == 2
    assert state.phase is Phase.UP
    # both top positions sit inside the +/-10 deg band around 55
    assert accuracies == [100, 100]


def test_rep_counted_on_down_to_up_only():
    s0 = ExerciseState()
    s1, done = step(s0, 50.0)
    assert done and s1.rep_count == 1 and s1.phase is Phase.UP
    s2, done = step(s1, 110.0)
    assert not done and s2.rep_count == 1 and s2.phase is Phase.DOWN
    s3, done = step(s2, 80.0)
    assert not done and s3.rep_count == 1 and s3.phase is Phase.DOWN


def test_hysteresis_ignores_noise_between_thresholds():
    state, _ = replay([50.0, 60.0, 90.0, 104.9, 56.0, 100.0, 54.0])
    # never crossed 105 after the first rep, so the machine stays UP
    assert state.rep_count == 1
    assert state.phase is Phase.UP


def test_thresholds_are_strict():
    s, done = step(ExerciseState(), 55.0)
    assert not done and s.phase is Phase.DOWN
    up = ExerciseState(rep_count=1, phase=Phase.UP)
    s, done = step(up, 105.0)
    assert s.phase is Phase.UP


def test_state_is_not_mutated():
    s0 = ExerciseState()
    step(s0, 40.0)
    assert s0 == ExerciseState()


def test_count_is_monotonic_for_random_sequences():
    rng = random.Random(7)
    angles = [rng.uniform(0.0, 180.0) for _ in range(2000)]
    state = ExerciseState()
    for a in angles:
        prev = state
        state, done = step(state, a)
        assert state.rep_count - prev.rep_count == (1 if done else 0)
        if done:
            assert prev.phase is Phase.DOWN and state.phase is Phase.UP
        assert 0 <= state.last_form_accuracy <= 100


@pytest.mark.parametrize(
    "phase,angle,expected",
    [
        (Phase.UP, 55.0, 100),
        (Phase.UP, 45.0, 100),
        (Phase.UP, 65.0, 100),
        (Phase.UP, 66.0, 78),
        (Phase.UP, 30.0, 50),
        (Phase.UP, 170.0, 0),
        (Phase.DOWN, 105.0, 100),
        (Phase.DOWN, 94.0, 78),
        (Phase.DOWN, 170.0, 0),
        (Phase.DOWN, 120.25, 70),
    ],
)
def test_form_accuracy(phase, angle, expected):
    assert form_accuracy(phase, angle) == expected


def test_accuracy_is_computed_against_new_phase():
    s, _ = step(ExerciseState(), 170.0)
    assert s.last_form_accuracy == 0
    s, _ = step(s, 30.0)
    assert s.phase is Phase.UP
    assert s.last_form_accuracy == 50
