import threading

import pytest

from abstrack.gate import (
    AccuracyOutOfRange,
    CooldownActive,
    RepsOutOfRange,
    StreakOutOfRange,
    SubmissionGate,
    SubmissionRecord,
    record_from_stats,
)
from abstrack.session import SessionAggregator
from abstrack.settings import MAX_REPS, Policy


def _record(reps=20, accuracy=90, streak=5, duration=120, region="temperate"):
    return SubmissionRecord(reps, accuracy, streak, duration, region)


def test_accepts_valid_record():
    gate = SubmissionGate()
    rec = _record()
    assert gate.try_submit("alice", rec, 1000.0) == rec
    assert gate.last_submission("alice") == 1000.0


def test_reps_bounds():
    gate = SubmissionGate()
    with pytest.raises(RepsOutOfRange):
        gate.try_submit("a", _record(reps=0, streak=0), 0.0)
    gate.try_submit("b", _record(reps=MAX_REPS), 0.0)
    with pytest.raises(RepsOutOfRange) as exc:
        gate.try_submit("c", _record(reps=MAX_REPS + 1), 0.0)
    assert exc.value.code == "REPS_OUT_OF_RANGE"
    assert exc.value.max_reps == MAX_REPS


def test_accuracy_bounds():
    gate = SubmissionGate()
    gate.try_submit("a", _record(accuracy=100), 0.0)
    with pytest.raises(AccuracyOutOfRange):
        gate.try_submit("b", _record(accuracy=101), 0.0)


def test_streak_cannot_exceed_reps():
    with pytest.raises(StreakOutOfRange):
        SubmissionGate().try_submit("a", _record(reps=5, streak=6), 0.0)


def test_rejected_record_does_not_start_cooldown():
    gate = SubmissionGate()
    with pytest.raises(RepsOutOfRange):
        gate.try_submit("a", _record(reps=0, streak=0), 0.0)
    assert gate.remaining_cooldown("a", 0.0) == 0
    gate.try_submit("a", _record(), 1.0)


def test_cooldown_counts_down():
    gate = SubmissionGate()
    gate.try_submit("alice", _record(), 1000.0)
    seen = []
    for now in (1000.0, 1010.0, 1030.0, 1059.5):
        with pytest.raises(CooldownActive) as exc:
            gate.try_submit("alice", _record(), now)
        seen.append(exc.value.remaining_seconds)
    assert seen == [60, 50, 30, 1]
    assert gate.remaining_cooldown("alice", 1060.0) == 0
    gate.try_submit("alice", _record(), 1060.0)


def test_cooldown_is_per_user():
    gate = SubmissionGate()
    gate.try_submit("alice", _record(), 0.0)
    gate.try_submit("bob", _record(), 1.0)


def test_cooldown_policy():
    gate = SubmissionGate(Policy(cooldown_seconds=5))
    gate.try_submit("a", _record(), 0.0)
    with pytest.raises(CooldownActive) as exc:
        gate.try_submit("a", _record(), 2.0)
    assert exc.value.remaining_seconds == 3
    assert exc.value.to_dict() == {
        "code": "COOLDOWN_ACTIVE",
        "message": str(exc.value),
        "remaining_seconds": 3,
    }


def test_concurrent_submissions_only_one_passes():
    gate = SubmissionGate()
    barrier = threading.Barrier(16)
    outcomes = []

    def worker():
        barrier.wait()
        try:
            gate.try_submit("alice", _record(), 500.0)
            outcomes.append("ok")
        except CooldownActive:
            outcomes.append("cooldown")

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert outcomes.count("ok") == 1
    assert outcomes.count("cooldown") == 15


def test_record_from_stats():
    agg = SessionAggregator(start_timestamp=0.0)
    for a in (50, 110, 50):
        agg.process_angle(a)
    rec = record_from_stats(agg.finalize(90.0), "desert")
    assert rec == SubmissionRecord(2, 100, 2, 90, "desert")
