import pytest

from abstrack.geometry import InsufficientConfidence, angle_deg, hinge_angle
from abstrack.pose import Landmark, LandmarkIdx, frame_from_landmarks

import numpy as np


@pytest.mark.parametrize("angle", [0.0, 30.0, 55.0, 90.0, 105.0, 170.0, 180.0])
def test_hinge_angle_matches_constructed_pose(make_frame, angle):
    assert hinge_angle(make_frame(angle)) == pytest.approx(angle, abs=1e-6)


def test_angle_is_folded_into_0_180():
    hip = np.array([0.0, 0.0])
    shoulder = np.array([1.0, -0.1])
    knee = np.array([1.0, 0.1])
    a = angle_deg(shoulder, hip, knee)
    assert 0.0 <= a <= 180.0
    # reflex configuration reports the inner angle
    assert angle_deg(np.array([-1.0, 0.1]), hip, np.array([-1.0, -0.1])) == pytest.approx(a)


def test_left_right_are_averaged(make_frame):
    frame = list(make_frame(90.0))
    # move left shoulder up and right shoulder down symmetrically: midpoint unchanged
    ls = frame[LandmarkIdx.LEFT_SHOULDER]
    rs = frame[LandmarkIdx.RIGHT_SHOULDER]
    frame[LandmarkIdx.LEFT_SHOULDER] = Landmark(ls.x - 0.05, ls.y, 0.0, 0.9)
    frame[LandmarkIdx.RIGHT_SHOULDER] = Landmark(rs.x + 0.05, rs.y, 0.0, 0.9)
    assert hinge_angle(tuple(frame)) == pytest.approx(90.0, abs=1e-6)


def test_low_visibility_rejected(make_frame):
    faint = Landmark(0.6, 0.5, 0.0, 0.49)
    frame = make_frame(90.0, overrides={LandmarkIdx.RIGHT_KNEE: faint})
    with pytest.raises(InsufficientConfidence) as exc:
        hinge_angle(frame)
    assert exc.value.landmark_idx == LandmarkIdx.RIGHT_KNEE
    assert exc.value.visibility == pytest.approx(0.49)
    assert "right_knee" in str(exc.value)


def test_visibility_at_threshold_accepted(make_frame):
    assert hinge_angle(make_frame(90.0, visibility=0.5)) == pytest.approx(90.0, abs=1e-6)


def test_missing_landmarks_rejected():
    short = frame_from_landmarks([{"x": 0.1, "y": 0.1, "visibility": 1.0}] * 20)
    with pytest.raises(InsufficientConfidence) as exc:
        hinge_angle(short)
    assert exc.value.visibility is None
    assert isinstance(exc.value, ValueError)


def test_frame_from_landmarks_accepts_dicts_and_sequences():
    frame = frame_from_landmarks([
        {"x": 0.1, "y": 0.2, "z": 0.3, "visibility": 0.4},
        [0.5, 0.6],
    ])
    assert frame[0] == Landmark(0.1, 0.2, 0.3, 0.4)
    assert frame[1] == Landmark(0.5, 0.6, 0.0, 0.0)
    with pytest.raises(ValueError):
        frame_from_landmarks([[0.1]])
