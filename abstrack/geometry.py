"""
Torso-hinge angle from one frame of landmarks.
Angle at the hip between the averaged shoulder point and averaged knee point.
"""
from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .pose import HINGE_LANDMARKS, LANDMARK_NAMES, JointFrame, Landmark, LandmarkIdx
from .settings import MIN_VISIBILITY


class GeometryError(ValueError):
    """Frame cannot produce a hinge angle."""


class InsufficientConfidence(GeometryError):
    def __init__(self, landmark_idx: int, visibility: Optional[float]):
        self.landmark_idx = landmark_idx
        self.visibility = visibility
        name = LANDMARK_NAMES.get(landmark_idx, str(landmark_idx))
        if visibility is None:
            msg = f"landmark {name} missing from frame"
        else:
            msg = f"landmark {name} visibility {visibility:.2f} below threshold"
        super().__init__(msg)


def _get_point(frame: JointFrame, idx: int) -> Optional[Landmark]:
    if not frame or idx >= len(frame):
        return None
    return frame[idx]


def _midpoint(a: Landmark, b: Landmark) -> np.ndarray:
    return np.mean([[a.x, a.y], [b.x, b.y]], axis=0)


def check_visibility(frame: JointFrame, min_visibility: float = MIN_VISIBILITY) -> None:
    """Raise InsufficientConfidence for the first required landmark that is missing or faint."""
    for idx in HINGE_LANDMARKS:
        lm = _get_point(frame, idx)
        if lm is None:
            raise InsufficientConfidence(idx, None)
        if lm.visibility < min_visibility:
            raise InsufficientConfidence(idx, lm.visibility)


def angle_deg(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Angle at b for a-b-c in degrees, folded into [0, 180]."""
    radians = math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    angle = abs(math.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return float(angle)


def hinge_angle(frame: JointFrame, min_visibility: float = MIN_VISIBILITY) -> float:
    check_visibility(frame, min_visibility)
    shoulder = _midpoint(frame[LandmarkIdx.LEFT_SHOULDER], frame[LandmarkIdx.RIGHT_SHOULDER])
    hip = _midpoint(frame[LandmarkIdx.LEFT_HIP], frame[LandmarkIdx.RIGHT_HIP])
    knee = _midpoint(frame[LandmarkIdx.LEFT_KNEE], frame[LandmarkIdx.RIGHT_KNEE])
    return angle_deg(shoulder, hip, knee)
