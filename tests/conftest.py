from __future__ import annotations

import math

import pytest

from abstrack.pose import NUM_LANDMARKS, Landmark, LandmarkIdx


def build_frame(angle_deg: float, visibility: float = 0.9, overrides: dict | None = None):
    """33-landmark frame whose shoulder-hip-knee angle is angle_deg."""
    hip = (0.5, 0.5)
    knee = (hip[0] + 0.2, hip[1])
    theta = math.radians(angle_deg)
    shoulder = (hip[0] + 0.2 * math.cos(theta), hip[1] - 0.2 * math.sin(theta))
    points = [Landmark(0.0, 0.0, 0.0, visibility) for _ in range(NUM_LANDMARKS)]
    for idx, (x, y) in (
        (LandmarkIdx.LEFT_SHOULDER, shoulder),
        (LandmarkIdx.RIGHT_SHOULDER, shoulder),
        (LandmarkIdx.LEFT_HIP, hip),
        (LandmarkIdx.RIGHT_HIP, hip),
        (LandmarkIdx.LEFT_KNEE, knee),
        (LandmarkIdx.RIGHT_KNEE, knee),
    ):
        points[idx] = Landmark(x, y, 0.0, visibility)
    for idx, lm in (overrides or {}).items():
        points[idx] = lm
    return tuple(points)


@pytest.fixture
def make_frame():
    return build_frame
