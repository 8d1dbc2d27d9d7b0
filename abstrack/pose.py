"""
Landmark input types. Frames arrive already estimated (MediaPipe Pose order,
33 landmarks); nothing here runs a pose model.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Union

# MediaPipe Pose landmark indices (same as PoseLandmark)
class LandmarkIdx:
    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


NUM_LANDMARKS = 33

# Landmarks the hinge angle depends on.
HINGE_LANDMARKS = (
    LandmarkIdx.LEFT_SHOULDER,
    LandmarkIdx.RIGHT_SHOULDER,
    LandmarkIdx.LEFT_HIP,
    LandmarkIdx.RIGHT_HIP,
    LandmarkIdx.LEFT_KNEE,
    LandmarkIdx.RIGHT_KNEE,
)

LANDMARK_NAMES = {
    LandmarkIdx.LEFT_SHOULDER: "left_shoulder",
    LandmarkIdx.RIGHT_SHOULDER: "right_shoulder",
    LandmarkIdx.LEFT_HIP: "left_hip",
    LandmarkIdx.RIGHT_HIP: "right_hip",
    LandmarkIdx.LEFT_KNEE: "left_knee",
    LandmarkIdx.RIGHT_KNEE: "right_knee",
}


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0


JointFrame = tuple[Landmark, ...]

LandmarkLike = Union[Landmark, dict[str, Any], Sequence[float]]


def _to_landmark(item: LandmarkLike) -> Landmark:
    if isinstance(item, Landmark):
        return item
    if isinstance(item, dict):
        return Landmark(
            x=float(item["x"]),
            y=float(item["y"]),
            z=float(item.get("z", 0.0)),
            visibility=float(item.get("visibility", 0.0)),
        )
    values = [float(v) for v in item]
    if len(values) < 2:
        raise ValueError(f"landmark needs at least x and y, got {item!r}")
    values += [0.0] * (4 - len(values))
    return Landmark(x=values[0], y=values[1], z=values[2], visibility=values[3])


def frame_from_landmarks(landmarks: Iterable[LandmarkLike]) -> JointFrame:
    """
    Build an immutable JointFrame from dicts ({x, y, z, visibility}),
    4-sequences (x, y, z, visibility) or Landmark instances.
    """
    return tuple(_to_landmark(lm) for lm in landmarks)


def landmarks_to_json(frame: JointFrame) -> list[dict[str, float]]:
    return [
        {"x": lm.x, "y": lm.y, "z": lm.z, "visibility": lm.visibility}
        for lm in frame
    ]
