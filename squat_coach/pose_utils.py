# squat_coach/pose_utils.py

import math
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# MediaPipe BlazePose landmark indices
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

SQUAT_JOINTS: Tuple[int, ...] = (
    LEFT_HIP, RIGHT_HIP,
    LEFT_KNEE, RIGHT_KNEE,
    LEFT_ANKLE, RIGHT_ANKLE,
)

KNEE_TRIPLETS: Tuple[Tuple[int, int, int], ...] = (
    (LEFT_HIP, LEFT_KNEE, LEFT_ANKLE),
    (RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE),
)
ELBOW_TRIPLETS: Tuple[Tuple[int, int, int], ...] = (
    (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST),
    (RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST),
)

NO_POSE_MESSAGE = "No pose! Step back!"
NOT_VISIBLE_MESSAGE = "Step back! Full body not visible"
BAD_TIMESTAMP_MESSAGE = "Frame skipped: invalid timestamp"


def finite_number(value) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class Landmark:
    index: int
    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None

    def is_finite(self) -> bool:
        coords = [self.x, self.y] + ([self.z] if self.z is not None else [])
        return all(finite_number(c) for c in coords)


@dataclass(frozen=True)
class Frame:
    """
    One instant of pose output.

    `landmarks` is ordered by joint index; holes are allowed (None) and a
    frame may be shorter than the full model skeleton. `timestamp` is the
    capture time in seconds from a monotonic clock.
    """
    timestamp: float
    landmarks: Tuple[Optional[Landmark], ...] = field(default_factory=tuple)

    def get(self, index: int) -> Optional[Landmark]:
        if 0 <= index < len(self.landmarks):
            return self.landmarks[index]
        return None

    @property
    def has_pose(self) -> bool:
        return any(lm is not None for lm in self.landmarks)

    @classmethod
    def from_points(cls, timestamp: float, points: Sequence, visibility: float = 1.0) -> "Frame":
        """Build a frame from (x, y) tuples; None entries stay missing."""
        landmarks = []
        for idx, p in enumerate(points):
            if p is None:
                landmarks.append(None)
            else:
                landmarks.append(Landmark(idx, float(p[0]), float(p[1]), visibility=visibility))
        return cls(timestamp=timestamp, landmarks=tuple(landmarks))


def angle_between(a, b, c):
    """
    Returns the interior angle (in degrees) at point b formed by points a-b-c.

    Always in [0, 180]. If b coincides with a or c the angle is 180.0:
    a collapsed segment carries no bend and must never read as depth.
    """
    a = np.asarray(a, dtype=float)[:2]
    b = np.asarray(b, dtype=float)[:2]
    c = np.asarray(c, dtype=float)[:2]

    v1 = a - b
    v2 = c - b
    if not np.any(v1) or not np.any(v2):
        return 180.0

    radians = np.arctan2(v2[1], v2[0]) - np.arctan2(v1[1], v1[0])
    angle = abs(np.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return float(angle)


def joint_angle(frame: Frame, first: int, vertex: int, last: int) -> float:
    p1, p2, p3 = frame.get(first), frame.get(vertex), frame.get(last)
    return angle_between((p1.x, p1.y), (p2.x, p2.y), (p3.x, p3.y))


def average_joint_angle(frame: Frame, triplets=KNEE_TRIPLETS) -> float:
    # both sides averaged: one-sided tracking noise and camera yaw cancel out
    return float(np.mean([joint_angle(frame, *t) for t in triplets]))


@dataclass(frozen=True)
class VisibilityResult:
    visible: bool
    missing: Tuple[int, ...] = ()
    diagnostic: str = ""


def check_visibility(
    frame: Frame,
    joints: Sequence[int] = SQUAT_JOINTS,
    min_visibility: float = 0.5,
) -> VisibilityResult:
    """
    Gate a frame before analysis.

    A joint fails when it is absent, its coordinates are not finite, or its
    visibility score is below `min_visibility`. Landmarks without a score
    are accepted. A frame whose timestamp is not a finite number is
    rejected outright. The gate is read-only: it never touches detector state.
    """
    if not finite_number(frame.timestamp):
        return VisibilityResult(False, tuple(joints), BAD_TIMESTAMP_MESSAGE)

    if not frame.has_pose:
        return VisibilityResult(False, tuple(joints), NO_POSE_MESSAGE)

    missing = []
    for idx in joints:
        lm = frame.get(idx)
        if lm is None or not lm.is_finite():
            missing.append(idx)
        elif lm.visibility is not None and not lm.visibility >= min_visibility:
            # NaN scores fail here as well
            missing.append(idx)

    if missing:
        logger.debug("Frame %.3f gated, missing joints %s", frame.timestamp, missing)
        return VisibilityResult(False, tuple(missing), NOT_VISIBLE_MESSAGE)
    return VisibilityResult(True)
