"""Shared synthetic pose helpers for the test suite."""

import math

import pytest

from squat_coach.pose_utils import (
    Frame,
    Landmark,
    LEFT_HIP, RIGHT_HIP,
    LEFT_KNEE, RIGHT_KNEE,
    LEFT_ANKLE, RIGHT_ANKLE,
)

NUM_LANDMARKS = 33
SEGMENT = 0.2


def _leg(knee_x: float, knee_angle: float):
    """Hip straight above the knee, ankle rotated so the knee angle is `knee_angle`."""
    knee = (knee_x, 0.6)
    hip = (knee_x, 0.6 - SEGMENT)
    rad = math.radians(knee_angle)
    ankle = (knee_x + SEGMENT * math.sin(rad), 0.6 - SEGMENT * math.cos(rad))
    return hip, knee, ankle


def squat_frame(timestamp: float, knee_angle: float, visibility: float = 0.99, drop=()):
    """
    Build a 33-landmark frame whose knees both sit at `knee_angle` degrees.

    Joints listed in `drop` are left out of the frame.
    """
    points = [None] * NUM_LANDMARKS
    for (hip_i, knee_i, ankle_i), x in (
        ((LEFT_HIP, LEFT_KNEE, LEFT_ANKLE), 0.45),
        ((RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE), 0.55),
    ):
        for idx, p in zip((hip_i, knee_i, ankle_i), _leg(x, knee_angle)):
            points[idx] = Landmark(idx, p[0], p[1], visibility=visibility)
    for idx in drop:
        points[idx] = None
    return Frame(timestamp=timestamp, landmarks=tuple(points))


def sine_squat_angles(fps: float, cycles: int, period_s: float = 3.0):
    """(timestamp, angle) pairs for `cycles` full 180 -> 90 -> 180 squats."""
    n_frames = int(round(cycles * period_s * fps)) + 1
    for i in range(n_frames):
        t = i / fps
        yield t, 135.0 + 45.0 * math.cos(2 * math.pi * t / period_s)


@pytest.fixture
def make_frame():
    return squat_frame
