"""
Shared fixtures: synthetic landmark frames in MediaPipe index order.

Y axis: 0.0 = top of frame, 1.0 = bottom.
Z axis: relative depth, negative = closer to the camera.
"""

import pytest

from shoulder_rom.core.base import Point3D

FRAME_LENGTH = 33

JOINTS = {
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
}

# Face-on standing pose used by the golden abduction case
FRONTAL_POSE = {
    "left_shoulder": (0.5, 0.5, 0.0),
    "right_shoulder": (0.6, 0.5, 0.01),
    "left_elbow": (0.5, 0.7, 0.0),
    "right_elbow": (0.6, 0.7, 0.0),
    "left_wrist": (0.5, 0.85, 0.0),
    "right_wrist": (0.6, 0.85, 0.0),
    "left_hip": (0.5, 0.8, 0.0),
    "right_hip": (0.6, 0.8, 0.0),
}

# Side-on pose: the shoulders are 0.2 apart in depth, arm hanging down
SIDE_POSE = {
    "left_shoulder": (0.5, 0.5, 0.0),
    "right_shoulder": (0.5, 0.5, 0.2),
    "left_elbow": (0.5, 0.7, 0.0),
    "right_elbow": (0.5, 0.7, 0.2),
    "left_wrist": (0.5, 0.85, 0.0),
    "right_wrist": (0.5, 0.85, 0.2),
    "left_hip": (0.5, 0.8, 0.0),
    "right_hip": (0.5, 0.8, 0.0),
}


def build_frame(base=None, **joints):
    """33 Point3D landmarks from a base pose with per-joint (x, y, z) overrides."""
    pose = dict(FRONTAL_POSE if base is None else base)
    pose.update(joints)
    frame = [Point3D(0.5, 0.5, 0.0) for _ in range(FRAME_LENGTH)]
    for name, coords in pose.items():
        frame[JOINTS[name]] = Point3D(*coords)
    return frame


@pytest.fixture
def make_frame():
    """Builder for frontal frames: make_frame(left_elbow=(x, y, z), ...)."""
    return build_frame


@pytest.fixture
def make_side_frame():
    """Builder for side-on frames."""
    def _make(**joints):
        return build_frame(SIDE_POSE, **joints)
    return _make


@pytest.fixture
def frontal_frame():
    return build_frame()
