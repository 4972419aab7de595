# shoulder_rom/core/landmarks.py
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from shoulder_rom.core.base import Point3D, Side, MalformedFrameError
from shoulder_rom.utils.math_utils import MathUtils

# MediaPipe pose indices used for shoulder measurements
KEYPOINT_MAPPING: Dict[str, int] = {
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
}

# A valid non-empty frame must reach the right hip
MIN_FRAME_LENGTH = 25

SKELETON_CONNECTIONS = [
    (11, 12),  # shoulders
    (11, 13), (13, 15),  # left arm
    (12, 14), (14, 16),  # right arm
    (23, 24),  # hips
    (11, 23), (12, 24),  # torso
]

SKELETON_JOINTS = [11, 12, 13, 14, 15, 16, 23, 24]


def joint_index(side: Side, joint: str) -> int:
    """
    Get the landmark index of a joint on one side of the body.

    Args:
        side: Body side
        joint: 'shoulder', 'elbow', 'wrist' or 'hip'

    Returns:
        Landmark index
    """
    key = f"{side.value.lower()}_{joint}"
    if key not in KEYPOINT_MAPPING:
        raise ValueError(f"Unknown joint: {joint}")
    return KEYPOINT_MAPPING[key]


def is_empty_frame(frame: Optional[Sequence[Any]]) -> bool:
    """True when the detector found no body (None or zero landmarks)."""
    return frame is None or len(frame) == 0


def _read_point(raw: Any) -> Point3D:
    if isinstance(raw, Point3D):
        return raw
    try:
        if isinstance(raw, dict):
            return Point3D(float(raw["x"]), float(raw["y"]), float(raw.get("z", 0.0)))
        if isinstance(raw, (tuple, list, np.ndarray)):
            if len(raw) < 2:
                raise MalformedFrameError(f"Landmark needs at least x and y: {raw!r}")
            return Point3D.from_tuple(raw)
        if hasattr(raw, "x") and hasattr(raw, "y"):
            return Point3D(float(raw.x), float(raw.y), float(getattr(raw, "z", 0.0)))
    except (TypeError, ValueError, KeyError) as e:
        raise MalformedFrameError(f"Unreadable landmark {raw!r}: {e}") from e
    raise MalformedFrameError(f"Unreadable landmark {raw!r}")


def to_point(raw: Any) -> Point3D:
    """
    Read one detector landmark as a Point3D.

    Accepts Point3D, (x, y, z) sequences or numpy rows, mappings with x/y/z
    keys and objects exposing x/y/z attributes (MediaPipe NormalizedLandmark).
    NaN or infinite coordinates are rejected.
    """
    point = _read_point(raw)
    if not all(math.isfinite(v) for v in point.as_tuple()):
        raise MalformedFrameError(f"Non-finite landmark {raw!r}")
    return point


def validate_frame(frame: Optional[Sequence[Any]]) -> None:
    """
    Check a landmark frame against the detector contract.

    An empty frame (no body detected) is valid. A non-empty frame must hold
    at least MIN_FRAME_LENGTH entries and readable points at the used indices.

    Raises:
        MalformedFrameError: If the frame breaks the contract
    """
    if is_empty_frame(frame):
        return
    if len(frame) < MIN_FRAME_LENGTH:
        raise MalformedFrameError(
            f"Landmark frame has {len(frame)} entries, expected at least {MIN_FRAME_LENGTH}"
        )
    for idx in KEYPOINT_MAPPING.values():
        to_point(frame[idx])


@dataclass(frozen=True)
class ShoulderLandmarks:
    """Named joints for one side plus the bilateral reference points."""
    side: Side
    shoulder: Point3D
    elbow: Point3D
    wrist: Point3D
    hip: Point3D
    left_shoulder: Point3D
    right_shoulder: Point3D
    left_hip: Point3D
    right_hip: Point3D

    @property
    def hip_midpoint(self) -> Point3D:
        return MathUtils.get_midpoint(self.left_hip, self.right_hip)

    @property
    def shoulder_z_diff(self) -> float:
        """Depth gap between shoulders; near zero when facing the camera."""
        return abs(self.left_shoulder.z - self.right_shoulder.z)

    @classmethod
    def from_frame(cls, frame: Optional[Sequence[Any]], side: Side) -> Optional['ShoulderLandmarks']:
        """
        Look up the measured joints in a landmark frame.

        Returns:
            ShoulderLandmarks, or None when the frame is empty or too short
        """
        if is_empty_frame(frame) or len(frame) < MIN_FRAME_LENGTH:
            return None

        def lm(idx: int) -> Point3D:
            return to_point(frame[idx])

        return cls(
            side=side,
            shoulder=lm(joint_index(side, "shoulder")),
            elbow=lm(joint_index(side, "elbow")),
            wrist=lm(joint_index(side, "wrist")),
            hip=lm(joint_index(side, "hip")),
            left_shoulder=lm(KEYPOINT_MAPPING["left_shoulder"]),
            right_shoulder=lm(KEYPOINT_MAPPING["right_shoulder"]),
            left_hip=lm(KEYPOINT_MAPPING["left_hip"]),
            right_hip=lm(KEYPOINT_MAPPING["right_hip"]),
        )
