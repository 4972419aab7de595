# shoulder_rom/utils/math_utils.py
import math
from typing import Optional, Tuple

import numpy as np

from shoulder_rom.core.base import Point3D

# Rays shorter than this are treated as degenerate
EPS = 1e-6

_PLANE_AXES = {
    "xy": (0, 1),
    "xz": (0, 2),
    "yz": (1, 2),
    "xyz": (0, 1, 2),
}


class MathUtils:
    """Geometry helpers for shoulder angle measurement."""

    @staticmethod
    def project(point: Point3D, plane: str = "xy") -> np.ndarray:
        """
        Project a point onto a coordinate plane by dropping the unused axis.

        Args:
            point: Landmark to project
            plane: 'xy', 'xz', 'yz' or 'xyz' (no projection)

        Returns:
            Projected coordinates as a float array
        """
        if plane not in _PLANE_AXES:
            raise ValueError(f"Unsupported projection plane: {plane}")
        coords = point.as_tuple()
        return np.array([coords[i] for i in _PLANE_AXES[plane]], dtype=np.float64)

    @staticmethod
    def calculate_angle(p1: Point3D, p2: Point3D, p3: Point3D,
                        plane: str = "xy") -> Optional[float]:
        """
        Calculate angle between three points with p2 as the vertex.

        Args:
            p1, p2, p3: Points; p2 is the vertex
            plane: Projection plane used before measuring

        Returns:
            Angle in degrees within [0, 180], or None when a ray is degenerate
        """
        v1 = MathUtils.project(p1, plane) - MathUtils.project(p2, plane)
        v2 = MathUtils.project(p3, plane) - MathUtils.project(p2, plane)

        v1_norm = np.linalg.norm(v1)
        v2_norm = np.linalg.norm(v2)
        if v1_norm < EPS or v2_norm < EPS:
            return None

        # Clip to avoid arccos domain errors from floating-point overshoot
        cos_value = np.clip(np.dot(v1, v2) / (v1_norm * v2_norm), -1.0, 1.0)
        angle = float(np.degrees(np.arccos(cos_value)))
        if not math.isfinite(angle):
            return None
        return angle

    @staticmethod
    def get_midpoint(p1: Point3D, p2: Point3D) -> Point3D:
        """Componentwise mean of two points."""
        return Point3D(
            x=(p1.x + p2.x) / 2.0,
            y=(p1.y + p2.y) / 2.0,
            z=(p1.z + p2.z) / 2.0,
        )

    @staticmethod
    def clamp(value: float, low: float, high: float) -> float:
        return max(low, min(high, value))

    @staticmethod
    def to_pixel(point: Point3D, frame_shape: Tuple[int, ...]) -> Tuple[int, int]:
        """Map a normalized landmark to integer pixel coordinates."""
        h, w = frame_shape[:2]
        return int(round(point.x * w)), int(round(point.y * h))
