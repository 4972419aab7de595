"""
Unit tests for shoulder_rom/core/angle_calculator.py and the geometry helpers.

Runs with synthetic landmark frames; no camera or model required.
"""

import math

import numpy as np
import pytest

from shoulder_rom.core.angle_calculator import (
    AngleCalculator,
    QualityThresholds,
    angle_range,
    compute_angle,
)
from shoulder_rom.core.base import MalformedFrameError, MeasurementMode, Point3D, Side
from shoulder_rom.core.landmarks import ShoulderLandmarks, joint_index, to_point, validate_frame
from shoulder_rom.utils.math_utils import MathUtils

GOLDEN_ABDUCTION = math.degrees(math.atan2(0.05, 0.3))


class TestMathUtils:

    def test_right_angle(self):
        angle = MathUtils.calculate_angle(Point3D(1, 0), Point3D(0, 0), Point3D(0, 1))
        assert angle == pytest.approx(90.0)

    def test_degenerate_ray_returns_none(self):
        assert MathUtils.calculate_angle(Point3D(0, 0), Point3D(0, 0), Point3D(0, 1)) is None
        assert MathUtils.calculate_angle(Point3D(1, 0), Point3D(0, 0), Point3D(0, 1e-9)) is None

    def test_projection_drops_axis(self):
        # Differs only in z, so the xy projection sees a zero-length ray
        assert MathUtils.calculate_angle(Point3D(0, 0, 1), Point3D(0, 0, 0), Point3D(1, 0, 0), plane="xy") is None
        assert MathUtils.calculate_angle(Point3D(0, 0, 1), Point3D(0, 0, 0), Point3D(1, 0, 0), plane="xz") == pytest.approx(90.0)

    def test_exactly_colinear_points(self):
        assert MathUtils.calculate_angle(Point3D(2, 0), Point3D(0, 0), Point3D(1, 0)) == 0.0
        assert MathUtils.calculate_angle(Point3D(-1, 0), Point3D(0, 0), Point3D(3, 0)) == 180.0

    def test_unknown_plane(self):
        with pytest.raises(ValueError):
            MathUtils.project(Point3D(0, 0, 0), plane="ab")

    def test_to_pixel(self):
        assert MathUtils.to_pixel(Point3D(0.5, 0.25), (480, 640, 3)) == (320, 120)


class TestLandmarks:

    def test_to_point_accepts_common_shapes(self):
        class Landmark:
            x, y, z = 0.1, 0.2, 0.3

        expected = Point3D(0.1, 0.2, 0.3)
        assert to_point((0.1, 0.2, 0.3)) == expected
        assert to_point({"x": 0.1, "y": 0.2, "z": 0.3}) == expected
        assert to_point(Landmark()) == expected
        assert to_point([0.1, 0.2]) == Point3D(0.1, 0.2, 0.0)

    def test_to_point_rejects_garbage(self):
        with pytest.raises(MalformedFrameError):
            to_point("shoulder")
        with pytest.raises(MalformedFrameError):
            to_point([0.1])

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_to_point_rejects_non_finite(self, bad):
        with pytest.raises(MalformedFrameError):
            to_point((0.1, 0.2, bad))
        with pytest.raises(MalformedFrameError):
            to_point(Point3D(bad, 0.2, 0.3))

    def test_numpy_frame(self, frontal_frame):
        array = np.array([p.as_tuple() for p in frontal_frame])
        assert to_point(array[13]) == frontal_frame[13]
        validate_frame(array)
        validate_frame(np.empty((0, 3)))
        assert compute_angle(array, Side.LEFT, MeasurementMode.ABDUCTION) == pytest.approx(GOLDEN_ABDUCTION, abs=1e-3)
        assert compute_angle(np.empty((0, 3)), Side.LEFT, MeasurementMode.ABDUCTION) is None

    def test_validate_frame(self, frontal_frame):
        validate_frame([])
        validate_frame(frontal_frame)
        with pytest.raises(MalformedFrameError):
            validate_frame(frontal_frame[:10])
        broken = list(frontal_frame)
        broken[13] = None
        with pytest.raises(MalformedFrameError):
            validate_frame(broken)

    def test_joint_index(self):
        assert joint_index(Side.LEFT, "shoulder") == 11
        assert joint_index(Side.RIGHT, "hip") == 24
        with pytest.raises(ValueError):
            joint_index(Side.LEFT, "knee")

    def test_from_frame(self, frontal_frame):
        landmarks = ShoulderLandmarks.from_frame(frontal_frame, Side.LEFT)
        assert landmarks.hip_midpoint.as_tuple() == pytest.approx((0.55, 0.8, 0.0))
        assert landmarks.shoulder_z_diff == pytest.approx(0.01)
        assert ShoulderLandmarks.from_frame([], Side.LEFT) is None


class TestAbduction:

    def test_golden_value(self, frontal_frame):
        angle = compute_angle(frontal_frame, Side.LEFT, MeasurementMode.ABDUCTION)
        assert angle == pytest.approx(GOLDEN_ABDUCTION, abs=1e-3)
        assert angle == pytest.approx(9.4623, abs=1e-3)

    def test_mirrored_right_side(self, frontal_frame):
        angle = compute_angle(frontal_frame, Side.RIGHT, MeasurementMode.ABDUCTION)
        assert angle == pytest.approx(GOLDEN_ABDUCTION, abs=1e-3)

    def test_colinear_with_torso_is_zero(self, make_frame):
        frame = make_frame(left_elbow=(0.525, 0.65, 0.0))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION) == pytest.approx(0.0, abs=1e-3)

    def test_arm_overhead_is_180(self, make_frame):
        frame = make_frame(left_elbow=(0.475, 0.35, 0.0))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION) == pytest.approx(180.0, abs=1e-3)

    def test_arm_horizontal(self, make_frame):
        frame = make_frame(left_elbow=(0.3, 0.5, 0.0))
        angle = compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION)
        assert 90.0 < angle < 100.0

    def test_side_view_rejected(self, make_frame):
        frame = make_frame(right_shoulder=(0.6, 0.5, 0.2))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION) is None

    def test_gate_boundary_is_inclusive(self, make_frame):
        frame = make_frame(right_shoulder=(0.6, 0.5, 0.12))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION) is not None

    def test_degenerate_upper_arm(self, make_frame):
        frame = make_frame(left_elbow=(0.5, 0.5, 0.0))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.ABDUCTION) is None


class TestFlexion:

    def test_frontal_view_rejected(self, frontal_frame):
        assert compute_angle(frontal_frame, Side.LEFT, MeasurementMode.FLEXION) is None

    def test_arm_down(self, make_side_frame):
        assert compute_angle(make_side_frame(), Side.LEFT, MeasurementMode.FLEXION) == pytest.approx(0.0, abs=1e-3)

    def test_side_view_boundary(self, make_side_frame):
        frame = make_side_frame(right_shoulder=(0.5, 0.5, 0.10))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.FLEXION) == pytest.approx(0.0, abs=1e-3)
        frame = make_side_frame(right_shoulder=(0.5, 0.5, 0.099))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.FLEXION) is None

    def test_arm_forward(self, make_side_frame):
        frame = make_side_frame(left_elbow=(0.5, 0.5, -0.2))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.FLEXION) == pytest.approx(90.0, abs=1e-3)

    def test_arm_overhead(self, make_side_frame):
        frame = make_side_frame(left_elbow=(0.5, 0.3, 0.0))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.FLEXION) == pytest.approx(180.0, abs=1e-3)


class TestExtension:

    def test_requires_backward_motion(self, make_side_frame):
        assert compute_angle(make_side_frame(), Side.LEFT, MeasurementMode.EXTENSION) is None
        frame = make_side_frame(left_elbow=(0.5, 0.7, -0.005))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) is None

    def test_value(self, make_side_frame):
        frame = make_side_frame(left_elbow=(0.5, 0.7, -0.1))
        expected = math.degrees(math.atan2(0.1, 0.2 + 0.01))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) == pytest.approx(expected, abs=1e-3)

    def test_side_view_boundary(self, make_side_frame):
        frame = make_side_frame(right_shoulder=(0.5, 0.5, 0.10), left_elbow=(0.5, 0.7, -0.1))
        expected = math.degrees(math.atan2(0.1, 0.2 + 0.01))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) == pytest.approx(expected, abs=1e-3)
        frame = make_side_frame(right_shoulder=(0.5, 0.5, 0.099), left_elbow=(0.5, 0.7, -0.1))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) is None

    def test_clamped_to_50(self, make_side_frame):
        frame = make_side_frame(left_elbow=(0.5, 0.5, -0.5))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) == pytest.approx(50.0)

    def test_frontal_view_rejected(self, make_frame):
        frame = make_frame(left_elbow=(0.5, 0.7, -0.1))
        assert compute_angle(frame, Side.LEFT, MeasurementMode.EXTENSION) is None


class TestInputs:

    @pytest.mark.parametrize("mode", list(MeasurementMode))
    def test_empty_and_short_frames(self, mode, frontal_frame):
        assert compute_angle([], Side.LEFT, mode) is None
        assert compute_angle(None, Side.LEFT, mode) is None
        assert compute_angle(frontal_frame[:24], Side.LEFT, mode) is None

    def test_custom_thresholds(self, make_frame):
        frame = make_frame(right_shoulder=(0.6, 0.5, 0.2))
        calculator = AngleCalculator(QualityThresholds(abduction_max_z_diff=0.25))
        assert calculator.compute(frame, Side.LEFT, MeasurementMode.ABDUCTION) is not None

    def test_thresholds_from_config_ignores_unknown_keys(self):
        thresholds = QualityThresholds.from_config({"alpha": 0.2, "extension_max_angle": 45, "default_side": "LEFT"})
        assert thresholds.extension_max_angle == 45.0
        assert angle_range(MeasurementMode.EXTENSION, thresholds) == (0.0, 45.0)
        assert angle_range(MeasurementMode.FLEXION, thresholds) == (0.0, 180.0)
