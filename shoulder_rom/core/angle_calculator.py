# shoulder_rom/core/angle_calculator.py
import math
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Sequence

from shoulder_rom.core.base import MeasurementMode, Side
from shoulder_rom.core.landmarks import ShoulderLandmarks
from shoulder_rom.utils.math_utils import MathUtils

logger = logging.getLogger("shoulder_rom.angle_calculator")


@dataclass(frozen=True)
class QualityThresholds:
    """Empirical view-quality and extension constants."""
    abduction_max_z_diff: float = 0.12  # frontal view needed
    sagittal_min_z_diff: float = 0.10   # side view needed for flexion/extension
    extension_min_dz: float = 0.01      # elbow must move behind the shoulder
    extension_dy_offset: float = 0.01   # keeps atan2 stable near vertical
    extension_max_angle: float = 50.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'QualityThresholds':
        """Build thresholds from a measurement config section, ignoring unknown keys."""
        known = {k: float(v) for k, v in config.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


DEFAULT_THRESHOLDS = QualityThresholds()


def angle_range(mode: MeasurementMode, thresholds: QualityThresholds = DEFAULT_THRESHOLDS):
    """Valid (low, high) degree range of a mode."""
    if mode is MeasurementMode.EXTENSION:
        return 0.0, thresholds.extension_max_angle
    return 0.0, 180.0


def passes_quality_gate(landmarks: ShoulderLandmarks, mode: MeasurementMode,
                        thresholds: QualityThresholds = DEFAULT_THRESHOLDS) -> bool:
    """
    Check that the body faces the camera the way the mode needs.

    Abduction is measured face-on; flexion and extension side-on.
    """
    z_diff = landmarks.shoulder_z_diff
    if mode is MeasurementMode.ABDUCTION:
        return z_diff <= thresholds.abduction_max_z_diff
    return z_diff >= thresholds.sagittal_min_z_diff


def extension_angle(landmarks: ShoulderLandmarks,
                    thresholds: QualityThresholds = DEFAULT_THRESHOLDS) -> Optional[float]:
    """Backward elevation of the upper arm relative to vertical."""
    dy = landmarks.elbow.y - landmarks.shoulder.y  # positive = elbow below shoulder
    dz = landmarks.shoulder.z - landmarks.elbow.z  # positive = arm moved backward
    if dz < thresholds.extension_min_dz:
        return None
    angle = math.degrees(math.atan2(dz, abs(dy) + thresholds.extension_dy_offset))
    return MathUtils.clamp(angle, 0.0, thresholds.extension_max_angle)


def compute_angle(frame: Optional[Sequence[Any]], side: Side, mode: MeasurementMode,
                  thresholds: QualityThresholds = DEFAULT_THRESHOLDS) -> Optional[float]:
    """
    Compute the shoulder angle for one landmark frame.

    Args:
        frame: Detector landmarks in MediaPipe index order (may be empty)
        side: Body side to measure
        mode: Movement being measured
        thresholds: View-quality and extension constants

    Returns:
        Angle in degrees, or None when the frame cannot be measured
    """
    landmarks = ShoulderLandmarks.from_frame(frame, side)
    if landmarks is None:
        return None

    if not passes_quality_gate(landmarks, mode, thresholds):
        logger.debug(f"Quality gate rejected {mode.value} frame (z diff {landmarks.shoulder_z_diff:.3f})")
        return None

    if mode is MeasurementMode.EXTENSION:
        return extension_angle(landmarks, thresholds)

    # Abduction lives in the image plane, flexion in the depth-vertical plane
    plane = "xy" if mode is MeasurementMode.ABDUCTION else "yz"
    angle = MathUtils.calculate_angle(landmarks.elbow, landmarks.shoulder,
                                      landmarks.hip_midpoint, plane=plane)
    if angle is None:
        return None
    low, high = angle_range(mode, thresholds)
    return MathUtils.clamp(angle, low, high)


class AngleCalculator:
    """Stateless calculator bound to a set of thresholds."""

    def __init__(self, thresholds: Optional[QualityThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    def compute(self, frame: Optional[Sequence[Any]], side: Side,
                mode: MeasurementMode) -> Optional[float]:
        return compute_angle(frame, side, mode, self.thresholds)

    def angle_range(self, mode: MeasurementMode):
        return angle_range(mode, self.thresholds)
