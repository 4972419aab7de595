# shoulder_rom/core/base.py
from typing import Dict, Tuple, List, Optional, Any
from enum import Enum
from dataclasses import dataclass, field


class Side(Enum):
    """Body half whose joints are measured."""
    LEFT = "LEFT"
    RIGHT = "RIGHT"

    @property
    def label(self) -> str:
        """Single-letter label used in overlays and file names."""
        return "L" if self is Side.LEFT else "R"


class MovementPlane(Enum):
    """Enum for planes of movement."""
    SAGITTAL = "sagittal"  # Forward/backward movements
    FRONTAL = "frontal"    # Side-to-side movements


class MeasurementMode(Enum):
    """Shoulder movement being measured."""
    ABDUCTION = "ABDUCTION"
    FLEXION = "FLEXION"
    EXTENSION = "EXTENSION"

    @property
    def label(self) -> str:
        """Three-letter label used in overlays and file names."""
        return self.value[:3]

    @property
    def plane(self) -> MovementPlane:
        if self is MeasurementMode.ABDUCTION:
            return MovementPlane.FRONTAL
        return MovementPlane.SAGITTAL

    @property
    def max_angle(self) -> float:
        """Upper bound of the reported angle for this mode."""
        return 50.0 if self is MeasurementMode.EXTENSION else 180.0


class SessionState(Enum):
    """Lifecycle of a measurement session."""
    EMPTY = "empty"
    ACCUMULATING = "accumulating"


class FrameStatus(Enum):
    """Outcome of processing a single landmark frame."""
    MEASURED = "measured"
    UNMEASURABLE = "unmeasurable"
    INVALID_INPUT = "invalid_input"


class MalformedFrameError(ValueError):
    """Raised when a non-empty landmark frame breaks the detector contract."""


class SessionNotFoundError(ValueError):
    """Raised when a session id is not registered."""


def parse_side(value: Any) -> Side:
    """Accept a Side, its name ("LEFT"), or its label ("L")."""
    if isinstance(value, Side):
        return value
    text = str(value).strip().upper()
    for side in Side:
        if text in (side.value, side.label):
            return side
    raise ValueError(f"Unsupported side: {value}")


def parse_mode(value: Any) -> MeasurementMode:
    """Accept a MeasurementMode, its name ("FLEXION"), or its label ("FLE")."""
    if isinstance(value, MeasurementMode):
        return value
    text = str(value).strip().upper()
    for mode in MeasurementMode:
        if text in (mode.value, mode.label):
            return mode
    raise ValueError(f"Unsupported measurement mode: {value}")


@dataclass(frozen=True)
class Point3D:
    """3D landmark in normalized image space (z is relative depth)."""
    x: float
    y: float
    z: float = 0.0

    def as_tuple(self) -> Tuple[float, float, float]:
        """Return the point as a tuple."""
        return (self.x, self.y, self.z)

    def as_xy_tuple(self) -> Tuple[float, float]:
        """Return just the x, y coordinates as a tuple."""
        return (self.x, self.y)

    def as_dict(self) -> Dict[str, float]:
        """Return the point as a dictionary."""
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_tuple(cls, point: Tuple[float, ...]) -> 'Point3D':
        """Create a Point3D from a tuple."""
        return cls(x=float(point[0]), y=float(point[1]),
                   z=float(point[2]) if len(point) > 2 else 0.0)


# A frame is whatever the detector hands over; the geometry adapter normalizes it.
LandmarkFrame = List[Any]


@dataclass(frozen=True)
class AngleReading:
    """A single accepted angle measurement."""
    timestamp: float
    mode: MeasurementMode
    side: Side
    degrees: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "mode": self.mode.value,
            "side": self.side.value,
            "angle": self.degrees,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Result of one process_frame call, ready for rendering."""
    current_angle: Optional[float]
    peak_angle: Optional[float]
    quality_ok: bool
    frame_status: FrameStatus
    side: Side
    mode: MeasurementMode
    sample_count: int = 0
    state: SessionState = SessionState.EMPTY

    def to_dict(self) -> Dict[str, Any]:
        """Convert the snapshot to a dictionary for API responses."""
        return {
            "current_angle": self.current_angle,
            "peak_angle": self.peak_angle,
            "quality_ok": self.quality_ok,
            "frame_status": self.frame_status.value,
            "side": self.side.value,
            "mode": self.mode.value,
            "sample_count": self.sample_count,
            "state": self.state.value,
        }


@dataclass
class ROMData:
    """Mutable state owned by a measurement session."""
    current_angle: Optional[float] = None
    peak_angle: Optional[float] = None
    samples: List[AngleReading] = field(default_factory=list)

    def clear(self) -> None:
        self.current_angle = None
        self.peak_angle = None
        self.samples.clear()
