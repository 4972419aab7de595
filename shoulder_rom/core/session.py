# shoulder_rom/core/session.py
import time
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from shoulder_rom.core.base import (
    AngleReading,
    FrameStatus,
    MalformedFrameError,
    MeasurementMode,
    ROMData,
    SessionSnapshot,
    SessionState,
    Side,
    parse_mode,
    parse_side,
)
from shoulder_rom.core.angle_calculator import AngleCalculator, QualityThresholds
from shoulder_rom.core.data_processor import EMASmoother
from shoulder_rom.core.landmarks import validate_frame
from shoulder_rom.utils.math_utils import MathUtils

logger = logging.getLogger("shoulder_rom.session")

DEFAULT_ALPHA = 0.2


def now_ms() -> int:
    """Wall-clock epoch time in milliseconds."""
    return int(time.time() * 1000)


class MeasurementSession:
    """
    Drives the per-frame pipeline for one tracked subject.

    The session owns the current angle, the peak angle, the recorded samples
    and the smoother state. It is meant to be called from a single thread;
    callers that receive frames concurrently must serialize access.
    """

    def __init__(self,
                 side: Side = Side.LEFT,
                 mode: MeasurementMode = MeasurementMode.ABDUCTION,
                 alpha: float = DEFAULT_ALPHA,
                 thresholds: Optional[QualityThresholds] = None):
        """
        Initialize a measurement session.

        Args:
            side: Body side to measure
            mode: Movement to measure
            alpha: EMA weight of the newest reading
            thresholds: View-quality and extension constants
        """
        self.side = parse_side(side)
        self.mode = parse_mode(mode)
        self.calculator = AngleCalculator(thresholds)
        self.smoother = EMASmoother(alpha)
        self.data = ROMData()
        self._last_status = FrameStatus.UNMEASURABLE

    @property
    def alpha(self) -> float:
        return self.smoother.alpha

    @property
    def current_angle(self) -> Optional[float]:
        return self.data.current_angle

    @property
    def peak_angle(self) -> Optional[float]:
        return self.data.peak_angle

    @property
    def samples(self) -> Tuple[AngleReading, ...]:
        """Accepted readings in arrival order."""
        return tuple(self.data.samples)

    @property
    def state(self) -> SessionState:
        return SessionState.ACCUMULATING if self.data.samples else SessionState.EMPTY

    def process_frame(self,
                      frame: Optional[Sequence[Any]],
                      side: Optional[Side] = None,
                      mode: Optional[MeasurementMode] = None,
                      timestamp: Optional[float] = None) -> SessionSnapshot:
        """
        Process a single landmark frame.

        Args:
            frame: Detector landmarks (empty when no body was detected)
            side: Optional side; a different value starts a new session
            mode: Optional mode; a different value starts a new session
            timestamp: Reading time, defaults to epoch milliseconds

        Returns:
            Snapshot of the session after this frame
        """
        if side is not None or mode is not None:
            self.select(side=side, mode=mode)

        try:
            validate_frame(frame)
        except MalformedFrameError as e:
            logger.warning(f"Skipping malformed landmark frame: {e}")
            return self._snapshot(FrameStatus.INVALID_INPUT)

        raw_angle = self.calculator.compute(frame, self.side, self.mode)
        if raw_angle is None:
            self.data.current_angle = None
            return self._snapshot(FrameStatus.UNMEASURABLE)

        low, high = self.calculator.angle_range(self.mode)
        angle = MathUtils.clamp(self.smoother.push(raw_angle), low, high)

        self.data.current_angle = angle
        if self.data.peak_angle is None or angle > self.data.peak_angle:
            self.data.peak_angle = angle
        self.data.samples.append(AngleReading(
            timestamp=now_ms() if timestamp is None else timestamp,
            mode=self.mode,
            side=self.side,
            degrees=angle,
        ))
        logger.debug(f"{self.mode.label} {self.side.label}: raw={raw_angle:.2f} smoothed={angle:.2f}")
        return self._snapshot(FrameStatus.MEASURED)

    def reset(self) -> None:
        """Clear current angle, peak, samples and smoother state."""
        self.data.clear()
        self.smoother.reset()
        self._last_status = FrameStatus.UNMEASURABLE
        logger.info(f"Session reset ({self.mode.label} {self.side.label})")

    def select(self, side: Optional[Side] = None, mode: Optional[MeasurementMode] = None) -> bool:
        """
        Change side and/or mode.

        The session is reset only when a value actually changes.

        Returns:
            True if the session was reset
        """
        new_side = self.side if side is None else parse_side(side)
        new_mode = self.mode if mode is None else parse_mode(mode)
        if new_side is self.side and new_mode is self.mode:
            return False
        logger.info(f"Selection changed: {self.mode.label} {self.side.label} -> {new_mode.label} {new_side.label}")
        self.side = new_side
        self.mode = new_mode
        self.reset()
        return True

    def set_alpha(self, alpha: float) -> None:
        """Change the smoothing weight; starts a new session."""
        self.smoother = EMASmoother(alpha)
        self.reset()

    def snapshot(self) -> SessionSnapshot:
        """Snapshot of the current state without processing a frame."""
        return self._snapshot(self._last_status)

    def _snapshot(self, status: FrameStatus) -> SessionSnapshot:
        self._last_status = status
        return SessionSnapshot(
            current_angle=self.data.current_angle,
            peak_angle=self.data.peak_angle,
            quality_ok=status is FrameStatus.MEASURED,
            frame_status=status,
            side=self.side,
            mode=self.mode,
            sample_count=len(self.data.samples),
            state=self.state,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert session data to a dictionary for API responses."""
        return {
            "side": self.side.value,
            "mode": self.mode.value,
            "alpha": self.alpha,
            "state": self.state.value,
            "current_angle": self.data.current_angle,
            "peak_angle": self.data.peak_angle,
            "sample_count": len(self.data.samples),
            "thresholds": self.calculator.thresholds.to_dict(),
        }
