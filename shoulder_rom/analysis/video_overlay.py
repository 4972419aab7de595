# shoulder_rom/analysis/video_overlay.py
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

from shoulder_rom.core.base import AngleReading, MeasurementMode, SessionSnapshot, Side
from shoulder_rom.core.angle_calculator import QualityThresholds
from shoulder_rom.core.session import MeasurementSession
from shoulder_rom.utils.visualization import OverlayRenderer

logger = logging.getLogger("shoulder_rom.video_overlay")


@dataclass
class VideoOverlayResult:
    """Outcome of annotating a recorded video."""
    output_path: Path
    frames_written: int
    peak_angle: Optional[float]
    samples: List[AngleReading] = field(default_factory=list)
    cancelled: bool = False


def even_size(width: int, height: int) -> Tuple[int, int]:
    """Round dimensions down to even numbers for the encoder."""
    return width - width % 2, height - height % 2


def sample_frames(capture: 'cv2.VideoCapture', target_fps: float) -> Iterator[Tuple[float, np.ndarray]]:
    """
    Read a capture and yield (timestamp_ms, frame) on a fixed time grid.

    Each grid point gets the first source frame at or after it, so the
    output cadence is target_fps whatever the source rate.
    """
    source_fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
    if source_fps <= 0:
        source_fps = target_fps
    step_ms = 1000.0 / target_fps
    next_ms = 0.0
    index = 0

    while True:
        ok, frame = capture.read()
        if not ok:
            break
        t_ms = index * 1000.0 / source_fps
        index += 1
        # A slow source repeats its frame for every grid point it covers
        while next_ms <= t_ms + 1e-6:
            yield next_ms, frame
            next_ms += step_ms


class VideoOverlayProcessor:
    """
    Annotate recorded videos with the measurement overlay.

    Every sampled frame goes through the detector and a dedicated
    MeasurementSession, so the overlay and the collected samples match
    what a live session would produce at the same cadence.
    """

    def __init__(self, detector,
                 mode: MeasurementMode = MeasurementMode.ABDUCTION,
                 side: Side = Side.LEFT,
                 target_fps: float = 20.0,
                 alpha: float = 1.0,
                 thresholds: Optional[QualityThresholds] = None,
                 renderer: Optional[OverlayRenderer] = None,
                 fourcc: str = "mp4v"):
        """
        Initialize the processor.

        Args:
            detector: Object with find_pose(frame_bgr) returning a landmark frame
            mode: Movement to measure
            side: Body side to measure
            target_fps: Sampling rate of the output video
            alpha: EMA weight; 1.0 keeps raw per-frame angles
            thresholds: View-quality and extension constants
            renderer: Overlay renderer (dark theme by default)
            fourcc: Four-character codec code for cv2.VideoWriter
        """
        if target_fps <= 0:
            raise ValueError(f"target_fps must be positive, got {target_fps}")
        self.detector = detector
        self.target_fps = target_fps
        self.session = MeasurementSession(side=side, mode=mode, alpha=alpha, thresholds=thresholds)
        self.renderer = renderer or OverlayRenderer()
        self.fourcc = fourcc

    def annotate_frames(self, frames: Iterable[Tuple[float, np.ndarray]]) -> Iterator[Tuple[np.ndarray, SessionSnapshot]]:
        """
        Measure and draw a stream of frames.

        Args:
            frames: (timestamp_ms, BGR frame) pairs

        Yields:
            (annotated frame, snapshot) per input frame
        """
        for timestamp, frame in frames:
            landmarks = self.detector.find_pose(frame)
            snapshot = self.session.process_frame(landmarks, timestamp=timestamp)
            annotated = self.renderer.render(frame.copy(), landmarks, snapshot)
            yield annotated, snapshot

    def default_output_path(self, input_path: Union[str, Path]) -> Path:
        """<input>_rom_<MODE>_<SIDE>.mp4 next to the input."""
        input_path = Path(input_path)
        return input_path.with_name(
            f"{input_path.stem}_rom_{self.session.mode.label}_{self.session.side.label}.mp4")

    def process(self, input_path: Union[str, Path],
                output_path: Optional[Union[str, Path]] = None,
                on_progress: Optional[Callable[[int, int], None]] = None,
                cancel_event: Optional[threading.Event] = None) -> Optional[VideoOverlayResult]:
        """
        Annotate a video file.

        Args:
            input_path: Source video
            output_path: Destination, defaults to <input>_rom_<MODE>_<SIDE>.mp4
            on_progress: Called with (frames done, expected total)
            cancel_event: Stops processing when set

        Returns:
            VideoOverlayResult, or None if the input could not be read
        """
        input_path = Path(input_path)
        session = self.session
        output_path = Path(output_path) if output_path is not None else self.default_output_path(input_path)

        capture = cv2.VideoCapture(str(input_path))
        if not capture.isOpened():
            logger.error(f"Could not open video: {input_path}")
            return None

        width, height = even_size(int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
                                  int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)))
        if width <= 0 or height <= 0:
            logger.error(f"Video has no readable frames: {input_path}")
            capture.release()
            return None

        source_fps = capture.get(cv2.CAP_PROP_FPS) or self.target_fps
        source_frames = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0
        duration_s = source_frames / source_fps if source_fps > 0 else 0.0
        total = max(1, int(duration_s * self.target_fps))

        session.reset()
        writer = cv2.VideoWriter(str(output_path), cv2.VideoWriter_fourcc(*self.fourcc),
                                 self.target_fps, (width, height))
        if not writer.isOpened():
            logger.error(f"Could not open video writer for: {output_path}")
            capture.release()
            return None

        logger.info(f"Annotating {input_path} ({session.mode.label} {session.side.label}, ~{total} frames)")
        frames_written = 0
        cancelled = False
        try:
            for annotated, _ in self.annotate_frames(sample_frames(capture, self.target_fps)):
                if annotated.shape[1] != width or annotated.shape[0] != height:
                    annotated = np.ascontiguousarray(annotated[:height, :width])
                writer.write(annotated)
                frames_written += 1
                if on_progress:
                    on_progress(frames_written, max(total, frames_written))
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Video overlay cancelled")
                    cancelled = True
                    break
        finally:
            capture.release()
            writer.release()

        logger.info(f"Wrote {frames_written} frames to {output_path} (peak={session.peak_angle})")
        return VideoOverlayResult(
            output_path=output_path,
            frames_written=frames_written,
            peak_angle=session.peak_angle,
            samples=list(session.samples),
            cancelled=cancelled,
        )
