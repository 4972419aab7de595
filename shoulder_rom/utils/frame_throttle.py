# shoulder_rom/utils/frame_throttle.py
from typing import Optional


class FrameThrottle:
    """Admit frames at a fixed measurement cadence regardless of the source rate."""

    def __init__(self, target_fps: float = 20.0):
        if target_fps <= 0:
            raise ValueError(f"target_fps must be positive, got {target_fps}")
        self.target_fps = target_fps
        self.min_interval_ms = 1000.0 / target_fps
        self.last_ms: Optional[float] = None

    def should_process(self, now_ms: float) -> bool:
        """Return True and remember the time if enough time passed since the last admitted frame."""
        if self.last_ms is None or now_ms - self.last_ms >= self.min_interval_ms:
            self.last_ms = now_ms
            return True
        return False

    def reset(self) -> None:
        self.last_ms = None
