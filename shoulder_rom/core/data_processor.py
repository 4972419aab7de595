# shoulder_rom/core/data_processor.py
import math
from typing import Optional


class EMASmoother:
    """Exponential moving average over successive valid angle readings."""

    def __init__(self, alpha: float = 0.2):
        """
        Initialize the smoother.

        Args:
            alpha: Weight of the newest reading, 0 < alpha <= 1.
                Smaller values suppress more jitter; 1 disables smoothing.
        """
        if not (0.0 < alpha <= 1.0):
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.value: Optional[float] = None

    @property
    def primed(self) -> bool:
        return self.value is not None

    def push(self, raw: float) -> float:
        """
        Add a reading and return the smoothed value.

        The first reading initializes the state unchanged.
        """
        if raw is None or not math.isfinite(raw):
            raise ValueError(f"Cannot smooth non-finite reading: {raw}")
        if self.value is None:
            self.value = float(raw)
        else:
            self.value = self.alpha * raw + (1.0 - self.alpha) * self.value
        return self.value

    def reset(self) -> None:
        """Forget the running average."""
        self.value = None
