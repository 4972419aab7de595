# shoulder_rom/analysis/motion_visualizer.py
import io
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from shoulder_rom.core.base import AngleReading, MeasurementMode, parse_mode
from shoulder_rom.utils.visualization import DEFAULT_TARGET_WINDOWS


class MotionVisualizer:
    """Plot the angle trajectory of a recording."""

    def __init__(self, width: float = 10.0, height: float = 4.0, dpi: int = 100):
        """
        Initialize motion visualizer.

        Args:
            width: Figure width in inches
            height: Figure height in inches
            dpi: Resolution used when rasterizing
        """
        self.width = width
        self.height = height
        self.dpi = dpi

    def create_figure(self, samples: Sequence[AngleReading],
                      mode: Optional[MeasurementMode] = None,
                      target_window: Optional[Tuple[float, float]] = None) -> plt.Figure:
        """
        Create a figure of angle vs. time.

        Args:
            samples: Recorded readings
            mode: Mode of the recording, defaults to the mode of the first sample
            target_window: (start, end) degrees to shade, defaults to the mode's window

        Returns:
            Matplotlib figure (caller closes it)
        """
        if mode is None:
            mode = samples[0].mode if samples else MeasurementMode.ABDUCTION
        mode = parse_mode(mode)
        if target_window is None:
            target_window = DEFAULT_TARGET_WINDOWS[mode]

        fig, ax = plt.subplots(figsize=(self.width, self.height), dpi=self.dpi)
        ax.axhspan(target_window[0], target_window[1], color="green", alpha=0.15, label="Target")

        if samples:
            t0 = samples[0].timestamp
            times = [(s.timestamp - t0) / 1000.0 for s in samples]
            angles = [s.degrees for s in samples]
            ax.plot(times, angles, "b-", linewidth=2, label="Angle")

            peak_index = int(np.argmax(angles))
            ax.plot(times[peak_index], angles[peak_index], "ro")
            ax.annotate(f"Peak {angles[peak_index]:.1f}",
                        (times[peak_index], angles[peak_index]),
                        textcoords="offset points", xytext=(0, 8), ha="center")

        ax.set_ylim(0, mode.max_angle + 10)
        ax.set_xlabel("Time (seconds)")
        ax.set_ylabel("Angle (degrees)")
        ax.set_title(f"Shoulder {mode.value.title()}")
        ax.grid(True, alpha=0.3)
        ax.legend(loc="upper right")
        fig.tight_layout()
        return fig

    def create_trajectory_image(self, samples: Sequence[AngleReading],
                                mode: Optional[MeasurementMode] = None) -> np.ndarray:
        """Render the trajectory figure as a BGR image."""
        fig = self.create_figure(samples, mode)

        # Convert matplotlib plot to image
        buf = io.BytesIO()
        fig.savefig(buf, format="png", dpi=self.dpi)
        plt.close(fig)
        buf.seek(0)

        plot_img = np.asarray(bytearray(buf.read()), dtype=np.uint8)
        return cv2.imdecode(plot_img, cv2.IMREAD_COLOR)
