# shoulder_rom/utils/visualization.py
import cv2
import numpy as np
from typing import Any, Dict, Optional, Sequence, Tuple

from shoulder_rom.core.base import FrameStatus, MeasurementMode, SessionSnapshot, Side
from shoulder_rom.core.landmarks import (
    SKELETON_CONNECTIONS,
    SKELETON_JOINTS,
    MIN_FRAME_LENGTH,
    is_empty_frame,
    joint_index,
    to_point,
)
from shoulder_rom.utils.math_utils import MathUtils

DEFAULT_TARGET_WINDOWS = {
    MeasurementMode.ABDUCTION: (150.0, 180.0),
    MeasurementMode.FLEXION: (150.0, 180.0),
    MeasurementMode.EXTENSION: (40.0, 50.0),
}


def format_angle(angle: Optional[float]) -> str:
    """Angle label; OpenCV Hershey fonts have no degree sign."""
    return "--.-" if angle is None else f"{angle:.1f} deg"


def selection_label(mode: MeasurementMode, side: Side) -> str:
    return f"{mode.label} {side.label}"


def _pt(p) -> Tuple[int, int]:
    return int(round(float(p[0]))), int(round(float(p[1])))


class OverlayRenderer:
    """Draws skeleton, measurement axes, angle labels and the ROM bar on BGR frames."""

    def __init__(self, theme: str = "dark",
                 target_windows: Optional[Dict[Any, Sequence[float]]] = None,
                 show_skeleton: bool = True,
                 show_axes: bool = True,
                 show_rom_bar: bool = True):
        """
        Initialize renderer with color theme.

        Args:
            theme: Color theme ("dark" or "light")
            target_windows: Mode (or mode name) to (start, end) degrees highlighted on the ROM bar
        """
        self.theme = theme
        self._set_color_theme(theme)
        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self.show_skeleton = show_skeleton
        self.show_axes = show_axes
        self.show_rom_bar = show_rom_bar

        self.target_windows = dict(DEFAULT_TARGET_WINDOWS)
        for key, window in (target_windows or {}).items():
            mode = key if isinstance(key, MeasurementMode) else MeasurementMode(str(key).upper())
            self.target_windows[mode] = (float(window[0]), float(window[1]))

    @classmethod
    def from_config(cls, vis_config: Dict[str, Any]) -> 'OverlayRenderer':
        return cls(
            theme=vis_config.get("theme", "dark"),
            target_windows=vis_config.get("target_windows"),
            show_skeleton=vis_config.get("show_skeleton", True),
            show_axes=vis_config.get("show_axes", True),
            show_rom_bar=vis_config.get("show_rom_bar", True),
        )

    def _set_color_theme(self, theme: str) -> None:
        # Basic colors (BGR format)
        self.colors = {
            'white': (255, 255, 255),
            'black': (0, 0, 0),
            'moving_axis': (0, 200, 255),  # yellow/orange
            'base_axis': (255, 200, 0),    # cyan
            'bar_window': (200, 200, 200),
        }
        if theme == "light":
            self.colors['label_bg'] = (255, 255, 255)
            self.colors['label_text'] = (0, 0, 0)
        else:
            self.colors['label_bg'] = (0, 0, 0)
            self.colors['label_text'] = (255, 255, 255)

    def draw_connection(self, frame: np.ndarray, start_point: Tuple[int, int],
                        end_point: Tuple[int, int], color: Tuple[int, int, int],
                        thickness: int = 2, style: str = 'solid') -> None:
        """
        Draw a connection line between two points.

        Args:
            style: Line style ('solid' or 'dashed')
        """
        if style == 'solid':
            cv2.line(frame, start_point, end_point, color, thickness, cv2.LINE_AA)
            return

        pt1 = np.array(start_point, dtype=np.float64)
        pt2 = np.array(end_point, dtype=np.float64)
        dist = np.linalg.norm(pt2 - pt1)
        dash, gap = 16, 8
        if dist < dash:
            cv2.line(frame, start_point, end_point, color, thickness, cv2.LINE_AA)
            return

        direction = (pt2 - pt1) / dist
        covered = 0.0
        while covered < dist:
            seg_start = pt1 + direction * covered
            seg_end = pt1 + direction * min(covered + dash, dist)
            cv2.line(frame, _pt(seg_start), _pt(seg_end), color, thickness, cv2.LINE_AA)
            covered += dash + gap

    def draw_landmark_point(self, frame: np.ndarray, point: Tuple[int, int]) -> None:
        # Outer dark ring then inner white dot
        cv2.circle(frame, point, 8, self.colors['black'], -1, cv2.LINE_AA)
        cv2.circle(frame, point, 5, self.colors['white'], -1, cv2.LINE_AA)

    def put_label(self, frame: np.ndarray, text: str, center_x: int, top: int,
                  scale: float = 1.0, thickness: int = 2, alpha: float = 0.6) -> int:
        """
        Draw text centered on center_x inside a translucent box.

        Returns:
            Bottom y coordinate of the box
        """
        (text_width, text_height), baseline = cv2.getTextSize(text, self.font, scale, thickness)
        pad = max(4, int(text_height * 0.4))
        x0 = int(center_x - text_width / 2 - pad)
        x1 = int(center_x + text_width / 2 + pad)
        y1 = top + text_height + baseline + 2 * pad

        overlay = frame.copy()
        cv2.rectangle(overlay, (x0, top), (x1, y1), self.colors['label_bg'], -1)
        cv2.addWeighted(overlay, alpha, frame, 1 - alpha, 0, frame)
        cv2.putText(frame, text, (x0 + pad, top + pad + text_height), self.font, scale,
                    self.colors['label_text'], thickness, cv2.LINE_AA)
        return y1

    def draw_skeleton(self, frame: np.ndarray, pixels: Dict[int, Tuple[int, int]]) -> None:
        for a, b in SKELETON_CONNECTIONS:
            if a in pixels and b in pixels:
                cv2.line(frame, pixels[a], pixels[b], self.colors['black'], 10, cv2.LINE_AA)
                cv2.line(frame, pixels[a], pixels[b], self.colors['white'], 6, cv2.LINE_AA)
        for idx in SKELETON_JOINTS:
            if idx in pixels:
                self.draw_landmark_point(frame, pixels[idx])

    def draw_axes(self, frame: np.ndarray, pixels: Dict[int, Tuple[int, int]],
                  mode: MeasurementMode, side: Side) -> None:
        """Draw the moving axis (upper arm) and the base axis of the measurement."""
        needed = [joint_index(side, "shoulder"), joint_index(side, "elbow"), 23, 24]
        if not all(idx in pixels for idx in needed):
            return
        sh = pixels[joint_index(side, "shoulder")]
        el = pixels[joint_index(side, "elbow")]
        hip_mid = ((pixels[23][0] + pixels[24][0]) // 2, (pixels[23][1] + pixels[24][1]) // 2)
        reach = max(40, frame.shape[0] // 6)

        if mode is MeasurementMode.ABDUCTION:
            self.draw_connection(frame, el, sh, self.colors['moving_axis'], 3, 'dashed')
            self.draw_connection(frame, (sh[0], sh[1] - reach), (sh[0], sh[1] + reach),
                                 self.colors['base_axis'], 3, 'dashed')
        elif mode is MeasurementMode.FLEXION:
            self.draw_connection(frame, el, sh, self.colors['moving_axis'], 3, 'dashed')
            self.draw_connection(frame, sh, hip_mid, self.colors['base_axis'], 3, 'dashed')
        else:
            self.draw_connection(frame, sh, el, self.colors['moving_axis'], 3, 'dashed')
            self.draw_connection(frame, sh, (sh[0], sh[1] + reach), self.colors['base_axis'], 3, 'dashed')

    def draw_angle_labels(self, frame: np.ndarray, angle: Optional[float],
                          mode: MeasurementMode, side: Side) -> None:
        """Angle centered at the top with the mode/side label below it."""
        w = frame.shape[1]
        scale = max(0.5, w / 900.0)
        pad = max(8, int(w * 0.02))
        bottom = self.put_label(frame, format_angle(angle), w // 2, pad * 2, scale)
        self.put_label(frame, selection_label(mode, side), w // 2, bottom + pad, scale * 0.8)

    def bar_geometry(self, frame_shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
        """(left, top, right, bottom) of the ROM bar."""
        h, w = frame_shape[:2]
        margin = max(8, int(w * 0.04))
        height = max(6, int(h * 0.02))
        bottom = h - margin
        return margin, bottom - height, w - margin, bottom

    def bar_x(self, frame_shape: Tuple[int, ...], degrees: float, mode: MeasurementMode) -> int:
        """Horizontal position of an angle on the ROM bar."""
        left, _, right, _ = self.bar_geometry(frame_shape)
        fraction = MathUtils.clamp(degrees / mode.max_angle, 0.0, 1.0)
        return int(round(left + fraction * (right - left)))

    def draw_rom_bar(self, frame: np.ndarray, mode: MeasurementMode,
                     current: Optional[float], peak: Optional[float]) -> None:
        """ROM bar scaled to the mode maximum with target window, current and peak markers."""
        left, top, right, bottom = self.bar_geometry(frame.shape)

        overlay = frame.copy()
        cv2.rectangle(overlay, (left, top), (right, bottom), self.colors['black'], -1)
        win_start, win_end = self.target_windows[mode]
        cv2.rectangle(overlay, (self.bar_x(frame.shape, win_start, mode), top),
                      (self.bar_x(frame.shape, win_end, mode), bottom), self.colors['bar_window'], -1)
        cv2.addWeighted(overlay, 0.5, frame, 0.5, 0, frame)
        cv2.rectangle(frame, (left, top), (right, bottom), self.colors['white'], 2)

        if current is not None:
            x = self.bar_x(frame.shape, current, mode)
            cv2.line(frame, (x, top - 8), (x, bottom + 8), self.colors['white'], 3)
        if peak is not None:
            x = self.bar_x(frame.shape, peak, mode)
            cv2.line(frame, (x, top - 6), (x, bottom + 6), self.colors['bar_window'], 2)

    def render(self, frame: np.ndarray, landmarks: Optional[Sequence[Any]],
               snapshot: SessionSnapshot) -> np.ndarray:
        """
        Draw the full measurement overlay in place.

        Args:
            frame: BGR frame
            landmarks: Normalized landmark frame (may be empty)
            snapshot: Session state to display

        Returns:
            The annotated frame
        """
        pixels: Dict[int, Tuple[int, int]] = {}
        if (not is_empty_frame(landmarks) and len(landmarks) >= MIN_FRAME_LENGTH
                and snapshot.frame_status is not FrameStatus.INVALID_INPUT):
            for idx in SKELETON_JOINTS:
                pixels[idx] = MathUtils.to_pixel(to_point(landmarks[idx]), frame.shape)

        if pixels and self.show_skeleton:
            self.draw_skeleton(frame, pixels)
        if pixels and self.show_axes:
            self.draw_axes(frame, pixels, snapshot.mode, snapshot.side)

        self.draw_angle_labels(frame, snapshot.current_angle, snapshot.mode, snapshot.side)
        if self.show_rom_bar:
            self.draw_rom_bar(frame, snapshot.mode, snapshot.current_angle, snapshot.peak_angle)
        return frame
