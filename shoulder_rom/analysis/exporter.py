# shoulder_rom/analysis/exporter.py
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import cv2
import numpy as np
import pandas as pd

from shoulder_rom.core.base import AngleReading, MeasurementMode, Side, parse_mode, parse_side
from shoulder_rom.core.session import now_ms as _now_ms

logger = logging.getLogger("shoulder_rom.exporter")

CSV_COLUMNS = ["timestamp", "mode", "side", "angle"]
ANGLE_FORMAT = "%.3f"


def export_basename(mode: MeasurementMode, side: Side, timestamp_ms: int) -> str:
    """File stem shared by CSV and PNG exports, e.g. rom_ABD_L_1700000000000."""
    return f"rom_{parse_mode(mode).label}_{parse_side(side).label}_{int(timestamp_ms)}"


def samples_to_dataframe(samples: Sequence[AngleReading]) -> pd.DataFrame:
    """
    Convert recorded readings to a DataFrame.

    Returns:
        DataFrame with columns timestamp, mode, side, angle
    """
    rows = [reading.to_dict() for reading in samples]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def samples_to_csv(samples: Sequence[AngleReading], angle_format: str = ANGLE_FORMAT) -> str:
    """Render readings as CSV text with header timestamp,mode,side,angle."""
    return _format_csv(samples_to_dataframe(samples), angle_format)


def _format_csv(df: pd.DataFrame, angle_format: str) -> str:
    df = df.copy()
    df["angle"] = df["angle"].map(lambda a: angle_format % a)
    return df.to_csv(index=False, lineterminator="\n")


def export_csv(samples: Sequence[AngleReading],
               output_dir: Union[str, Path],
               mode: MeasurementMode,
               side: Side,
               now_ms: Optional[int] = None,
               angle_format: str = ANGLE_FORMAT) -> Optional[Path]:
    """
    Write readings to rom_{MODE}_{SIDE}_{ms}.csv.

    Args:
        samples: Recorded readings
        output_dir: Target directory (created if needed)
        mode: Mode used in the file name
        side: Side used in the file name
        now_ms: Timestamp for the file name, defaults to the current time

    Returns:
        Path of the written file, or None when there is nothing to export
    """
    if not samples:
        logger.info("No samples to export")
        return None

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{export_basename(mode, side, _now_ms() if now_ms is None else now_ms)}.csv"

    try:
        path.write_text(_format_csv(samples_to_dataframe(samples), angle_format))
    except OSError as e:
        logger.error(f"Error writing CSV export {path}: {e}")
        return None

    logger.info(f"Exported {len(samples)} samples to {path}")
    return path


def draw_snapshot_label(frame: np.ndarray, text: str) -> np.ndarray:
    """Draw a label in a translucent box at the top-left corner."""
    h, w = frame.shape[:2]
    scale = max(0.5, w / 1000.0)
    thickness = 2
    (text_width, text_height), baseline = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
    pad = int(16 * scale)
    x, y = pad, pad

    overlay = frame.copy()
    cv2.rectangle(overlay, (x, y), (x + text_width + 2 * pad, y + text_height + baseline + 2 * pad), (0, 0, 0), -1)
    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)
    cv2.putText(frame, text, (x + pad, y + pad + text_height), cv2.FONT_HERSHEY_SIMPLEX, scale,
                (255, 255, 255), thickness, cv2.LINE_AA)
    return frame


def save_snapshot_png(frame: Optional[np.ndarray],
                      current_angle: Optional[float],
                      peak_angle: Optional[float],
                      mode: MeasurementMode,
                      side: Side,
                      output_dir: Union[str, Path],
                      now_ms: Optional[int] = None) -> Optional[Path]:
    """
    Save a labelled copy of the frame as rom_{MODE}_{SIDE}_{ms}.png.

    The label shows the current angle, falling back to the peak.

    Returns:
        Path of the written image, or None if there is no frame
    """
    if frame is None:
        logger.info("No frame available for snapshot")
        return None

    mode, side = parse_mode(mode), parse_side(side)
    angle = current_angle if current_angle is not None else peak_angle
    angle_text = "--.-" if angle is None else f"{angle:.1f} deg"
    label = f"{angle_text}  [{mode.label} {side.label}]"

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{export_basename(mode, side, _now_ms() if now_ms is None else now_ms)}.png"

    image = draw_snapshot_label(frame.copy(), label)
    if not cv2.imwrite(str(path), image):
        logger.error(f"Error writing snapshot {path}")
        return None

    logger.info(f"Saved snapshot to {path}")
    return path


def summarize_samples(samples: Sequence[AngleReading]) -> Dict[str, Any]:
    """
    Summary statistics of a recording.

    Returns:
        Dictionary with count, peak, mean, first/last timestamp and duration (ms)
    """
    if not samples:
        return {
            "count": 0,
            "peak": None,
            "mean": None,
            "first_timestamp": None,
            "last_timestamp": None,
            "duration_ms": 0.0,
        }

    df = samples_to_dataframe(samples)
    first, last = float(df["timestamp"].iloc[0]), float(df["timestamp"].iloc[-1])
    return {
        "count": int(len(df)),
        "peak": float(df["angle"].max()),
        "mean": float(df["angle"].mean()),
        "first_timestamp": first,
        "last_timestamp": last,
        "duration_ms": last - first,
    }
