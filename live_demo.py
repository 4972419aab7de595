#!/usr/bin/env python
"""
Live shoulder ROM measurement from a webcam.

Keys: q quit, r reset, s save PNG, e export CSV,
1/2/3 abduction/flexion/extension, l/k left/right side.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import cv2

from shoulder_rom.analysis.exporter import export_csv, save_snapshot_png
from shoulder_rom.config.config_manager import ConfigManager
from shoulder_rom.core.base import MeasurementMode, Side
from shoulder_rom.utils.frame_throttle import FrameThrottle
from shoulder_rom.utils.pose_detector import PoseDetector
from shoulder_rom.utils.visualization import OverlayRenderer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("shoulder_rom.live_demo")

MODE_KEYS = {
    ord('1'): MeasurementMode.ABDUCTION,
    ord('2'): MeasurementMode.FLEXION,
    ord('3'): MeasurementMode.EXTENSION,
}
SIDE_KEYS = {
    ord('l'): Side.LEFT,
    ord('k'): Side.RIGHT,
}


def run_live(config_manager: ConfigManager, camera_index: int, output_dir: Path,
             side=None, mode=None) -> int:
    """Webcam loop; returns a process exit code."""
    capture_config = config_manager.get_section("capture")
    session = config_manager.create_session(side=side, mode=mode)
    throttle = FrameThrottle(capture_config["target_fps"])
    renderer = OverlayRenderer.from_config(config_manager.get_section("visualization"))
    detector = PoseDetector.from_config(config_manager.get_section("pose"))

    cap = cv2.VideoCapture(camera_index)
    if not cap.isOpened():
        logger.error(f"Could not open camera {camera_index}")
        detector.close()
        return 1

    logger.info("Press 'q' to quit, 'r' to reset, 's' to save a snapshot, 'e' to export CSV")
    landmarks = []
    snapshot = session.snapshot()
    last_frame = None

    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                logger.error("Could not read frame from camera")
                break
            last_frame = frame.copy()

            # Measure at the target cadence, draw every frame
            if throttle.should_process(time.monotonic() * 1000.0):
                landmarks = detector.find_pose(frame)
                snapshot = session.process_frame(landmarks)

            cv2.imshow("Shoulder ROM", renderer.render(frame, landmarks, snapshot))

            key = cv2.waitKey(1) & 0xFF
            if key == ord('q'):
                break
            elif key == ord('r'):
                session.reset()
                snapshot = session.snapshot()
            elif key == ord('s'):
                save_snapshot_png(last_frame, session.current_angle, session.peak_angle,
                                  session.mode, session.side, output_dir)
            elif key == ord('e'):
                export_csv(session.samples, output_dir, session.mode, session.side,
                           angle_format=config_manager.get_section("export")["angle_format"])
            elif key in MODE_KEYS:
                session.select(mode=MODE_KEYS[key])
                snapshot = session.snapshot()
            elif key in SIDE_KEYS:
                session.select(side=SIDE_KEYS[key])
                snapshot = session.snapshot()
    finally:
        cap.release()
        detector.close()
        cv2.destroyAllWindows()

    logger.info(f"Session finished: peak={session.peak_angle} samples={len(session.samples)}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Live shoulder ROM measurement")
    parser.add_argument("--camera", type=int, default=None, help="Camera index")
    parser.add_argument("--side", choices=[s.value for s in Side], default=None, help="Body side")
    parser.add_argument("--mode", choices=[m.value for m in MeasurementMode], default=None, help="Movement")
    parser.add_argument("--output-dir", type=str, default=None, help="Directory for PNG and CSV exports")
    parser.add_argument("--config-dir", type=str, default=None, help="Configuration directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config_manager = ConfigManager(args.config_dir)
    camera_index = args.camera if args.camera is not None else config_manager.get_section("capture")["camera_index"]
    output_dir = Path(args.output_dir or config_manager.get_section("export")["output_dir"])

    return run_live(config_manager, camera_index, output_dir, side=args.side, mode=args.mode)


if __name__ == "__main__":
    sys.exit(main())
