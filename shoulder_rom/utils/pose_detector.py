# shoulder_rom/utils/pose_detector.py
import logging
from typing import List

import cv2
import numpy as np
import mediapipe as mp

from shoulder_rom.core.base import Point3D

logger = logging.getLogger("shoulder_rom.pose_detector")


class PoseDetector:
    """MediaPipe pose detector producing normalized landmark frames for one person."""

    def __init__(self,
                 static_image_mode: bool = False,
                 model_complexity: int = 1,
                 min_detection_confidence: float = 0.6,
                 min_tracking_confidence: float = 0.6):
        """
        Initialize the pose detector.

        Args:
            static_image_mode: Whether to treat input as unrelated images
            model_complexity: Model complexity (0, 1, or 2)
            min_detection_confidence: Minimum confidence to report a body
            min_tracking_confidence: Minimum confidence to keep tracking
        """
        self.mp_pose = mp.solutions.pose
        self.pose = self.mp_pose.Pose(
            static_image_mode=static_image_mode,
            model_complexity=model_complexity,
            smooth_landmarks=True,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence
        )
        self.frame_count = 0

        logger.info(f"Initialized PoseDetector with model_complexity={model_complexity}")

    @classmethod
    def from_config(cls, pose_config: dict) -> 'PoseDetector':
        return cls(
            static_image_mode=pose_config.get("static_image_mode", False),
            model_complexity=pose_config.get("model_complexity", 1),
            min_detection_confidence=pose_config.get("min_detection_confidence", 0.6),
            min_tracking_confidence=pose_config.get("min_tracking_confidence", 0.6),
        )

    def find_pose(self, frame: np.ndarray) -> List[Point3D]:
        """
        Detect the pose in a BGR frame.

        Args:
            frame: Input video frame (BGR)

        Returns:
            33 normalized landmarks in MediaPipe order, or [] when no body is found
        """
        self.frame_count += 1

        # Convert to RGB for MediaPipe
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.pose.process(rgb_frame)

        if not results.pose_landmarks:
            return []

        return [Point3D(lm.x, lm.y, lm.z) for lm in results.pose_landmarks.landmark]

    def close(self) -> None:
        """Release the MediaPipe graph."""
        self.pose.close()
