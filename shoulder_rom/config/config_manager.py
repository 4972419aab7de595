# shoulder_rom/config/config_manager.py
import json
import copy
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from shoulder_rom.core.angle_calculator import QualityThresholds
from shoulder_rom.core.session import MeasurementSession

logger = logging.getLogger("shoulder_rom.config_manager")


class ConfigManager:
    """
    Manages configuration settings for shoulder ROM measurement.

    Settings are stored as JSON and merged over DEFAULT_CONFIG, so options
    added in newer versions are always present.
    """

    DEFAULT_CONFIG = {
        # Pose detection settings
        "pose": {
            "model_complexity": 1,
            "min_detection_confidence": 0.6,
            "min_tracking_confidence": 0.6,
            "static_image_mode": False
        },

        # Angle computation and smoothing
        "measurement": {
            "alpha": 0.2,
            "abduction_max_z_diff": 0.12,
            "sagittal_min_z_diff": 0.10,
            "extension_min_dz": 0.01,
            "extension_dy_offset": 0.01,
            "extension_max_angle": 50.0,
            "default_side": "LEFT",
            "default_mode": "ABDUCTION"
        },

        # Live capture settings
        "capture": {
            "target_fps": 20,
            "camera_index": 0,
            "frame_timeout": 5.0
        },

        # Visualization settings
        "visualization": {
            "theme": "dark",
            "show_skeleton": True,
            "show_axes": True,
            "show_rom_bar": True,
            "target_windows": {
                "ABDUCTION": [150.0, 180.0],
                "FLEXION": [150.0, 180.0],
                "EXTENSION": [40.0, 50.0]
            }
        },

        # Recorded video overlay
        "video": {
            "target_fps": 20,
            "smoothing_alpha": 1.0,  # raw per-frame angles
            "fourcc": "mp4v"
        },

        # Export settings
        "export": {
            "output_dir": str(Path.home() / ".shoulder_rom" / "exports"),
            "angle_format": "%.3f"
        }
    }

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory for storing configuration files
        """
        self.config_dir = Path(config_dir) if config_dir else Path.home() / ".shoulder_rom"
        self.config_path = self.config_dir / "config.json"

        # Create directory if it doesn't exist
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Load or create default configuration
        self.config = self._load_config()

        logger.info(f"Configuration manager initialized with config at: {self.config_path}")

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file or create default.

        Returns:
            Configuration dictionary
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    config = json.load(f)
                    # Merge with defaults in case new options were added
                    return self._merge_with_defaults(config)
            except (OSError, ValueError) as e:
                logger.error(f"Error loading configuration: {str(e)}")
                logger.info("Using default configuration")
                return copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            logger.info("Creating default configuration")
            default_config = copy.deepcopy(self.DEFAULT_CONFIG)
            self._save_config(default_config)
            return default_config

    def _save_config(self, config: Dict[str, Any]) -> bool:
        """
        Save configuration to file.

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(self.config_path, 'w') as f:
                json.dump(config, f, indent=4)
            return True
        except OSError as e:
            logger.error(f"Error saving configuration: {str(e)}")
            return False

    def _merge_with_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Merge provided configuration with defaults to ensure all options are present."""
        merged_config = copy.deepcopy(self.DEFAULT_CONFIG)

        def merge_dicts(source, destination):
            for key, value in source.items():
                if isinstance(value, dict) and isinstance(destination.get(key), dict):
                    merge_dicts(value, destination[key])
                else:
                    destination[key] = value

        merge_dicts(config, merged_config)
        return merged_config

    def save(self) -> bool:
        """Save current configuration."""
        return self._save_config(self.config)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get one configuration section (empty dict if unknown)."""
        return self.config.get(section, {})

    def get_complete_config(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)

    def update_section(self, section: str, updates: Dict[str, Any]) -> bool:
        """
        Update a section of the configuration.

        Args:
            section: Section name (pose, measurement, capture, visualization, video, export)
            updates: Dictionary of updates

        Returns:
            True if successful, False otherwise
        """
        if section not in self.config:
            logger.error(f"Invalid configuration section: {section}")
            return False

        self.config[section].update(updates)
        return self.save()

    def reset_to_defaults(self) -> bool:
        """Reset configuration to defaults."""
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        return self.save()

    def get_thresholds(self) -> QualityThresholds:
        """View-quality and extension constants from the measurement section."""
        return QualityThresholds.from_config(self.get_section("measurement"))

    def create_session(self, side=None, mode=None, alpha: Optional[float] = None) -> MeasurementSession:
        """
        Build a measurement session from the configured defaults.

        Args:
            side: Overrides measurement.default_side
            mode: Overrides measurement.default_mode
            alpha: Overrides measurement.alpha
        """
        measurement = self.get_section("measurement")
        return MeasurementSession(
            side=side or measurement["default_side"],
            mode=mode or measurement["default_mode"],
            alpha=measurement["alpha"] if alpha is None else alpha,
            thresholds=self.get_thresholds(),
        )
