# shoulder_rom/api/config_endpoints.py
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from shoulder_rom.config.config_manager import ConfigManager

# Initialize router
router = APIRouter(prefix="/api/config", tags=["configuration"])


@lru_cache()
def get_config_manager() -> ConfigManager:
    """Shared configuration manager (overridable in tests)."""
    return ConfigManager()


# Pydantic models for request validation
class PoseConfig(BaseModel):
    model_complexity: Optional[int] = None
    min_detection_confidence: Optional[float] = None
    min_tracking_confidence: Optional[float] = None
    static_image_mode: Optional[bool] = None


class MeasurementConfig(BaseModel):
    alpha: Optional[float] = None
    abduction_max_z_diff: Optional[float] = None
    sagittal_min_z_diff: Optional[float] = None
    extension_min_dz: Optional[float] = None
    extension_dy_offset: Optional[float] = None
    extension_max_angle: Optional[float] = None
    default_side: Optional[str] = None
    default_mode: Optional[str] = None


class CaptureConfig(BaseModel):
    target_fps: Optional[float] = None
    camera_index: Optional[int] = None
    frame_timeout: Optional[float] = None


class VisualizationConfig(BaseModel):
    theme: Optional[str] = None
    show_skeleton: Optional[bool] = None
    show_axes: Optional[bool] = None
    show_rom_bar: Optional[bool] = None
    target_windows: Optional[Dict[str, List[float]]] = None


class VideoConfig(BaseModel):
    target_fps: Optional[float] = None
    smoothing_alpha: Optional[float] = None
    fourcc: Optional[str] = None


class ExportConfig(BaseModel):
    output_dir: Optional[str] = None
    angle_format: Optional[str] = None


def _apply_updates(config_manager: ConfigManager, section: str, config: BaseModel) -> Dict:
    updates = {k: v for k, v in config.model_dump().items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    success = config_manager.update_section(section, updates)
    if not success:
        raise HTTPException(status_code=500, detail="Failed to update configuration")

    return {"status": "success", "config": config_manager.get_section(section)}


# Routes for managing configuration
@router.get("/")
async def get_all_config(config_manager: ConfigManager = Depends(get_config_manager)):
    """Get complete configuration."""
    return config_manager.get_complete_config()


@router.get("/pose")
async def get_pose_config(config_manager: ConfigManager = Depends(get_config_manager)):
    """Get pose detection configuration."""
    return config_manager.get_section("pose")


@router.put("/pose")
async def update_pose_config(config: PoseConfig,
                             config_manager: ConfigManager = Depends(get_config_manager)):
    """Update pose detection configuration."""
    return _apply_updates(config_manager, "pose", config)


@router.get("/measurement")
async def get_measurement_config(config_manager: ConfigManager = Depends(get_config_manager)):
    """Get smoothing and view-quality configuration."""
    return config_manager.get_section("measurement")


@router.put("/measurement")
async def update_measurement_config(config: MeasurementConfig,
                                    config_manager: ConfigManager = Depends(get_config_manager)):
    """Update smoothing and view-quality configuration."""
    if config.alpha is not None and not 0.0 < config.alpha <= 1.0:
        raise HTTPException(status_code=400, detail="alpha must be in (0, 1]")
    return _apply_updates(config_manager, "measurement", config)


@router.get("/capture")
async def get_capture_config(config_manager: ConfigManager = Depends(get_config_manager)):
    return config_manager.get_section("capture")


@router.put("/capture")
async def update_capture_config(config: CaptureConfig,
                                config_manager: ConfigManager = Depends(get_config_manager)):
    return _apply_updates(config_manager, "capture", config)


@router.get("/visualization")
async def get_visualization_config(config_manager: ConfigManager = Depends(get_config_manager)):
    """Get visualization configuration."""
    return config_manager.get_section("visualization")


@router.put("/visualization")
async def update_visualization_config(config: VisualizationConfig,
                                      config_manager: ConfigManager = Depends(get_config_manager)):
    """Update visualization configuration."""
    return _apply_updates(config_manager, "visualization", config)


@router.get("/video")
async def get_video_config(config_manager: ConfigManager = Depends(get_config_manager)):
    return config_manager.get_section("video")


@router.put("/video")
async def update_video_config(config: VideoConfig,
                              config_manager: ConfigManager = Depends(get_config_manager)):
    return _apply_updates(config_manager, "video", config)


@router.get("/export")
async def get_export_config(config_manager: ConfigManager = Depends(get_config_manager)):
    return config_manager.get_section("export")


@router.put("/export")
async def update_export_config(config: ExportConfig,
                               config_manager: ConfigManager = Depends(get_config_manager)):
    return _apply_updates(config_manager, "export", config)


@router.post("/reset")
async def reset_config(config_manager: ConfigManager = Depends(get_config_manager)):
    """Reset configuration to defaults."""
    success = config_manager.reset_to_defaults()
    if not success:
        raise HTTPException(status_code=500, detail="Failed to reset configuration")

    return {"status": "success", "message": "Configuration reset to defaults"}
