# shoulder_rom/api/main.py
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from typing import Any, Callable, Dict, List, Optional
import uvicorn
import base64
import cv2
import numpy as np
import json
import asyncio
import logging
import threading
import time

from shoulder_rom.api.config_endpoints import router as config_router, get_config_manager
from shoulder_rom.analysis.exporter import export_basename, samples_to_csv, summarize_samples
from shoulder_rom.config.config_manager import ConfigManager
from shoulder_rom.core.base import (
    FrameStatus,
    MeasurementMode,
    SessionNotFoundError,
    Side,
    parse_mode,
    parse_side,
)
from shoulder_rom.core.session import now_ms
from shoulder_rom.core.session_manager import SessionManager
from shoulder_rom.utils.frame_throttle import FrameThrottle
from shoulder_rom.utils.visualization import OverlayRenderer

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("shoulder_rom.api")


# Define API models
class SessionCreate(BaseModel):
    """Parameters of a new measurement session."""
    side: Side = Side.LEFT
    mode: MeasurementMode = MeasurementMode.ABDUCTION
    alpha: Optional[float] = Field(default=None, gt=0.0, le=1.0)


class FrameRequest(BaseModel):
    """One landmark frame; an empty list means no body was detected."""
    landmarks: List[List[float]] = []
    timestamp: Optional[float] = None
    side: Optional[Side] = None
    mode: Optional[MeasurementMode] = None


class SelectionRequest(BaseModel):
    side: Optional[Side] = None
    mode: Optional[MeasurementMode] = None


# Create FastAPI app
app = FastAPI(
    title="Shoulder ROM API",
    description="API for shoulder range of motion measurement using pose estimation",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(config_router)

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Process-wide session registry."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def create_configured_session(manager: SessionManager, config_manager: ConfigManager,
                              side, mode, alpha: Optional[float] = None) -> str:
    """Create a session with the thresholds and alpha currently configured."""
    if alpha is None:
        alpha = config_manager.get_section("measurement").get("alpha", 0.2)
    return manager.create_session(side, mode, alpha=alpha, thresholds=config_manager.get_thresholds())


def get_detector_factory(config_manager: ConfigManager = Depends(get_config_manager)) -> Callable[[], Any]:
    """Factory for the pose detector used by the streaming endpoint."""
    def factory():
        from shoulder_rom.utils.pose_detector import PoseDetector
        return PoseDetector.from_config(config_manager.get_section("pose"))
    return factory


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/modes")
async def get_available_modes(manager: SessionManager = Depends(get_session_manager)):
    """Get the measurement modes with their required view and angle range."""
    return {"modes": manager.available_modes()}


@app.post("/api/sessions")
async def create_session(request: SessionCreate, manager: SessionManager = Depends(get_session_manager),
                         config_manager: ConfigManager = Depends(get_config_manager)):
    """Start a measurement session."""
    try:
        session_id = create_configured_session(manager, config_manager, request.side, request.mode,
                                               alpha=request.alpha)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "session_id": session_id,
        "snapshot": manager.get_session(session_id).snapshot().to_dict()
    }


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    """Get the current state of a session."""
    return manager.get_session(session_id).to_dict()


@app.post("/api/sessions/{session_id}/frames")
async def process_frame(session_id: str, request: FrameRequest,
                        manager: SessionManager = Depends(get_session_manager)):
    """Process one landmark frame and return the session snapshot."""
    snapshot = manager.process_frame(
        session_id,
        request.landmarks,
        side=request.side,
        mode=request.mode,
        timestamp=request.timestamp,
    )
    if snapshot.frame_status is FrameStatus.INVALID_INPUT:
        raise HTTPException(status_code=422, detail="Malformed landmark frame")
    return snapshot.to_dict()


@app.put("/api/sessions/{session_id}/selection")
async def update_selection(session_id: str, request: SelectionRequest,
                           manager: SessionManager = Depends(get_session_manager)):
    """Change side and/or mode; the session restarts only if something changed."""
    was_reset = manager.select(session_id, side=request.side, mode=request.mode)
    return {
        "reset": was_reset,
        "snapshot": manager.get_session(session_id).snapshot().to_dict()
    }


@app.post("/api/sessions/{session_id}/reset")
async def reset_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    """Clear current angle, peak and samples."""
    return manager.reset_session(session_id).to_dict()


@app.get("/api/sessions/{session_id}/samples")
async def get_samples(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    """Get the recorded samples and their summary."""
    samples = manager.get_session(session_id).samples
    return {
        "samples": [s.to_dict() for s in samples],
        "summary": summarize_samples(samples)
    }


@app.get("/api/sessions/{session_id}/export.csv")
async def export_samples(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    """Download the recorded samples as CSV."""
    session = manager.get_session(session_id)
    samples = session.samples
    if not samples:
        raise HTTPException(status_code=404, detail="No samples to export")

    filename = f"{export_basename(session.mode, session.side, now_ms())}.csv"
    return Response(
        content=samples_to_csv(samples),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@app.delete("/api/sessions/{session_id}")
async def end_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    """End a session and return its final state."""
    return manager.end_session(session_id)


def decode_image(data: str) -> Optional[np.ndarray]:
    """Decode a data URL (or bare base64 string) into a BGR frame."""
    payload = data.split(",", 1)[1] if "," in data else data
    try:
        image_data = base64.b64decode(payload)
    except ValueError:
        return None
    nparr = np.frombuffer(image_data, np.uint8)
    if nparr.size == 0:
        return None
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


def encode_image(frame: np.ndarray) -> str:
    _, buffer = cv2.imencode(".jpg", frame)
    return f"data:image/jpeg;base64,{base64.b64encode(buffer).decode('utf-8')}"


def measure_image(data: str, detector, detector_lock: threading.Lock, manager: SessionManager,
                  session_id: str, renderer: OverlayRenderer) -> Optional[Dict[str, Any]]:
    """
    Decode, detect, measure and annotate one streamed image.

    Blocking; the WebSocket handler runs it in a worker thread.

    Returns:
        Reply message, or None when the image cannot be decoded
    """
    frame = decode_image(data)
    if frame is None:
        return None

    # A timed-out call may still be running when the next frame arrives
    with detector_lock:
        landmarks = detector.find_pose(frame)
    snapshot = manager.process_frame(session_id, landmarks)
    processed_frame = renderer.render(frame, landmarks, snapshot)

    return {
        "snapshot": snapshot.to_dict(),
        "image": encode_image(processed_frame)
    }


@app.websocket("/api/measure/{mode}/{side}")
async def measure_websocket(websocket: WebSocket, mode: str, side: str,
                            manager: SessionManager = Depends(get_session_manager),
                            config_manager: ConfigManager = Depends(get_config_manager),
                            detector_factory: Callable[[], Any] = Depends(get_detector_factory)):
    """
    WebSocket endpoint for live measurement.

    Clients send data:image/...;base64 frames and receive the snapshot plus
    the annotated JPEG. JSON text messages {"command": "reset"} and
    {"command": "select", "mode": ..., "side": ...} control the session.
    """
    try:
        mode_value, side_value = parse_mode(mode), parse_side(side)
    except ValueError as e:
        await websocket.close(code=1008, reason=str(e))
        return

    await websocket.accept()

    session_id = create_configured_session(manager, config_manager, side_value, mode_value)
    capture_config = config_manager.get_section("capture")
    throttle = FrameThrottle(capture_config.get("target_fps", 20))
    frame_timeout = capture_config.get("frame_timeout", 5.0)
    renderer = OverlayRenderer.from_config(config_manager.get_section("visualization"))
    detector_lock = threading.Lock()
    detector = None

    try:
        detector = detector_factory()
        logger.info(f"Started measurement stream {session_id} ({mode_value.label} {side_value.label})")

        while True:
            data = await websocket.receive_text()

            if data.startswith("{"):
                try:
                    message = json.loads(data)
                    command = message.get("command")
                    if command == "reset":
                        snapshot = manager.reset_session(session_id)
                    elif command == "select":
                        manager.select(session_id, side=message.get("side"), mode=message.get("mode"))
                        snapshot = manager.get_session(session_id).snapshot()
                    else:
                        raise ValueError(f"Unknown command: {command}")
                except ValueError as e:
                    await websocket.send_text(json.dumps({"error": str(e)}))
                    continue
                await websocket.send_text(json.dumps({"snapshot": snapshot.to_dict()}))
                continue

            if not throttle.should_process(time.monotonic() * 1000.0):
                await websocket.send_text(json.dumps({"status": "throttled"}))
                continue

            try:
                reply = await asyncio.wait_for(
                    asyncio.to_thread(measure_image, data, detector, detector_lock,
                                      manager, session_id, renderer),
                    timeout=frame_timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Frame processing timed out after {frame_timeout} seconds")
                await websocket.send_text(json.dumps({"error": "Processing timeout"}))
                continue

            if reply is None:
                await websocket.send_text(json.dumps({"error": "Could not decode image"}))
                continue
            await websocket.send_text(json.dumps(reply))

    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {session_id}")
    finally:
        if detector is not None and hasattr(detector, "close"):
            with detector_lock:
                detector.close()
        final_data = manager.end_session(session_id)
        logger.info(f"Measurement stream ended: {session_id} (peak={final_data['peak_angle']})")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Shoulder ROM API Server")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind the server to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind the server to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    uvicorn.run(
        "shoulder_rom.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info" if not args.debug else "debug",
        access_log=True
    )
