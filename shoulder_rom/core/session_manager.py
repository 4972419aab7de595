# shoulder_rom/core/session_manager.py
import threading
import uuid
import logging
from typing import Any, Dict, Optional, Sequence

from shoulder_rom.core.base import (
    MeasurementMode,
    SessionNotFoundError,
    SessionSnapshot,
    Side,
    parse_mode,
    parse_side,
)
from shoulder_rom.core.angle_calculator import QualityThresholds, angle_range
from shoulder_rom.core.session import MeasurementSession, DEFAULT_ALPHA

# Setup logging
logger = logging.getLogger("shoulder_rom.session_manager")

MODE_DESCRIPTIONS = {
    MeasurementMode.ABDUCTION: ("Shoulder Abduction", "Raising the arm sideways, measured face-on", "frontal"),
    MeasurementMode.FLEXION: ("Shoulder Flexion", "Raising the arm forward, measured side-on", "side"),
    MeasurementMode.EXTENSION: ("Shoulder Extension", "Moving the arm backward, measured side-on", "side"),
}


class SessionManager:
    """
    Registry of measurement sessions.

    Each session gets its own lock so frames arriving from several
    connections or worker threads are processed one at a time.
    """

    def __init__(self, thresholds: Optional[QualityThresholds] = None,
                 default_alpha: float = DEFAULT_ALPHA):
        self.thresholds = thresholds
        self.default_alpha = default_alpha
        self.active_sessions: Dict[str, MeasurementSession] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def create_session(self, side: Side = Side.LEFT,
                       mode: MeasurementMode = MeasurementMode.ABDUCTION,
                       alpha: Optional[float] = None,
                       session_id: Optional[str] = None,
                       thresholds: Optional[QualityThresholds] = None) -> str:
        """
        Create a session and register it.

        Args:
            thresholds: Overrides the manager defaults for this session

        Returns:
            Session ID

        Raises:
            ValueError: If side, mode or alpha are invalid
        """
        session = MeasurementSession(
            side=parse_side(side),
            mode=parse_mode(mode),
            alpha=self.default_alpha if alpha is None else alpha,
            thresholds=self.thresholds if thresholds is None else thresholds,
        )
        session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        with self._registry_lock:
            self.active_sessions[session_id] = session
            self._locks[session_id] = threading.Lock()

        logger.info(f"Created session {session_id}: {session.mode.value} {session.side.value} (alpha={session.alpha})")
        return session_id

    def get_session(self, session_id: str) -> MeasurementSession:
        """
        Get a session by ID.

        Raises:
            SessionNotFoundError: If the session is not registered
        """
        session = self.active_sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def _lock(self, session_id: str) -> threading.Lock:
        self.get_session(session_id)
        return self._locks[session_id]

    def process_frame(self, session_id: str, frame: Optional[Sequence[Any]],
                      side: Optional[Side] = None,
                      mode: Optional[MeasurementMode] = None,
                      timestamp: Optional[float] = None) -> SessionSnapshot:
        """Process a landmark frame in the given session."""
        with self._lock(session_id):
            return self.get_session(session_id).process_frame(frame, side=side, mode=mode, timestamp=timestamp)

    def reset_session(self, session_id: str) -> SessionSnapshot:
        with self._lock(session_id):
            session = self.get_session(session_id)
            session.reset()
            return session.snapshot()

    def select(self, session_id: str, side: Optional[Side] = None,
               mode: Optional[MeasurementMode] = None) -> bool:
        """Change side/mode of a session; returns whether it was reset."""
        with self._lock(session_id):
            return self.get_session(session_id).select(side=side, mode=mode)

    def end_session(self, session_id: str) -> Dict[str, Any]:
        """
        End a session and return its final data.

        Raises:
            SessionNotFoundError: If session not found
        """
        with self._lock(session_id):
            final_data = self.get_session(session_id).to_dict()
            with self._registry_lock:
                del self.active_sessions[session_id]
                del self._locks[session_id]

        logger.info(f"Ended session: {session_id}")
        return final_data

    def available_modes(self) -> Dict[str, Dict[str, Any]]:
        """
        Get dictionary of measurement modes with metadata.

        Returns:
            Dictionary of mode name to metadata
        """
        thresholds = self.thresholds or QualityThresholds()
        modes = {}
        for mode, (name, description, view) in MODE_DESCRIPTIONS.items():
            low, high = angle_range(mode, thresholds)
            modes[mode.value] = {
                "name": name,
                "description": description,
                "plane": mode.plane.value,
                "required_view": view,
                "min_angle": low,
                "max_angle": high,
            }
        return modes
