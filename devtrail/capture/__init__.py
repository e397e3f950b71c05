"""Activity capture: recorder, sanitization, session ids and the monitor."""

from .activity_recorder import ActivityRecorder, format_duration
from .sanitize import sanitize_content, sanitize_payload
from .session_id import generate_session_id
from .session_monitor import SessionMonitor

__all__ = [
    "ActivityRecorder",
    "SessionMonitor",
    "format_duration",
    "generate_session_id",
    "sanitize_content",
    "sanitize_payload",
]
