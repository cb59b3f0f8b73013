"""
Domain Exceptions
Errors raised by the call session layer
"""
from enum import Enum
from typing import Optional


class CallError(Exception):
    """Base class for call session errors."""
    def __init__(self, message: str = "Call error"):
        self.message = message
        super().__init__(self.message)


class CallAlreadyActiveError(CallError):
    """Raised when a call is started while another attempt is still live in the room."""
    def __init__(self, room_id: str, state: Optional[str] = None):
        self.room_id = room_id
        self.state = state
        detail = f" (state: {state})" if state else ""
        super().__init__(f"A call is already active in room {room_id}{detail}")


class InvalidTransitionError(CallError):
    """Raised when a local intent does not apply to the current state."""
    def __init__(self, state: str, event: str):
        self.state = state
        self.event = event
        super().__init__(f"Cannot apply '{event}' while call is '{state}'")


class NoActiveCallError(CallError):
    """Raised when an intent targets a room without a live session."""
    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"No active call in room {room_id}")


class MediaErrorReason(str, Enum):
    """Why local media could not be acquired"""
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    IN_USE = "in_use"
    OVERCONSTRAINED = "overconstrained"
    UNKNOWN = "unknown"


MEDIA_ERROR_MESSAGES = {
    MediaErrorReason.PERMISSION_DENIED: (
        "Camera/microphone permission denied. Please allow access in your browser settings."
    ),
    MediaErrorReason.NOT_FOUND: "No camera or microphone found. Please connect a device.",
    MediaErrorReason.IN_USE: "Camera/microphone is already in use by another application.",
    MediaErrorReason.OVERCONSTRAINED: "Camera does not support the requested resolution.",
    MediaErrorReason.UNKNOWN: "Could not access camera/microphone.",
}


class MediaAccessError(CallError):
    """Local camera/microphone acquisition failed (recoverable, shown inline)."""
    def __init__(self, reason: MediaErrorReason = MediaErrorReason.UNKNOWN, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or MEDIA_ERROR_MESSAGES[reason])


class MediaEngineError(CallError):
    """The media engine could not join or negotiate the peer connection."""
    def __init__(self, message: str = "Failed to join call"):
        super().__init__(message)
