"""Domain models"""

# Session models
from .call_session import (
    CallState,
    CallRole,
    CallSession,
    TERMINAL_STATES,
)

# Signaling messages
from .signaling import (
    SignalKind,
    SignalPayload,
    IncomingCallPayload,
    CallAnsweredPayload,
    CallDeclinedPayload,
    CallEndedPayload,
    CallCancelledPayload,
    SignalingEvent,
    parse_signal,
)

# Notifications
from .notification import (
    NotificationType,
    NotificationRecord,
    PushAction,
    PushAlert,
)

from .appointment import (
    Appointment,
    room_id_for,
)

__all__ = [
    # Session models
    "CallState",
    "CallRole",
    "CallSession",
    "TERMINAL_STATES",
    # Signaling messages
    "SignalKind",
    "SignalPayload",
    "IncomingCallPayload",
    "CallAnsweredPayload",
    "CallDeclinedPayload",
    "CallEndedPayload",
    "CallCancelledPayload",
    "SignalingEvent",
    "parse_signal",
    # Notifications
    "NotificationType",
    "NotificationRecord",
    "PushAction",
    "PushAlert",
    # Appointments
    "Appointment",
    "room_id_for",
]
