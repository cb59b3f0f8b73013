"""
Call Session Models
Defines CallSession, CallState and CallRole for one call attempt in a room
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import uuid

from consult_call.domain.exceptions import InvalidTransitionError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CallState(str, Enum):
    """Call session state"""
    IDLE = "idle"                  # No call attempt yet (or media still being acquired)
    CALLING = "calling"            # Caller: incoming-call sent, waiting for the callee
    RINGING = "ringing"            # Callee: incoming-call received, ringtone playing
    ANSWERED = "answered"          # Callee: answered, acquiring media
    CONNECTED = "connected"        # Both sides in the room
    DECLINED = "declined"          # Callee declined
    MISSED = "missed"              # Ringing timed out
    ENDED = "ended"                # Hung up or cancelled
    FAILED = "failed"              # Media / peer connection failure


TERMINAL_STATES = frozenset({
    CallState.DECLINED,
    CallState.MISSED,
    CallState.ENDED,
    CallState.FAILED,
})


class CallRole(str, Enum):
    """Which side of the call this process is on"""
    CALLER = "caller"
    CALLEE = "callee"


class CallSession(BaseModel):
    """
    What this local client believes about the current call attempt.

    One per room per process. Dropped from memory once a terminal
    state is reached.
    """

    # ========== Identity ==========
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Call attempt identifier")
    room_id: str = Field(..., description="Signaling room, derived from the appointment")
    appointment_id: Optional[str] = Field(None, description="Underlying appointment")
    local_user_id: str = Field(..., description="Identity of this process's user")
    role: CallRole = Field(..., description="Caller or callee")

    # ========== Parties ==========
    caller_id: Optional[str] = Field(None, description="Caller identity")
    caller_name: Optional[str] = Field(None, description="Caller display name")
    callee_id: Optional[str] = Field(None, description="Callee identity (learned from signaling if unknown)")
    callee_name: Optional[str] = Field(None, description="Callee display name")

    # ========== State ==========
    state: CallState = Field(default=CallState.IDLE, description="Current session state")
    end_reason: Optional[str] = Field(None, description="Why the session terminated")
    error_message: Optional[str] = Field(None, description="Last user-visible error")

    # ========== Timing ==========
    started_at: Optional[datetime] = Field(None, description="Set on entering calling/ringing")
    connected_at: Optional[datetime] = Field(None, description="Set once, on entering connected")
    ended_at: Optional[datetime] = Field(None, description="Set on termination")

    model_config = ConfigDict(validate_assignment=False)

    # ========== Derived flags ==========

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_calling(self) -> bool:
        return self.state == CallState.CALLING

    @property
    def has_incoming_call(self) -> bool:
        return self.state == CallState.RINGING

    @property
    def is_in_call(self) -> bool:
        return self.state in (CallState.ANSWERED, CallState.CONNECTED)

    @property
    def remote_party_id(self) -> Optional[str]:
        if self.role == CallRole.CALLER:
            return self.callee_id
        return self.caller_id

    @property
    def remote_party_name(self) -> Optional[str]:
        if self.role == CallRole.CALLER:
            return self.callee_name
        return self.caller_name

    @property
    def duration_seconds(self) -> int:
        """Whole seconds between connected_at and ended_at; 0 if never connected"""
        if self.connected_at is None or self.ended_at is None:
            return 0
        return max(0, int((self.ended_at - self.connected_at).total_seconds()))

    # ========== Mutators ==========

    def mark_started(self, now: datetime) -> None:
        if self.started_at is None:
            self.started_at = now

    def mark_connected(self, now: datetime) -> None:
        """
        Record the start of the connected interval.

        Raises:
            InvalidTransitionError: if already connected or not coming
                from answered/ringing (callee) or calling (caller)
        """
        if self.connected_at is not None:
            raise InvalidTransitionError(self.state.value, "mark_connected")
        if self.state not in (CallState.ANSWERED, CallState.RINGING, CallState.CALLING):
            raise InvalidTransitionError(self.state.value, "mark_connected")
        self.connected_at = now

    def mark_ended(self, now: datetime, reason: str) -> None:
        if self.connected_at is not None and now < self.connected_at:
            now = self.connected_at
        self.ended_at = now
        self.end_reason = reason

    def snapshot(self) -> "CallSession":
        """Detached copy used by asynchronous side effects"""
        return self.model_copy()

    def to_view(self) -> dict:
        """Serializable view with the derived UI flags"""
        data = self.model_dump(mode="json")
        data.update({
            "is_calling": self.is_calling,
            "has_incoming_call": self.has_incoming_call,
            "is_in_call": self.is_in_call,
            "is_terminal": self.is_terminal,
            "duration_seconds": self.duration_seconds,
        })
        return data
