"""
Signaling Message Schemas
Defines the broadcast events exchanged by the two call clients

Payloads use camelCase on the wire so browser and Python clients can
share the same channels.
"""
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any, Union
from datetime import datetime
from enum import Enum

from consult_call.domain.models.call_session import utc_now


class SignalKind(str, Enum):
    """All supported signaling event kinds"""
    INCOMING_CALL = "incoming-call"
    CALL_ANSWERED = "call-answered"
    CALL_DECLINED = "call-declined"
    CALL_ENDED = "call-ended"

    # Personal channel only: caller gave up before an answer
    CALL_CANCELLED = "call-cancelled"


class SignalPayload(BaseModel):
    """Base for all payloads"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    timestamp: datetime = Field(default_factory=utc_now)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class IncomingCallPayload(SignalPayload):
    """
    Caller → callee: start ringing
    """
    caller_id: str = Field(..., description="Caller identity")
    caller_name: str = Field(default="Nutritionist", description="Caller display name")
    appointment_id: Optional[str] = Field(None, description="Appointment the call belongs to")
    room_id: str = Field(..., description="Room to join when answering")

    @property
    def actor_id(self) -> str:
        return self.caller_id


class CallAnsweredPayload(SignalPayload):
    answered_by: str

    @property
    def actor_id(self) -> str:
        return self.answered_by


class CallDeclinedPayload(SignalPayload):
    declined_by: str
    declined_at: datetime = Field(default_factory=utc_now)

    @property
    def actor_id(self) -> str:
        return self.declined_by


class CallEndedPayload(SignalPayload):
    ended_by: str

    @property
    def actor_id(self) -> str:
        return self.ended_by


class CallCancelledPayload(SignalPayload):
    cancelled_by: str
    room_id: str

    @property
    def actor_id(self) -> str:
        return self.cancelled_by


AnySignalPayload = Union[
    IncomingCallPayload,
    CallAnsweredPayload,
    CallDeclinedPayload,
    CallEndedPayload,
    CallCancelledPayload,
]

PAYLOAD_TYPES = {
    SignalKind.INCOMING_CALL: IncomingCallPayload,
    SignalKind.CALL_ANSWERED: CallAnsweredPayload,
    SignalKind.CALL_DECLINED: CallDeclinedPayload,
    SignalKind.CALL_ENDED: CallEndedPayload,
    SignalKind.CALL_CANCELLED: CallCancelledPayload,
}


class SignalingEvent(BaseModel):
    """A typed event received from (or sent to) a channel"""
    kind: SignalKind
    payload: AnySignalPayload
    channel: Optional[str] = Field(None, description="Channel the event arrived on")

    @property
    def actor_id(self) -> str:
        return self.payload.actor_id

    def to_broadcast(self) -> Dict[str, Any]:
        """Envelope in the shape the realtime channel expects"""
        return {
            "type": "broadcast",
            "event": self.kind.value,
            "payload": self.payload.to_wire(),
        }


def parse_signal(kind: str, data: Dict[str, Any], channel: Optional[str] = None) -> SignalingEvent:
    """
    Parse an inbound broadcast into a typed event

    Args:
        kind: The broadcast event name
        data: The broadcast payload (camelCase or snake_case keys)
        channel: Name of the channel it arrived on

    Returns:
        Parsed SignalingEvent

    Raises:
        ValueError: If the kind is unknown
        pydantic.ValidationError: If the payload is malformed
    """
    try:
        signal_kind = SignalKind(kind)
    except ValueError:
        raise ValueError(f"Unknown signal kind: {kind}")

    payload_class = PAYLOAD_TYPES[signal_kind]
    return SignalingEvent(
        kind=signal_kind,
        payload=payload_class.model_validate(data),
        channel=channel,
    )
