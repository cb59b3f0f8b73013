"""
Call State Machine
Pure transition table for one call attempt. No I/O, no timers.

The controller decides side effects; this module only answers
"from this state, does this event apply, and where does it lead".
"""
from enum import Enum
from typing import Dict, Optional, Tuple

from consult_call.domain.models.call_session import CallSession, CallState, TERMINAL_STATES


class CallEvent(str, Enum):
    """Everything that can move a session"""
    # Local intents
    START_CALL = "start_call"
    ANSWER = "answer"
    DECLINE = "decline"
    END_CALL = "end_call"
    CLOSE = "close"

    # Remote signaling
    INCOMING_CALL = "incoming_call"
    REMOTE_ANSWERED = "remote_answered"
    REMOTE_DECLINED = "remote_declined"
    REMOTE_ENDED = "remote_ended"

    # Timers and media engine
    RINGING_TIMEOUT = "ringing_timeout"
    MEDIA_READY = "media_ready"
    SETUP_FAILED = "setup_failed"
    MEDIA_FAILED = "media_failed"


LOCAL_INTENTS = frozenset({
    CallEvent.START_CALL,
    CallEvent.ANSWER,
    CallEvent.DECLINE,
    CallEvent.END_CALL,
    CallEvent.CLOSE,
})


TRANSITIONS: Dict[Tuple[CallState, CallEvent], CallState] = {
    # Caller
    (CallState.IDLE, CallEvent.START_CALL): CallState.CALLING,
    (CallState.CALLING, CallEvent.REMOTE_ANSWERED): CallState.CONNECTED,
    (CallState.CALLING, CallEvent.REMOTE_DECLINED): CallState.DECLINED,
    (CallState.CALLING, CallEvent.REMOTE_ENDED): CallState.ENDED,
    (CallState.CALLING, CallEvent.END_CALL): CallState.ENDED,
    (CallState.CALLING, CallEvent.CLOSE): CallState.ENDED,
    (CallState.CALLING, CallEvent.SETUP_FAILED): CallState.ENDED,

    # Callee
    (CallState.IDLE, CallEvent.INCOMING_CALL): CallState.RINGING,
    (CallState.RINGING, CallEvent.ANSWER): CallState.ANSWERED,
    (CallState.RINGING, CallEvent.DECLINE): CallState.DECLINED,
    (CallState.RINGING, CallEvent.RINGING_TIMEOUT): CallState.MISSED,
    (CallState.RINGING, CallEvent.REMOTE_ENDED): CallState.ENDED,
    (CallState.RINGING, CallEvent.CLOSE): CallState.ENDED,
    (CallState.ANSWERED, CallEvent.MEDIA_READY): CallState.CONNECTED,
    (CallState.ANSWERED, CallEvent.SETUP_FAILED): CallState.FAILED,
    (CallState.ANSWERED, CallEvent.REMOTE_ENDED): CallState.ENDED,
    (CallState.ANSWERED, CallEvent.END_CALL): CallState.ENDED,
    (CallState.ANSWERED, CallEvent.CLOSE): CallState.ENDED,

    # Both
    (CallState.CONNECTED, CallEvent.END_CALL): CallState.ENDED,
    (CallState.CONNECTED, CallEvent.CLOSE): CallState.ENDED,
    (CallState.CONNECTED, CallEvent.REMOTE_ENDED): CallState.ENDED,
    (CallState.CONNECTED, CallEvent.MEDIA_FAILED): CallState.FAILED,
}


def next_state(state: CallState, event: CallEvent) -> Optional[CallState]:
    """
    Target state for an event, or None when the event does not apply.

    Terminal states accept nothing.
    """
    if state in TERMINAL_STATES:
        return None
    return TRANSITIONS.get((state, event))


def can_apply(state: CallState, event: CallEvent) -> bool:
    return next_state(state, event) is not None


def apply(session: CallSession, event: CallEvent) -> Optional[CallState]:
    """
    Move the session if the event applies.

    Returns:
        The new state, or None if the event was a no-op
    """
    target = next_state(session.state, event)
    if target is None:
        return None
    session.state = target
    return target
