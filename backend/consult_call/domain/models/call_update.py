"""
Call Update Models
What the controller reports to the host UI after every transition
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum

from consult_call.domain.models.call_session import CallState


class MessageLevel(str, Enum):
    INFO = "info"
    ERROR = "error"              # inline error with retry
    DESTRUCTIVE = "destructive"  # toast / banner


class UserMessage(BaseModel):
    """A toast, inline error or banner for the user"""
    level: MessageLevel = MessageLevel.INFO
    title: str
    description: str = ""


class CallUpdate(BaseModel):
    """State change notification for listeners"""
    room_id: str
    state: CallState
    session: Optional[Dict[str, Any]] = Field(None, description="Session view incl. derived flags")
    message: Optional[UserMessage] = None


# ============================================================================
# MESSAGES
# ============================================================================

def calling_message() -> UserMessage:
    return UserMessage(title="Calling...", description="Waiting for participant to answer")


def declined_message() -> UserMessage:
    return UserMessage(
        level=MessageLevel.DESTRUCTIVE,
        title="Call Declined",
        description="The client declined your call",
    )


def ended_message(duration_text: str) -> UserMessage:
    return UserMessage(title="Call ended", description=f"Call duration: {duration_text}")


def start_failed_message(detail: str) -> UserMessage:
    return UserMessage(
        level=MessageLevel.ERROR,
        title="Could not start call",
        description=f"{detail} Please check camera/microphone permissions.",
    )


def join_failed_message(detail: str) -> UserMessage:
    return UserMessage(level=MessageLevel.ERROR, title="Could not join call", description=detail)


def connection_failed_message() -> UserMessage:
    return UserMessage(
        level=MessageLevel.DESTRUCTIVE,
        title="Connection failed",
        description="Connection failed. Please refresh and try again.",
    )
