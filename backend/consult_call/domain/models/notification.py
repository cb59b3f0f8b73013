"""
Notification Models
Records handed to the notification dispatcher on call transitions
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from enum import Enum

from consult_call.utils.time_format import format_duration

INCOMING_CALL_TAG = "greenofig-video-call"
MISSED_CALL_TAG = "greenofig-video-call-missed"


class NotificationType(str, Enum):
    """Values of notifications.type written by the call flow"""
    INCOMING_CALL = "incoming_call"
    MISSED_CALL = "missed_call"
    COMPLETED_CALL = "completed_call"
    OUTGOING_CALL = "outgoing_call"


class NotificationRecord(BaseModel):
    """Row for the notifications table"""
    user_id: str
    type: NotificationType
    title: str
    message: str
    is_read: bool = False

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class PushAction(BaseModel):
    action: str
    title: str


class PushAlert(BaseModel):
    """Best-effort out-of-band alert for one user"""
    target_user_id: str
    title: str
    body: str
    tag: Optional[str] = None
    require_interaction: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    actions: List[PushAction] = Field(default_factory=list)

    def to_function_body(self) -> Dict[str, Any]:
        """Request body for the send-push-notification edge function"""
        body: Dict[str, Any] = {
            "userId": self.target_user_id,
            "title": self.title,
            "body": self.body,
            "requireInteraction": self.require_interaction,
            "data": self.data,
            "actions": [a.model_dump() for a in self.actions],
        }
        if self.tag:
            body["tag"] = self.tag
        return body


def call_url(room_id: str) -> str:
    return f"/call/{room_id}"


# ============================================================================
# BUILDERS
# ============================================================================

def incoming_call_record(user_id: str, caller_name: str) -> NotificationRecord:
    return NotificationRecord(
        user_id=user_id,
        type=NotificationType.INCOMING_CALL,
        title="Incoming Call",
        message=f"Video call from {caller_name}",
        is_read=False,
    )


def missed_call_record(user_id: str, caller_name: str) -> NotificationRecord:
    return NotificationRecord(
        user_id=user_id,
        type=NotificationType.MISSED_CALL,
        title="Missed Call",
        message=f"You missed a video call from {caller_name}",
        is_read=False,
    )


def completed_call_record(user_id: str, participant_name: Optional[str], duration_seconds: int) -> NotificationRecord:
    return NotificationRecord(
        user_id=user_id,
        type=NotificationType.COMPLETED_CALL,
        title="Call Completed",
        message=f"Video call with {participant_name or 'participant'} - {format_duration(duration_seconds)}",
        is_read=True,
    )


def outgoing_call_record(user_id: str, callee_name: Optional[str]) -> NotificationRecord:
    return NotificationRecord(
        user_id=user_id,
        type=NotificationType.OUTGOING_CALL,
        title="Outgoing Call",
        message=f"Video call to {callee_name or 'client'}",
        is_read=True,
    )


def incoming_call_alert(target_user_id: str, caller_name: str, room_id: str, caller_id: str) -> PushAlert:
    """Push shown on the callee's devices; answer/decline actions"""
    return PushAlert(
        target_user_id=target_user_id,
        title=f"Incoming Call from {caller_name}",
        body="Tap to answer the video call",
        tag=INCOMING_CALL_TAG,
        require_interaction=True,
        data={
            "type": NotificationType.INCOMING_CALL.value,
            "roomId": room_id,
            "callerId": caller_id,
            "callUrl": call_url(room_id),
        },
        actions=[
            PushAction(action="answer", title="Answer"),
            PushAction(action="decline", title="Decline"),
        ],
    )


def missed_call_alert(target_user_id: str, caller_name: str, room_id: str) -> PushAlert:
    return PushAlert(
        target_user_id=target_user_id,
        title=f"Missed Call from {caller_name}",
        body="You missed a video call. Tap to call back.",
        tag=MISSED_CALL_TAG,
        data={
            "type": NotificationType.MISSED_CALL.value,
            "roomId": room_id,
            "callUrl": call_url(room_id),
        },
        actions=[
            PushAction(action="callback", title="Call Back"),
            PushAction(action="view", title="View"),
        ],
    )
