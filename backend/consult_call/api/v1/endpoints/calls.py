"""
Call Session Endpoints
Start, answer, decline, end and close video calls; media controls
"""
import logging
from fastapi import APIRouter, HTTPException, Depends, status
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from consult_call.api.v1.dependencies import get_call_client, get_call_manager
from consult_call.domain.exceptions import (
    CallAlreadyActiveError,
    CallError,
    InvalidTransitionError,
    MediaAccessError,
    MediaEngineError,
    NoActiveCallError,
)
from consult_call.domain.models.appointment import Appointment
from consult_call.domain.models.call_session import CallState
from consult_call.domain.services.call_manager import CallClient, CallManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])

MEDIA_ACTIONS = ("mute", "video", "screen-share", "switch-camera")


class StartCallRequest(BaseModel):
    """Appointment to call about"""
    appointment_id: str = Field(..., description="Appointment identifier")
    client_id: str = Field(..., description="User to call")
    client_name: Optional[str] = Field(None, description="Callee display name")
    caller_name: Optional[str] = Field(None, description="Overrides the profile name")


class CallSessionResponse(BaseModel):
    """Current (or last finished) session of a room"""
    room_id: str
    state: CallState
    session: Optional[Dict[str, Any]] = None


class MediaActionResponse(BaseModel):
    room_id: str
    action: str
    value: Optional[bool] = None


def _to_http(error: CallError) -> HTTPException:
    if isinstance(error, NoActiveCallError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, (CallAlreadyActiveError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)
    if isinstance(error, MediaAccessError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"reason": error.reason.value, "message": error.message},
        )
    if isinstance(error, MediaEngineError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


def _session_response(client: CallClient, room_id: str) -> CallSessionResponse:
    controller = client.get_controller(room_id)
    if controller is None:
        return CallSessionResponse(room_id=room_id, state=CallState.IDLE)
    view = controller.view()
    state = CallState(view["state"]) if view else CallState.IDLE
    return CallSessionResponse(room_id=room_id, state=state, session=view)


@router.get("/")
async def call_stats(manager: CallManager = Depends(get_call_manager)):
    """Active session statistics"""
    return manager.get_stats()


@router.get("/{room_id}", response_model=CallSessionResponse)
async def get_call(room_id: str, client: CallClient = Depends(get_call_client)):
    """
    Current session for a room.

    Returns the last finished session while the controller is alive.
    """
    if client.get_controller(room_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No call in room {room_id}")
    return _session_response(client, room_id)


@router.post("/start", response_model=CallSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_call(request: StartCallRequest, client: CallClient = Depends(get_call_client)):
    """Ring the appointment's client on every delivery path"""
    appointment = Appointment(
        id=request.appointment_id,
        client_id=request.client_id,
        client_name=request.client_name,
        nutritionist_id=client.user_id,
        nutritionist_name=request.caller_name or client.user_name,
    )
    try:
        await client.start_call(appointment, caller_name=request.caller_name)
    except CallError as e:
        logger.warning(f"Start call failed for {appointment.room_id}: {e.message}")
        raise _to_http(e)
    return _session_response(client, appointment.room_id)


@router.post("/{room_id}/answer", response_model=CallSessionResponse)
async def answer_call(room_id: str, client: CallClient = Depends(get_call_client)):
    try:
        await client.answer(room_id)
    except CallError as e:
        raise _to_http(e)
    return _session_response(client, room_id)


@router.post("/{room_id}/decline", response_model=CallSessionResponse)
async def decline_call(room_id: str, client: CallClient = Depends(get_call_client)):
    try:
        await client.decline(room_id)
    except CallError as e:
        raise _to_http(e)
    return _session_response(client, room_id)


@router.post("/{room_id}/end", response_model=CallSessionResponse)
async def end_call(room_id: str, client: CallClient = Depends(get_call_client)):
    try:
        await client.end_call(room_id)
    except CallError as e:
        raise _to_http(e)
    return _session_response(client, room_id)


@router.post("/{room_id}/close", status_code=status.HTTP_204_NO_CONTENT)
async def close_call(room_id: str, client: CallClient = Depends(get_call_client)):
    """Leave the call screen; idempotent"""
    await client.close(room_id)


@router.post("/{room_id}/media/{action}", response_model=MediaActionResponse)
async def media_action(room_id: str, action: str, client: CallClient = Depends(get_call_client)):
    """Mute, video, screen-share or switch-camera"""
    if action not in MEDIA_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown media action: {action}. Available: {', '.join(MEDIA_ACTIONS)}",
        )
    controller = client.get_controller(room_id)
    if controller is None:
        raise _to_http(NoActiveCallError(room_id))

    try:
        if action == "mute":
            value = await controller.toggle_mute()
        elif action == "video":
            value = await controller.toggle_video()
        elif action == "screen-share":
            value = await controller.toggle_screen_share()
        else:
            await controller.switch_camera()
            value = None
    except CallError as e:
        raise _to_http(e)

    return MediaActionResponse(room_id=room_id, action=action, value=value)
