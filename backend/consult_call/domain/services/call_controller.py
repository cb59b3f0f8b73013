"""
Call Session Controller
Drives one room's call attempt: local intents, remote signals, timers,
media acquisition and notification side effects
"""
import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Coroutine, Deque, List, Optional, Set, Tuple

from consult_call.core.config import CallSettings
from consult_call.domain.exceptions import (
    CallAlreadyActiveError,
    InvalidTransitionError,
    MediaAccessError,
    MediaEngineError,
    NoActiveCallError,
)
from consult_call.domain.interfaces.media_engine import ConnectionState, MediaEngine
from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher
from consult_call.domain.models.appointment import Appointment
from consult_call.domain.models.call_session import CallRole, CallSession, CallState, utc_now
from consult_call.domain.models.call_update import (
    CallUpdate,
    MessageLevel,
    UserMessage,
    calling_message,
    connection_failed_message,
    declined_message,
    ended_message,
    join_failed_message,
    start_failed_message,
)
from consult_call.domain.models.notification import (
    NotificationRecord,
    PushAlert,
    completed_call_record,
    incoming_call_alert,
    incoming_call_record,
    missed_call_alert,
    missed_call_record,
    outgoing_call_record,
)
from consult_call.domain.models.signaling import (
    CallAnsweredPayload,
    CallCancelledPayload,
    CallDeclinedPayload,
    CallEndedPayload,
    IncomingCallPayload,
    SignalKind,
    SignalingEvent,
)
from consult_call.domain.services.call_state_machine import CallEvent, apply, can_apply
from consult_call.domain.services.call_timers import CallTimers
from consult_call.domain.services.media_lease import MediaLease
from consult_call.domain.services.ringtone import AudioSink, RingtonePlayer
from consult_call.domain.services.signaling_orchestrator import SignalingOrchestrator
from consult_call.utils.time_format import format_duration

logger = logging.getLogger(__name__)

CallUpdateListener = Callable[[CallUpdate], None]

DEFAULT_CALLER_NAME = "Nutritionist"

# Incoming-call attempts remembered for dropping late copies
HANDLED_ATTEMPTS_LIMIT = 32


class CallSessionController:
    """
    Owns the call session for one room on behalf of one local user.

    Every transition goes through the state machine; every timer lives
    in CallTimers and is torn down before a terminal state is entered.
    Notification and push side effects run as background tasks on a
    snapshot of the session and never roll back a transition.
    """

    def __init__(
        self,
        room_id: str,
        local_user_id: str,
        orchestrator: SignalingOrchestrator,
        media_engine: MediaEngine,
        dispatcher: NotificationDispatcher,
        settings: Optional[CallSettings] = None,
        media_lease: Optional[MediaLease] = None,
        local_user_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        ringtone_factory: Optional[Callable[[], RingtonePlayer]] = None,
        ringtone_sink: Optional[AudioSink] = None,
    ):
        self.room_id = room_id
        self.local_user_id = local_user_id
        self.local_user_name = local_user_name
        self.orchestrator = orchestrator
        self.media = media_engine
        self.dispatcher = dispatcher
        self.settings = settings or CallSettings()
        self.media_lease = media_lease or MediaLease()
        self._clock = clock
        self._ringtone_factory = ringtone_factory or (
            lambda: RingtonePlayer(sink=ringtone_sink, interval=self.settings.ring_interval_seconds)
        )

        self._session: Optional[CallSession] = None
        self.last_session: Optional[CallSession] = None
        self._timers = CallTimers()
        self._listeners: List[CallUpdateListener] = []
        self._background: Set[asyncio.Task] = set()
        self._release_task: Optional[asyncio.Task] = None
        self._handled_attempts: Deque[Tuple[str, datetime]] = deque(maxlen=HANDLED_ATTEMPTS_LIMIT)
        self._bound = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    @property
    def state(self) -> CallState:
        return self._session.state if self._session else CallState.IDLE

    @property
    def timers(self) -> CallTimers:
        return self._timers

    @property
    def media_owner(self) -> str:
        return f"{self.local_user_id}:{self.room_id}"

    def add_listener(self, listener: CallUpdateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CallUpdateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def view(self) -> Optional[dict]:
        """Current session view, else the last finished one"""
        session = self._session or self.last_session
        return session.to_view() if session else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def bind(self) -> None:
        """Subscribe to the room channel and watch the media engine"""
        if self._bound:
            return
        await self.orchestrator.bind_room(self.room_id, self.handle_signal)
        self.media.add_state_listener(self.handle_connection_state)
        self._bound = True

    async def aclose(self) -> None:
        """Close any live call, unbind and wait for side effects"""
        await self.close()
        if self._bound:
            self.media.remove_state_listener(self.handle_connection_state)
            await self.orchestrator.unbind_room(self.room_id)
            self._bound = False
        await self.drain()

    async def drain(self) -> None:
        """Wait for every pending background task"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =========================================================================
    # Local intents
    # =========================================================================

    async def start_call(self, appointment: Appointment, caller_name: Optional[str] = None) -> CallSession:
        """
        Caller: acquire media, then ring the callee on every path.

        Raises:
            CallAlreadyActiveError: a non-terminal session exists
            MediaAccessError: media could not be acquired (state stays idle)
            MediaEngineError: the room could not be joined after ringing
        """
        if self._session is not None:
            raise CallAlreadyActiveError(self.room_id, self._session.state.value)
        if appointment.room_id != self.room_id:
            raise ValueError(f"Appointment {appointment.id} does not belong to room {self.room_id}")

        session = CallSession(
            room_id=self.room_id,
            appointment_id=appointment.id,
            local_user_id=self.local_user_id,
            role=CallRole.CALLER,
            caller_id=self.local_user_id,
            caller_name=caller_name or self.local_user_name or DEFAULT_CALLER_NAME,
            callee_id=appointment.client_id,
            callee_name=appointment.client_name,
        )
        self._session = session
        self._emit(session)

        try:
            await self._acquire_media()
        except MediaAccessError as e:
            logger.warning(f"Media unavailable for call in {self.room_id}: {e.message}")
            if self._session is session:
                self._session = None
            session.error_message = e.message
            self._emit(session, start_failed_message(e.message), state=CallState.IDLE)
            raise

        if not self._is_current(session, CallState.IDLE):
            logger.info(f"Call in {self.room_id} closed during media acquisition")
            await self._release_media()
            return session

        apply(session, CallEvent.START_CALL)
        session.mark_started(self._clock())
        logger.info(
            f"Calling {session.callee_id} in {self.room_id}",
            extra={"room_id": self.room_id, "session_id": session.session_id},
        )
        self._emit(session, calling_message())

        self._spawn(self._persist(outgoing_call_record(self.local_user_id, session.callee_name)))

        payload = IncomingCallPayload(
            caller_id=self.local_user_id,
            caller_name=session.caller_name,
            appointment_id=appointment.id,
            room_id=self.room_id,
        )
        await self.orchestrator.notify_remote_party(session.snapshot(), payload)

        if not self._is_current(session):
            await self._settle()
            return session

        try:
            await self.media.join_room(self.room_id)
        except (MediaAccessError, MediaEngineError) as e:
            logger.error(f"Join failed in {self.room_id}: {e.message}")
            # the callee may have answered while the join was in flight
            event = CallEvent.MEDIA_FAILED if session.state == CallState.CONNECTED else CallEvent.SETUP_FAILED
            await self._abort_setup(session, event, "setup_failed", join_failed_message(e.message))
            raise

        if not self._is_current(session):
            await self._release_media()
        return session

    async def answer(self) -> CallSession:
        """
        Callee: stop ringing, acquire media, tell the caller, join.

        Raises:
            NoActiveCallError / InvalidTransitionError: nothing is ringing
            MediaAccessError / MediaEngineError: setup failed (caller is told)
        """
        session = self._require(CallEvent.ANSWER)
        self._timers.teardown()
        apply(session, CallEvent.ANSWER)
        self._emit(session)

        try:
            await self._acquire_media()
        except MediaAccessError as e:
            logger.warning(f"Media unavailable when answering in {self.room_id}: {e.message}")
            if self._is_current(session, CallState.ANSWERED):
                await self._abort_setup(session, CallEvent.SETUP_FAILED, "media_error", join_failed_message(e.message))
            raise

        if not self._is_current(session, CallState.ANSWERED):
            await self._release_media()
            return session

        session.mark_connected(self._clock())
        apply(session, CallEvent.MEDIA_READY)
        await self.orchestrator.send(
            self.room_id, SignalKind.CALL_ANSWERED, CallAnsweredPayload(answered_by=self.local_user_id)
        )
        logger.info(f"Answered call in {self.room_id}", extra={"session_id": session.session_id})
        self._emit(session)

        try:
            await self.media.join_room(self.room_id)
        except (MediaAccessError, MediaEngineError) as e:
            logger.error(f"Join failed in {self.room_id}: {e.message}")
            if self._is_current(session, CallState.CONNECTED):
                await self._abort_setup(session, CallEvent.MEDIA_FAILED, "setup_failed", join_failed_message(e.message))
            raise

        if not self._is_current(session):
            await self._release_media()
        return session

    async def decline(self) -> CallSession:
        """Callee: reject the ringing call"""
        session = self._require(CallEvent.DECLINE)
        self._terminate(session, CallEvent.DECLINE, "declined")
        await self.orchestrator.send(
            self.room_id, SignalKind.CALL_DECLINED, CallDeclinedPayload(declined_by=self.local_user_id)
        )
        await self._settle()
        return session

    async def end_call(self) -> CallSession:
        """Either side: hang up (caller may also cancel while calling)"""
        session = self._require(CallEvent.END_CALL)
        await self._hang_up(session, CallEvent.END_CALL, "hangup")
        return session

    async def close(self) -> None:
        """
        The call UI went away. Idempotent.

        Ringing closes locally without telling the caller; the caller's
        session ends when they cancel or give up.
        """
        session = self._session
        if session is None:
            return

        if session.state == CallState.IDLE:
            # media still being acquired; start_call notices and releases
            self._session = None
            self._emit(session, state=CallState.IDLE)
            return

        if session.state == CallState.RINGING:
            self._terminate(session, CallEvent.CLOSE, "closed")
            await self._settle()
            return

        await self._hang_up(session, CallEvent.CLOSE, "closed")

    async def _hang_up(self, session: CallSession, event: CallEvent, reason: str) -> None:
        was_calling = session.state == CallState.CALLING

        self._timers.teardown()
        if not self._transition(session, event, reason):
            return
        duration = session.duration_seconds
        message = ended_message(format_duration(duration)) if session.connected_at else None
        self._finish(session, message)

        await self.orchestrator.send(
            self.room_id, SignalKind.CALL_ENDED, CallEndedPayload(ended_by=self.local_user_id)
        )
        if was_calling and session.callee_id:
            await self.orchestrator.send_personal(
                session.callee_id,
                SignalKind.CALL_CANCELLED,
                CallCancelledPayload(cancelled_by=self.local_user_id, room_id=self.room_id),
            )
        await self._settle()

        if duration > 0:
            self._spawn(self._persist(
                completed_call_record(self.local_user_id, session.remote_party_name, duration)
            ))

    # =========================================================================
    # Media controls
    # =========================================================================

    async def toggle_mute(self) -> bool:
        self._require_media()
        return await self.media.toggle_mute()

    async def toggle_video(self) -> bool:
        self._require_media()
        return await self.media.toggle_video()

    async def toggle_screen_share(self) -> bool:
        self._require_media()
        return await self.media.toggle_screen_share()

    async def switch_camera(self) -> None:
        self._require_media()
        await self.media.switch_camera()

    def _require_media(self) -> None:
        if self._session is None or self._session.state not in (
            CallState.CALLING,
            CallState.ANSWERED,
            CallState.CONNECTED,
        ):
            raise NoActiveCallError(self.room_id)

    # =========================================================================
    # Remote signals
    # =========================================================================

    async def handle_signal(self, event: SignalingEvent) -> None:
        """Apply one inbound signaling event"""
        if event.actor_id == self.local_user_id:
            logger.debug(f"Ignoring own '{event.kind.value}' in {self.room_id}")
            return

        if event.kind == SignalKind.INCOMING_CALL:
            self._on_incoming_call(event.payload)
        elif event.kind == SignalKind.CALL_ANSWERED:
            self._on_remote_answered(event.payload)
        elif event.kind == SignalKind.CALL_DECLINED:
            await self._on_remote_declined(event.payload)
        elif event.kind in (SignalKind.CALL_ENDED, SignalKind.CALL_CANCELLED):
            await self._on_remote_ended(event)

    def _on_incoming_call(self, payload: IncomingCallPayload) -> None:
        if payload.room_id != self.room_id:
            logger.warning(f"incoming-call for {payload.room_id} delivered to {self.room_id}")
            return
        if self._session is not None:
            logger.debug(f"Duplicate incoming-call in {self.room_id} ({self._session.state.value})")
            return
        attempt = (payload.caller_id, payload.timestamp)
        if attempt in self._handled_attempts:
            logger.debug(f"Late copy of a finished incoming-call in {self.room_id}")
            return
        self._handled_attempts.append(attempt)

        session = CallSession(
            room_id=self.room_id,
            appointment_id=payload.appointment_id,
            local_user_id=self.local_user_id,
            role=CallRole.CALLEE,
            caller_id=payload.caller_id,
            caller_name=payload.caller_name,
            callee_id=self.local_user_id,
            callee_name=self.local_user_name,
        )
        apply(session, CallEvent.INCOMING_CALL)
        session.mark_started(self._clock())
        self._session = session

        session_id = session.session_id
        self._timers = CallTimers()
        self._timers.start_ringing(
            self.settings.ringing_timeout_seconds,
            lambda: self._on_ringing_timeout(session_id),
            self._ringtone_factory(),
        )
        logger.info(
            f"Incoming call from {payload.caller_name} in {self.room_id}",
            extra={"room_id": self.room_id, "caller_id": payload.caller_id},
        )
        self._emit(session)

        self._spawn(self._persist(incoming_call_record(self.local_user_id, payload.caller_name)))
        self._spawn(self._push(incoming_call_alert(
            target_user_id=self.local_user_id,
            caller_name=payload.caller_name,
            room_id=self.room_id,
            caller_id=payload.caller_id,
        )))

    def _on_remote_answered(self, payload: CallAnsweredPayload) -> None:
        session = self._session
        if session is None or not can_apply(session.state, CallEvent.REMOTE_ANSWERED):
            logger.debug(f"Ignoring call-answered in {self.room_id} ({self.state.value})")
            return
        if session.callee_id is None:
            session.callee_id = payload.answered_by
        session.mark_connected(self._clock())
        apply(session, CallEvent.REMOTE_ANSWERED)
        logger.info(f"Call connected in {self.room_id}", extra={"session_id": session.session_id})
        self._emit(session)

    async def _on_remote_declined(self, payload: CallDeclinedPayload) -> None:
        session = self._session
        if session is None or not can_apply(session.state, CallEvent.REMOTE_DECLINED):
            logger.debug(f"Ignoring call-declined in {self.room_id} ({self.state.value})")
            return
        logger.info(f"Call declined by {payload.declined_by} in {self.room_id}")
        self._terminate(session, CallEvent.REMOTE_DECLINED, "declined", declined_message())
        await self._settle()

    async def _on_remote_ended(self, event: SignalingEvent) -> None:
        session = self._session
        if session is None or not can_apply(session.state, CallEvent.REMOTE_ENDED):
            logger.debug(f"Ignoring '{event.kind.value}' in {self.room_id} ({self.state.value})")
            return
        was_connected = session.state == CallState.CONNECTED
        self._timers.teardown()
        self._transition(session, CallEvent.REMOTE_ENDED, "remote_ended")
        message = ended_message(format_duration(session.duration_seconds)) if was_connected else None
        self._finish(session, message)
        await self._settle()

    # =========================================================================
    # Timers and media engine callbacks
    # =========================================================================

    def _on_ringing_timeout(self, session_id: str) -> None:
        session = self._session
        if session is None or session.session_id != session_id:
            return
        if not can_apply(session.state, CallEvent.RINGING_TIMEOUT):
            return

        logger.info(f"Call in {self.room_id} missed after {self.settings.ringing_timeout_seconds}s")
        self._terminate(session, CallEvent.RINGING_TIMEOUT, "missed")

        caller_name = session.caller_name or DEFAULT_CALLER_NAME
        self._spawn(self._persist(missed_call_record(self.local_user_id, caller_name)))
        self._spawn(self._push(missed_call_alert(self.local_user_id, caller_name, self.room_id)))

    def handle_connection_state(self, state: ConnectionState) -> None:
        """Media engine listener: a failed peer connection ends a live call"""
        if state != ConnectionState.FAILED:
            return
        session = self._session
        if session is None or not can_apply(session.state, CallEvent.MEDIA_FAILED):
            return
        logger.error(f"Peer connection failed in {self.room_id}")
        self._terminate(session, CallEvent.MEDIA_FAILED, "connection_failed", connection_failed_message())

    # =========================================================================
    # Internals
    # =========================================================================

    def _require(self, event: CallEvent) -> CallSession:
        session = self._session
        if session is None:
            raise NoActiveCallError(self.room_id)
        if not can_apply(session.state, event):
            raise InvalidTransitionError(session.state.value, event.value)
        return session

    def _is_current(self, session: CallSession, state: Optional[CallState] = None) -> bool:
        if self._session is not session:
            return False
        return state is None or session.state == state

    def _terminate(
        self,
        session: CallSession,
        event: CallEvent,
        reason: str,
        message: Optional[UserMessage] = None,
    ) -> bool:
        """Cancel timers, move to a terminal state and release resources"""
        self._timers.teardown()
        if not self._transition(session, event, reason):
            return False
        self._finish(session, message)
        return True

    async def _abort_setup(
        self,
        session: CallSession,
        event: CallEvent,
        reason: str,
        message: UserMessage,
    ) -> None:
        """End a call whose setup broke, then tell the remote party"""
        if not self._is_current(session):
            return
        if not self._terminate(session, event, reason, message):
            return
        await self.orchestrator.send(
            self.room_id, SignalKind.CALL_ENDED, CallEndedPayload(ended_by=self.local_user_id)
        )
        await self._settle()

    def _transition(self, session: CallSession, event: CallEvent, reason: str) -> bool:
        if apply(session, event) is None:
            return False
        session.mark_ended(self._clock(), reason)
        return True

    def _finish(self, session: CallSession, message: Optional[UserMessage] = None) -> None:
        if message is not None and message.level != MessageLevel.INFO:
            session.error_message = message.description
        self.last_session = session
        if self._session is session:
            self._session = None
        self._timers = CallTimers()
        self._release_task = self._spawn(self._release_media())
        logger.info(
            f"Call in {self.room_id} {session.state.value} ({session.end_reason})",
            extra={"session_id": session.session_id, "duration_seconds": session.duration_seconds},
        )
        self._emit(session, message)

    async def _acquire_media(self) -> None:
        await self._settle()
        self.media_lease.acquire(self.media_owner)
        try:
            await self.media.initialize_media(video=True, audio=True)
        except Exception:
            self.media_lease.release(self.media_owner)
            raise

    async def _release_media(self) -> None:
        try:
            await self.media.leave_room()
        except Exception as e:
            logger.error(f"Error releasing media in {self.room_id}: {e}")
        finally:
            self.media_lease.release(self.media_owner)

    async def _settle(self) -> None:
        """Wait for the last media release to finish"""
        task = self._release_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def _persist(self, record: NotificationRecord) -> None:
        try:
            await self.dispatcher.persist(record)
        except Exception as e:
            logger.error(f"Notification '{record.type.value}' for {record.user_id} failed: {e}")

    async def _push(self, alert: PushAlert) -> None:
        try:
            await self.dispatcher.push_alert(alert)
        except Exception as e:
            logger.error(f"Push '{alert.tag}' for {alert.target_user_id} failed: {e}")

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed in {self.room_id}: {task.exception()}")

    def _emit(
        self,
        session: CallSession,
        message: Optional[UserMessage] = None,
        state: Optional[CallState] = None,
    ) -> None:
        update = CallUpdate(
            room_id=self.room_id,
            state=state or session.state,
            session=session.to_view(),
            message=message,
        )
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception as e:
                logger.error(f"Call update listener failed: {e}")
