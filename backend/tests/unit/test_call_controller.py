"""
Unit tests for CallSessionController
Remote events are fed straight into handle_signal; outbound traffic
goes to an in-memory hub nobody else listens on.
"""
import asyncio

import pytest

from consult_call.domain.exceptions import (
    CallAlreadyActiveError,
    InvalidTransitionError,
    MediaAccessError,
    MediaEngineError,
    MediaErrorReason,
    NoActiveCallError,
)
from consult_call.domain.models.appointment import Appointment
from consult_call.domain.models.call_session import CallRole, CallState
from consult_call.domain.models.call_update import MessageLevel
from consult_call.domain.models.notification import NotificationType
from consult_call.domain.models.signaling import parse_signal
from consult_call.domain.services.call_controller import CallSessionController
from consult_call.domain.services.media_lease import MediaLease
from consult_call.domain.services.ringtone import synthesize_ring_cue
from consult_call.domain.services.signaling_orchestrator import SignalingOrchestrator
from consult_call.infrastructure.media.simulated_engine import SimulatedMediaEngine
from consult_call.infrastructure.signaling.memory_transport import InMemoryTransport

ROOM = "gf-call-42"
NUTRITIONIST = "nutri-1"
CLIENT = "client-7"


class GatedMediaEngine(SimulatedMediaEngine):
    """initialize_media waits until the test opens the gate"""

    def __init__(self, config=None):
        super().__init__(config)
        self.gate = asyncio.Event()

    async def initialize_media(self, video: bool = True, audio: bool = True):
        await self.gate.wait()
        return await super().initialize_media(video, audio)


class GatedJoinEngine(SimulatedMediaEngine):
    """join_room waits until the test opens the gate"""

    def __init__(self, config=None):
        super().__init__(config)
        self.joining = asyncio.Event()
        self.gate = asyncio.Event()

    async def join_room(self, room_id: str) -> None:
        self.joining.set()
        await self.gate.wait()
        await super().join_room(room_id)


@pytest.fixture
def build(hub, dispatcher, call_settings, clock):
    def _build(local_user_id: str, engine=None, lease=None, **kwargs) -> CallSessionController:
        orchestrator = SignalingOrchestrator(InMemoryTransport(hub), dispatcher, call_settings)
        controller = CallSessionController(
            room_id=ROOM,
            local_user_id=local_user_id,
            orchestrator=orchestrator,
            media_engine=engine or SimulatedMediaEngine(),
            dispatcher=dispatcher,
            settings=call_settings,
            media_lease=lease,
            clock=clock,
            **kwargs,
        )
        controller.updates = []
        controller.add_listener(controller.updates.append)
        return controller
    return _build


@pytest.fixture
def appointment():
    return Appointment(id="42", client_id=CLIENT, client_name="Sam Rivera", nutritionist_id=NUTRITIONIST)


def incoming(caller_id: str = NUTRITIONIST, timestamp: str = None):
    data = {
        "callerId": caller_id,
        "callerName": "Dr. Green",
        "appointmentId": "42",
        "roomId": ROOM,
    }
    if timestamp:
        data["timestamp"] = timestamp
    return parse_signal("incoming-call", data)


def answered(by: str = CLIENT):
    return parse_signal("call-answered", {"answeredBy": by})


def ended(by: str):
    return parse_signal("call-ended", {"endedBy": by})


class TestIncomingCall:
    """Callee side"""

    @pytest.mark.asyncio
    async def test_incoming_call_rings(self, build, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()

        await ctl.handle_signal(incoming())
        await ctl.drain()

        assert ctl.state == CallState.RINGING
        assert ctl.session.role == CallRole.CALLEE
        assert ctl.session.has_incoming_call
        assert ctl.timers.ringing.active
        assert ctl.timers.ringtone.is_playing
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 1
        assert len(dispatcher.alerts_for(CLIENT)) == 1

        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_own_events_are_ignored(self, build):
        ctl = build(CLIENT)
        await ctl.bind()

        await ctl.handle_signal(incoming(caller_id=CLIENT))

        assert ctl.state == CallState.IDLE
        assert ctl.updates == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_duplicate_incoming_call_is_noop(self, build, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()

        await ctl.handle_signal(incoming())
        session_id = ctl.session.session_id
        await ctl.handle_signal(incoming())
        await ctl.drain()

        assert ctl.session.session_id == session_id
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 1
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_late_personal_copy_after_decline_is_ignored(self, build, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()
        room_copy = incoming()
        personal_copy = parse_signal(
            "incoming-call", room_copy.payload.to_wire(), channel=f"user-calls:{CLIENT}"
        )

        await ctl.handle_signal(room_copy)
        await ctl.decline()
        await ctl.handle_signal(personal_copy)
        await asyncio.sleep(0.3)
        await ctl.drain()

        assert ctl.session is None
        assert ctl.last_session.state == CallState.DECLINED
        assert not ctl.timers.any_active
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 1
        assert dispatcher.records_for(CLIENT, NotificationType.MISSED_CALL) == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_new_attempt_after_decline_rings(self, build, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()

        await ctl.handle_signal(incoming(timestamp="2026-03-02T09:00:00Z"))
        await ctl.decline()
        await ctl.handle_signal(incoming(timestamp="2026-03-02T09:01:00Z"))
        await ctl.drain()

        assert ctl.state == CallState.RINGING
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 2
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_ringtone_plays_through_sink(self, build):
        cues = []
        ctl = build(CLIENT, ringtone_sink=cues.append)
        await ctl.bind()

        await ctl.handle_signal(incoming())
        await asyncio.sleep(0.01)
        await ctl.decline()

        assert len(cues) >= 1
        assert cues[0] == synthesize_ring_cue()
        assert ctl.last_session.state == CallState.DECLINED
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_answer_beats_timeout(self, build, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()
        await ctl.handle_signal(incoming())

        await ctl.answer()
        await asyncio.sleep(0.3)
        await ctl.drain()

        assert ctl.state == CallState.CONNECTED
        assert not ctl.timers.any_active
        assert dispatcher.records_for(CLIENT, NotificationType.MISSED_CALL) == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_decline_broadcasts_and_stops_timers(self, build, hub):
        ctl = build(CLIENT)
        await ctl.bind()
        await ctl.handle_signal(incoming())
        timers = ctl.timers

        await ctl.decline()

        assert ctl.session is None
        assert ctl.last_session.state == CallState.DECLINED
        assert not timers.any_active
        assert hub.events_on(f"call-signal:{ROOM}") == ["call-declined"]
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_close_while_ringing_is_silent(self, build, hub, dispatcher):
        ctl = build(CLIENT)
        await ctl.bind()
        await ctl.handle_signal(incoming())

        await ctl.close()
        await asyncio.sleep(0.3)
        await ctl.drain()

        assert ctl.last_session.state == CallState.ENDED
        assert hub.sent == []
        assert dispatcher.records_for(CLIENT, NotificationType.MISSED_CALL) == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_answer_media_failure_ends_call_for_caller(self, build, hub):
        ctl = build(CLIENT, engine=SimulatedMediaEngine({"media_error": "not_found"}))
        await ctl.bind()
        await ctl.handle_signal(incoming())

        with pytest.raises(MediaAccessError):
            await ctl.answer()

        assert ctl.last_session.state == CallState.FAILED
        assert ctl.last_session.error_message == "No camera or microphone found. Please connect a device."
        assert hub.events_on(f"call-signal:{ROOM}") == ["call-ended"]
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_remote_end_while_answering_releases_media(self, build, hub):
        engine = GatedMediaEngine()
        ctl = build(CLIENT, engine=engine)
        await ctl.bind()
        await ctl.handle_signal(incoming())

        task = asyncio.create_task(ctl.answer())
        await asyncio.sleep(0)
        assert ctl.state == CallState.ANSWERED

        await ctl.handle_signal(ended(NUTRITIONIST))
        engine.gate.set()
        session = await task
        await ctl.drain()

        assert ctl.session is None
        assert session.state == CallState.ENDED
        assert ctl.last_session is session
        assert engine.local_stream is None
        assert engine.releases == 1
        assert ctl.media_lease.holder is None
        assert not ctl.timers.any_active
        assert hub.events_on(f"call-signal:{ROOM}") == []
        await ctl.aclose()


class TestOutgoingCall:
    """Caller side"""

    @pytest.mark.asyncio
    async def test_start_call_rings_remote_party(self, build, appointment, hub, dispatcher):
        ctl = build(NUTRITIONIST)
        await ctl.bind()

        session = await ctl.start_call(appointment, caller_name="Dr. Green")
        await ctl.drain()

        assert session.state == CallState.CALLING
        assert session.is_calling
        assert hub.events_on(f"call-signal:{ROOM}") == ["incoming-call"]
        assert hub.events_on(f"user-calls:{CLIENT}") == ["incoming-call"]
        assert len(dispatcher.alerts_for(CLIENT)) == 1
        assert len(dispatcher.records_for(NUTRITIONIST, NotificationType.OUTGOING_CALL)) == 1
        assert any(u.message and u.message.title == "Calling..." for u in ctl.updates)
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, build, appointment):
        ctl = build(NUTRITIONIST)
        await ctl.bind()
        await ctl.start_call(appointment)

        with pytest.raises(CallAlreadyActiveError):
            await ctl.start_call(appointment)
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_media_denied_leaves_idle(self, build, appointment, hub):
        ctl = build(NUTRITIONIST, engine=SimulatedMediaEngine({"media_error": "permission_denied"}))
        await ctl.bind()

        with pytest.raises(MediaAccessError):
            await ctl.start_call(appointment)

        assert ctl.state == CallState.IDLE
        assert hub.sent == []
        assert ctl.updates[-1].state == CallState.IDLE
        assert ctl.updates[-1].message.level == MessageLevel.ERROR
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_close_during_media_acquisition(self, build, appointment, hub):
        engine = GatedMediaEngine()
        ctl = build(NUTRITIONIST, engine=engine)
        await ctl.bind()

        task = asyncio.create_task(ctl.start_call(appointment))
        await asyncio.sleep(0)
        await ctl.close()
        engine.gate.set()
        await task

        assert ctl.session is None
        assert engine.local_stream is None
        assert ctl.media_lease.holder is None
        assert hub.sent == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_remote_answer_connects(self, build, appointment, clock):
        ctl = build(NUTRITIONIST)
        await ctl.bind()
        await ctl.start_call(appointment)

        clock.advance(5)
        await ctl.handle_signal(answered())

        assert ctl.state == CallState.CONNECTED
        assert ctl.session.connected_at == clock()
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_zero_duration_call_records_nothing(self, build, appointment, dispatcher):
        ctl = build(NUTRITIONIST)
        await ctl.bind()
        await ctl.start_call(appointment)
        await ctl.handle_signal(answered())

        await ctl.end_call()
        await ctl.drain()

        assert ctl.last_session.duration_seconds == 0
        assert dispatcher.records_for(NUTRITIONIST, NotificationType.COMPLETED_CALL) == []
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_cancel_while_calling(self, build, appointment, hub):
        ctl = build(NUTRITIONIST)
        await ctl.bind()
        await ctl.start_call(appointment)

        await ctl.end_call()

        assert ctl.last_session.state == CallState.ENDED
        assert hub.events_on(f"call-signal:{ROOM}") == ["incoming-call", "call-ended"]
        assert hub.events_on(f"user-calls:{CLIENT}") == ["incoming-call", "call-cancelled"]
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_join_failure_after_ringing(self, build, appointment, hub):
        ctl = build(NUTRITIONIST, engine=SimulatedMediaEngine({"join_error": "ICE negotiation failed"}))
        await ctl.bind()

        with pytest.raises(MediaEngineError):
            await ctl.start_call(appointment)

        assert ctl.last_session.state == CallState.ENDED
        assert ctl.last_session.end_reason == "setup_failed"
        assert hub.events_on(f"call-signal:{ROOM}")[-1] == "call-ended"
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_join_failure_after_remote_answer(self, build, appointment, hub):
        engine = GatedJoinEngine({"join_error": "ICE negotiation failed"})
        ctl = build(NUTRITIONIST, engine=engine)
        await ctl.bind()

        task = asyncio.create_task(ctl.start_call(appointment))
        await engine.joining.wait()
        await ctl.handle_signal(answered())
        assert ctl.state == CallState.CONNECTED

        engine.gate.set()
        with pytest.raises(MediaEngineError):
            await task

        assert ctl.state == CallState.IDLE
        assert ctl.last_session.state == CallState.FAILED
        assert ctl.last_session.end_reason == "setup_failed"
        assert ctl.last_session.error_message is not None
        assert ctl.media_lease.holder is None
        assert engine.local_stream is None
        assert hub.events_on(f"call-signal:{ROOM}") == ["incoming-call", "call-ended"]
        await ctl.aclose()


class TestConnectedCall:

    @pytest.mark.asyncio
    async def test_remote_end_is_idempotent(self, build, appointment):
        ctl = build(NUTRITIONIST)
        await ctl.bind()
        await ctl.start_call(appointment)
        await ctl.handle_signal(answered())

        await ctl.handle_signal(ended(CLIENT))
        await ctl.handle_signal(ended(CLIENT))

        terminal = [u for u in ctl.updates if u.state == CallState.ENDED]
        assert len(terminal) == 1
        assert ctl.last_session.end_reason == "remote_ended"
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_connection_failure(self, build, appointment):
        engine = SimulatedMediaEngine()
        ctl = build(NUTRITIONIST, engine=engine)
        await ctl.bind()
        await ctl.start_call(appointment)
        await ctl.handle_signal(answered())

        engine.simulate_connection_failure()
        await ctl.drain()

        assert ctl.last_session.state == CallState.FAILED
        assert ctl.updates[-1].message.description == "Connection failed. Please refresh and try again."
        assert engine.local_stream is None
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_media_toggles(self, build, appointment):
        ctl = build(NUTRITIONIST)
        await ctl.bind()

        with pytest.raises(NoActiveCallError):
            await ctl.toggle_mute()

        await ctl.start_call(appointment)
        await ctl.handle_signal(answered())

        assert await ctl.toggle_mute() is True
        assert await ctl.toggle_video() is False
        assert await ctl.toggle_screen_share() is True
        await ctl.switch_camera()
        await ctl.aclose()


class TestIntentValidation:

    @pytest.mark.asyncio
    async def test_answer_without_call(self, build):
        ctl = build(CLIENT)
        with pytest.raises(NoActiveCallError):
            await ctl.answer()

    @pytest.mark.asyncio
    async def test_end_call_while_ringing_is_invalid(self, build):
        ctl = build(CLIENT)
        await ctl.bind()
        await ctl.handle_signal(incoming())

        with pytest.raises(InvalidTransitionError):
            await ctl.end_call()
        assert ctl.state == CallState.RINGING
        await ctl.aclose()

    @pytest.mark.asyncio
    async def test_media_lease_is_exclusive(self, build, appointment):
        lease = MediaLease()
        first = build(NUTRITIONIST, lease=lease)
        other = Appointment(id="43", client_id="client-8")
        second = CallSessionController(
            room_id=other.room_id,
            local_user_id=NUTRITIONIST,
            orchestrator=first.orchestrator,
            media_engine=SimulatedMediaEngine(),
            dispatcher=first.dispatcher,
            settings=first.settings,
            media_lease=lease,
        )
        await first.bind()
        await second.bind()
        await first.start_call(appointment)

        with pytest.raises(MediaAccessError) as exc_info:
            await second.start_call(other)

        assert exc_info.value.reason == MediaErrorReason.IN_USE
        assert second.state == CallState.IDLE
        await first.aclose()
        await second.aclose()
