"""
Two-party call scenarios over the in-memory signaling hub

Both clients run in this process with their own transport, media
engine and media lease; notifications land in one shared in-memory
dispatcher.
"""
import asyncio

import pytest

from consult_call.domain.exceptions import MediaAccessError, MediaErrorReason
from consult_call.domain.models.appointment import Appointment
from consult_call.domain.models.call_session import CallState
from consult_call.domain.models.notification import INCOMING_CALL_TAG, MISSED_CALL_TAG, NotificationType

ROOM = "gf-call-42"
NUTRITIONIST = "nutri-1"
CLIENT = "client-7"


@pytest.fixture
def appointment():
    return Appointment(
        id="42",
        client_id=CLIENT,
        client_name="Sam Rivera",
        nutritionist_id=NUTRITIONIST,
        nutritionist_name="Dr. Green",
    )


@pytest.fixture
def parties(make_client):
    caller = make_client(NUTRITIONIST, "Dr. Green")
    callee = make_client(CLIENT, "Sam Rivera")
    return caller, callee


async def _start(caller, callee):
    await caller.start()
    await callee.start()


async def _stop(*clients):
    for client in clients:
        await client.shutdown()


class TestRingingTimeout:
    """Scenario: nobody answers"""

    @pytest.mark.asyncio
    async def test_unanswered_call_is_missed_on_callee_only(self, parties, appointment, dispatcher, settle):
        caller, callee = parties
        await _start(caller, callee)

        await caller.start_call(appointment)
        await settle(caller, callee)

        callee_ctl = callee.get_controller(ROOM)
        assert callee_ctl.state == CallState.RINGING
        assert callee_ctl.timers.any_active

        await asyncio.sleep(0.35)
        await settle(caller, callee)

        assert callee_ctl.session is None
        assert callee_ctl.last_session.state == CallState.MISSED
        assert not callee_ctl.timers.any_active

        missed = dispatcher.records_for(CLIENT, NotificationType.MISSED_CALL)
        assert len(missed) == 1
        assert missed[0].type.value == "missed_call"
        assert missed[0].message == "You missed a video call from Dr. Green"
        assert any(a.tag == MISSED_CALL_TAG for a in dispatcher.alerts_for(CLIENT))

        # no caller-side timeout
        assert caller.get_controller(ROOM).state == CallState.CALLING

        await _stop(caller, callee)

    @pytest.mark.asyncio
    async def test_caller_cancel_stops_callee_ringing(self, parties, appointment, dispatcher, hub, settle):
        caller, callee = parties
        await _start(caller, callee)

        await caller.start_call(appointment)
        await settle(caller, callee)
        assert callee.get_controller(ROOM).state == CallState.RINGING

        await caller.close(ROOM)
        await settle(caller, callee)

        callee_ctl = callee.get_controller(ROOM)
        assert callee_ctl.last_session.state == CallState.ENDED
        assert "call-ended" in hub.events_on(f"call-signal:{ROOM}")
        assert "call-cancelled" in hub.events_on(f"user-calls:{CLIENT}")

        await asyncio.sleep(0.3)
        await settle(caller, callee)
        assert dispatcher.records_for(CLIENT, NotificationType.MISSED_CALL) == []

        await _stop(caller, callee)


class TestDecline:
    """Scenario: callee declines"""

    @pytest.mark.asyncio
    async def test_decline_reaches_caller(self, parties, appointment, settle):
        caller, callee = parties
        await _start(caller, callee)
        updates = []
        caller.add_listener(updates.append)

        await caller.start_call(appointment)
        await settle(caller, callee)

        await callee.decline(ROOM)
        await settle(caller, callee)

        assert callee.get_controller(ROOM).last_session.state == CallState.DECLINED
        caller_ctl = caller.get_controller(ROOM)
        assert caller_ctl.session is None
        assert caller_ctl.last_session.state == CallState.DECLINED

        messages = [u.message for u in updates if u.message is not None]
        assert any(
            m.title == "Call Declined" and m.description == "The client declined your call"
            for m in messages
        )
        assert caller_ctl.media_lease.holder is None

        await _stop(caller, callee)


class TestConnectedCall:
    """Scenario: answered, talked for a minute, caller hangs up"""

    @pytest.mark.asyncio
    async def test_duration_and_completed_notification(self, parties, appointment, dispatcher, clock, settle):
        caller, callee = parties
        await _start(caller, callee)

        await caller.start_call(appointment)
        await settle(caller, callee)

        clock.advance(10)
        await callee.answer(ROOM)
        await settle(caller, callee)

        caller_ctl = caller.get_controller(ROOM)
        callee_ctl = callee.get_controller(ROOM)
        assert caller_ctl.state == CallState.CONNECTED
        assert callee_ctl.state == CallState.CONNECTED
        assert caller_ctl.session.is_in_call

        clock.advance(60)
        await caller.end_call(ROOM)
        await settle(caller, callee)

        assert caller_ctl.last_session.state == CallState.ENDED
        assert caller_ctl.last_session.duration_seconds == 60
        assert callee_ctl.last_session.state == CallState.ENDED

        completed = dispatcher.records_for(NUTRITIONIST, NotificationType.COMPLETED_CALL)
        assert len(completed) == 1
        assert completed[0].message == "Video call with Sam Rivera - 1:00"
        assert completed[0].is_read is True
        assert dispatcher.records_for(CLIENT, NotificationType.COMPLETED_CALL) == []

        assert len(dispatcher.records_for(NUTRITIONIST, NotificationType.OUTGOING_CALL)) == 1
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 1

        await _stop(caller, callee)

    @pytest.mark.asyncio
    async def test_media_released_on_both_sides(self, parties, appointment, make_client, settle):
        caller, callee = parties
        await _start(caller, callee)

        await caller.start_call(appointment)
        await settle(caller, callee)
        await callee.answer(ROOM)
        await settle(caller, callee)
        await callee.end_call(ROOM)
        await settle(caller, callee)

        assert caller.media_lease.holder is None
        assert callee.media_lease.holder is None
        assert all(engine.local_stream is None for engine in make_client.engines)

        await _stop(caller, callee)


class TestMediaFailure:
    """Scenario: camera permission denied before anything is sent"""

    @pytest.mark.asyncio
    async def test_no_signals_and_no_notifications(self, make_client, appointment, hub, dispatcher, settle):
        caller = make_client(NUTRITIONIST, "Dr. Green", media_config={"media_error": "permission_denied"})
        await caller.start()

        with pytest.raises(MediaAccessError) as exc_info:
            await caller.start_call(appointment)
        await settle(caller)

        assert exc_info.value.reason == MediaErrorReason.PERMISSION_DENIED
        assert caller.get_controller(ROOM).state == CallState.IDLE
        assert caller.get_controller(ROOM).session is None
        assert hub.sent == []
        assert dispatcher.records == []
        assert dispatcher.alerts == []

        await _stop(caller)


class TestDeliveryPaths:
    """incoming-call fan-out and duplicate suppression"""

    @pytest.mark.asyncio
    async def test_all_paths_ring_once(self, parties, appointment, dispatcher, settle):
        caller, callee = parties
        await _start(caller, callee)
        await callee.controller_for(ROOM)  # callee already on the call page

        await caller.start_call(appointment)
        await settle(caller, callee)

        assert callee.get_controller(ROOM).state == CallState.RINGING
        assert len(dispatcher.records_for(CLIENT, NotificationType.INCOMING_CALL)) == 1
        assert any(a.tag == INCOMING_CALL_TAG for a in dispatcher.alerts_for(CLIENT))

        await _stop(caller, callee)

    @pytest.mark.asyncio
    async def test_room_channel_alone_is_enough(self, parties, appointment, hub, settle):
        caller, callee = parties
        hub.drop_filter = lambda channel, event, payload: channel.startswith("user-calls:")
        await _start(caller, callee)
        await callee.controller_for(ROOM)

        await caller.start_call(appointment)
        await settle(caller, callee)

        assert callee.get_controller(ROOM).state == CallState.RINGING

        await _stop(caller, callee)

    @pytest.mark.asyncio
    async def test_personal_channel_alone_is_enough(self, parties, appointment, hub, settle):
        caller, callee = parties
        hub.drop_filter = lambda channel, event, payload: channel.startswith("call-signal:") \
            and event == "incoming-call"
        await _start(caller, callee)

        await caller.start_call(appointment)
        await settle(caller, callee)

        assert callee.get_controller(ROOM).state == CallState.RINGING

        await _stop(caller, callee)
