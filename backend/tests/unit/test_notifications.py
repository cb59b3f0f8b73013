"""
Unit tests for notification records and push alerts
"""
from consult_call.domain.models.notification import (
    INCOMING_CALL_TAG,
    MISSED_CALL_TAG,
    NotificationType,
    completed_call_record,
    incoming_call_alert,
    incoming_call_record,
    missed_call_alert,
    missed_call_record,
    outgoing_call_record,
)
from consult_call.utils.time_format import format_duration


class TestRecords:

    def test_incoming(self):
        record = incoming_call_record("client-7", "Dr. Green")
        assert record.type == NotificationType.INCOMING_CALL
        assert record.title == "Incoming Call"
        assert record.message == "Video call from Dr. Green"
        assert record.is_read is False

    def test_missed(self):
        record = missed_call_record("client-7", "Dr. Green")
        assert record.to_row() == {
            "user_id": "client-7",
            "type": "missed_call",
            "title": "Missed Call",
            "message": "You missed a video call from Dr. Green",
            "is_read": False,
        }

    def test_completed(self):
        record = completed_call_record("nutri-1", "Sam Rivera", 125)
        assert record.type == NotificationType.COMPLETED_CALL
        assert record.message == "Video call with Sam Rivera - 2:05"
        assert record.is_read is True

    def test_completed_without_name(self):
        assert completed_call_record("nutri-1", None, 9).message == "Video call with participant - 0:09"

    def test_outgoing(self):
        record = outgoing_call_record("nutri-1", None)
        assert record.message == "Video call to client"
        assert record.is_read is True


class TestPushAlerts:

    def test_incoming_alert(self):
        alert = incoming_call_alert("client-7", "Dr. Green", "gf-call-42", "nutri-1")
        body = alert.to_function_body()

        assert body["userId"] == "client-7"
        assert body["title"] == "Incoming Call from Dr. Green"
        assert body["tag"] == INCOMING_CALL_TAG
        assert body["requireInteraction"] is True
        assert body["data"] == {
            "type": "incoming_call",
            "roomId": "gf-call-42",
            "callerId": "nutri-1",
            "callUrl": "/call/gf-call-42",
        }
        assert [a["action"] for a in body["actions"]] == ["answer", "decline"]

    def test_missed_alert(self):
        alert = missed_call_alert("client-7", "Dr. Green", "gf-call-42")
        assert alert.tag == MISSED_CALL_TAG
        assert [a.action for a in alert.actions] == ["callback", "view"]


class TestFormatDuration:

    def test_minutes_and_seconds(self):
        assert format_duration(0) == "0:00"
        assert format_duration(60) == "1:00"
        assert format_duration(599) == "9:59"

    def test_hours(self):
        assert format_duration(3725) == "1:02:05"
