"""
Tests for the Exotel webhook responders.
"""

import pytest
from fastapi.testclient import TestClient

from voicebridge.config.prompts import MAIN_HOSPITAL_NUMBER
from voicebridge.main import app, websocket_manager

client = TestClient(app)


@pytest.fixture(autouse=True)
def clean_registry():
    registry = websocket_manager.conversation_manager
    yield
    for key in list(registry.active_conversations):
        registry._drop(key)


def test_incoming_call_connects_media_stream():
    response = client.post(
        "/exotel/incoming-call",
        data={"CallSid": "CA100", "From": "+919800000000", "To": "+912226400000"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    body = response.text
    assert "<Say>Welcome to Lilavati Hospital AI Assistant." in body
    assert '<Stream url="wss://testserver/exotel-media-stream?callSid=CA100&amp;phoneNumber=%2B919800000000" />' in body

    conversation = websocket_manager.conversation_manager.get_conversation("CA100")
    assert conversation is not None
    assert conversation.phone_number == "+919800000000"
    assert conversation.id is not None


def test_incoming_call_error_hangs_up(monkeypatch):
    async def broken_create(**kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(
        websocket_manager.conversation_manager, "create_conversation", broken_create
    )

    response = client.post("/exotel/incoming-call", data={"CallSid": "CA101"})

    assert response.status_code == 200
    assert "technical difficulties" in response.text
    assert "<Hangup/>" in response.text


def test_call_status_completed_ends_conversation():
    client.post("/exotel/incoming-call", data={"CallSid": "CA102", "From": "+919800000001"})

    response = client.post("/exotel/call-status", data={"CallSid": "CA102", "Status": "completed"})

    assert response.status_code == 200
    assert websocket_manager.conversation_manager.get_conversation("CA102") is None


@pytest.mark.parametrize("status", ["busy", "no-answer", "failed"])
def test_call_status_failure_statuses(status):
    client.post("/exotel/incoming-call", data={"CallSid": "CA103"})
    conversation = websocket_manager.conversation_manager.get_conversation("CA103")

    client.post("/exotel/call-status", data={"CallSid": "CA103", "CallStatus": status})

    assert conversation.status == "failed"


def test_call_status_in_progress_keeps_conversation():
    client.post("/exotel/incoming-call", data={"CallSid": "CA104"})

    response = client.post("/exotel/call-status", data={"CallSid": "CA104", "Status": "in-progress"})

    assert response.status_code == 200
    assert websocket_manager.conversation_manager.get_conversation("CA104") is not None


def test_call_status_for_unknown_call():
    response = client.post("/exotel/call-status", data={"CallSid": "CA-gone", "Status": "completed"})
    assert response.status_code == 200


def test_transfer_call_dials_department():
    response = client.get(
        "/exotel/transfer-call",
        params={"transferTo": "+91-22-2640-2101", "department": "Cardiology"},
    )

    assert response.status_code == 200
    assert "<Say>Please hold while I transfer your call to Cardiology.</Say>" in response.text
    assert "<Dial><Number>+91-22-2640-2101</Number></Dial>" in response.text


def test_transfer_call_defaults_to_main_number():
    response = client.post("/exotel/transfer-call", data={"CallSid": "CA105"})

    assert f"<Number>{MAIN_HOSPITAL_NUMBER}</Number>" in response.text
    assert "our operator" in response.text


def test_emergency_transfer_dials_immediately():
    response = client.post(
        "/exotel/emergency-transfer",
        data={"CallSid": "CA106", "emergencyNumber": "+91-22-2640-3333", "emergencyType": "cardiac"},
    )

    assert response.status_code == 200
    assert "This is an emergency." in response.text
    assert "<Dial><Number>+91-22-2640-3333</Number></Dial>" in response.text


def test_say_escapes_markup():
    response = client.get("/exotel/transfer-call", params={"department": "Billing & <Insurance>"})
    assert "Billing &amp; &lt;Insurance&gt;" in response.text


def test_incoming_call_reuses_callback_conversation():
    registry = websocket_manager.conversation_manager
    client.post("/exotel/incoming-call", data={"CallSid": "CA107", "From": "+919800000007"})
    conversation = registry.get_conversation("CA107")

    client.post("/exotel/incoming-call", data={"CallSid": "CA107", "From": "+919800000007"})

    assert registry.get_conversation("CA107") is conversation
    assert not conversation.ended


def test_passthru_connects_stream_without_registering():
    response = client.post(
        "/exotel/passthru", data={"CallSid": "CA108", "From": "+919800000008", "Digits": "1"}
    )

    assert response.status_code == 200
    assert "<Say>Processing your request.</Say>" in response.text
    assert "exotel-media-stream?callSid=CA108&amp;phoneNumber=%2B919800000008" in response.text
    assert websocket_manager.conversation_manager.get_conversation("CA108") is None


def test_passthru_accepts_query_parameters():
    response = client.get("/exotel/passthru", params={"CallSid": "CA109"})

    assert response.status_code == 200
    assert "callSid=CA109" in response.text
    assert "phoneNumber" not in response.text


def test_fallback_apologises_and_hangs_up():
    response = client.post("/exotel/fallback", data={"CallSid": "CA110"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "We apologize for the inconvenience." in response.text
    assert "<Hangup/>" in response.text
