import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from voicebridge.main import app, websocket_manager

client = TestClient(app)


@pytest.fixture(autouse=True)
def clean_registry():
    registry = websocket_manager.conversation_manager
    yield
    for key in list(registry.active_conversations):
        registry._drop(key)


def test_health_check():
    """Test the health check endpoint returns correct response"""
    response = client.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert response_json["version"] == "1.0.0"
    assert response_json["hospital"] == "Lilavati Hospital and Research Centre"
    assert response_json["active_conversations"] == 0
    assert isinstance(response_json["openai_api_key_configured"], bool)


def test_root_endpoint():
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Hospital Voice Bridge"
    assert response_json["version"] == "1.0.0"
    assert "/exotel-media-stream" in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_app_configuration():
    assert app.title == "Hospital Voice Bridge"
    assert "Exotel" in app.description

    route_paths = [route.path for route in app.routes]
    assert "/exotel-media-stream" in route_paths
    assert "/exotel/incoming-call" in route_paths
    assert "/api/conversations/active" in route_paths


@pytest.mark.asyncio
async def test_websocket_endpoint():
    """Test that the media stream endpoint hands the call details to the manager"""
    with patch.object(websocket_manager, "handle_websocket", new=AsyncMock()) as mock_handle:
        mock_websocket = MagicMock()

        websocket_route = next(
            route for route in app.routes if route.path == "/exotel-media-stream"
        )
        await websocket_route.endpoint(mock_websocket, callSid="CA1", phoneNumber="+919800000000")

        mock_handle.assert_awaited_once_with(mock_websocket, "CA1", "+919800000000")


def test_conversation_api():
    client.post("/exotel/incoming-call", data={"CallSid": "CA200", "From": "+919800000000"})

    active = client.get("/api/conversations/active").json()
    assert active["count"] == 1
    assert active["conversations"][0]["call_sid"] == "CA200"

    stats = client.get("/api/conversations/CA200").json()
    assert stats["phone_number"] == "+919800000000"
    assert stats["message_count"] == 0

    ended = client.post("/api/conversations/CA200/end", json={"status": "cancelled"})
    assert ended.status_code == 200
    assert ended.json()["status"] == "cancelled"

    assert client.get("/api/conversations/CA200").status_code == 404
    assert client.post("/api/conversations/CA200/end").status_code == 404


def test_admin_cleanup_with_nothing_stale():
    client.post("/exotel/incoming-call", data={"CallSid": "CA201"})

    response = client.post("/api/admin/cleanup")

    assert response.status_code == 200
    assert response.json()["count"] == 0
    assert len(websocket_manager.conversation_manager) == 1


def test_web_voice_session_lifecycle():
    created = client.post("/api/web-voice/session", json={"phone_number": "+919800000002"})
    assert created.status_code == 200
    session = created.json()
    assert session["session_id"]
    assert session["conversation_id"]
    assert session["model"]

    conversation = websocket_manager.conversation_manager.get_conversation(session["session_id"])
    assert conversation.conversation_type == "web"
    assert conversation.call_sid is None

    ended = client.post("/api/web-voice/end", json={"session_id": session["session_id"]})
    assert ended.status_code == 200
    assert ended.json()["success"] is True

    again = client.post("/api/web-voice/end", json={"session_id": session["session_id"]})
    assert again.status_code == 404


def test_web_voice_end_requires_session_id():
    assert client.post("/api/web-voice/end", json={}).status_code == 400
    assert client.post("/api/web-voice/end").status_code == 400


def test_web_voice_status():
    session = client.post("/api/web-voice/session").json()

    response = client.get(f"/api/web-voice/status/{session['session_id']}")
    assert response.status_code == 200
    status = response.json()
    assert status["session_id"] == session["session_id"]
    assert status["status"] == "active"
    assert status["conversation_type"] == "web"
    assert status["message_count"] == 0

    client.post("/api/web-voice/end", json={"session_id": session["session_id"]})
    assert client.get(f"/api/web-voice/status/{session['session_id']}").status_code == 404


def test_phone_routes_are_mounted():
    route_paths = [route.path for route in app.routes]
    assert "/api/phone/initiate-call" in route_paths
    assert "/api/web-voice/status/{session_id}" in route_paths
    assert "/exotel/passthru" in route_paths
    assert "/exotel/fallback" in route_paths
