from unittest.mock import AsyncMock, patch

import pytest

from voicebridge.bot.exotel_realtime_bridge import BridgeState, ExotelRealtimeBridge
from voicebridge.websocket_manager import WebSocketManager


@pytest.fixture
def manager(data_store, mock_client, mock_transfer_service):
    return WebSocketManager(
        data_store=data_store,
        transfer_service=mock_transfer_service,
        realtime_client_factory=lambda: mock_client,
    )


def test_manager_validates_tools(manager):
    assert "emergency_protocol" in manager.function_handler.function_registry


@pytest.mark.asyncio
async def test_create_session(manager, mock_websocket):
    bridge = await manager.create_session(mock_websocket, "CA1", "+919800000000")

    assert isinstance(bridge, ExotelRealtimeBridge)
    assert bridge.state == BridgeState.ACTIVE
    assert manager.conversation_manager.get_bridge("CA1") is bridge
    assert manager.get_active_session_stats("CA1")["phone_number"] == "+919800000000"


@pytest.mark.asyncio
async def test_handle_websocket_closes_on_failed_connect(manager, mock_websocket, mock_client):
    mock_client.connect.return_value = False

    await manager.handle_websocket(mock_websocket, "CA2", None)

    mock_websocket.accept.assert_awaited_once()
    mock_websocket.close.assert_awaited_once_with(code=1011, reason="Error initializing session")
    assert manager.get_active_session_stats("CA2") is None


@pytest.mark.asyncio
async def test_handle_websocket_runs_bridge(manager, mock_websocket):
    with patch.object(ExotelRealtimeBridge, "run", new=AsyncMock()) as mock_run:
        await manager.handle_websocket(mock_websocket, "CA3", None)

    mock_run.assert_awaited_once()
    mock_websocket.close.assert_not_called()


@pytest.mark.asyncio
async def test_end_session_unknown(manager):
    assert await manager.end_session("nope") is None


@pytest.mark.asyncio
async def test_startup_and_shutdown(manager, mock_websocket, mock_client):
    await manager.startup()
    bridge = await manager.create_session(mock_websocket, "CA4", None)

    await manager.shutdown()

    assert bridge.closed
    assert bridge.conversation.status == "server_shutdown"
    assert manager.conversation_manager._sweep_task is None
    mock_client.close.assert_awaited()
