import logging
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from voicebridge.bot.realtime_api import RealtimeClient
from voicebridge.services.data_store import InMemoryHospitalStore
from voicebridge.services.transfer import TransferService


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture
def data_store():
    """Hospital store loaded from the packaged seed file."""
    return InMemoryHospitalStore()


@pytest.fixture
def mock_websocket():
    """Create a mock Exotel WebSocket that reports itself connected."""
    mock = AsyncMock(spec=WebSocket)
    mock.client_state = WebSocketState.CONNECTED
    mock.application_state = WebSocketState.CONNECTED
    return mock


@pytest.fixture
def mock_client():
    """Create a mock RealtimeClient with an open socket."""
    mock = AsyncMock(spec=RealtimeClient)
    mock.connect.return_value = True
    mock.send_event.return_value = True
    mock.is_open = True
    return mock


@pytest.fixture
def mock_transfer_service():
    mock = AsyncMock(spec=TransferService)
    mock.execute_emergency_transfer.return_value = True
    mock.execute_operator_transfer.return_value = True
    return mock
