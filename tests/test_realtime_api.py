"""
Unit tests for RealtimeClient.

websockets.connect is patched; no network access is made.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from voicebridge.bot.realtime_api import RealtimeClient
from voicebridge.models.openai_schemas import InputAudioBufferAppendEvent, ResponseCreateEvent


def open_socket():
    ws = MagicMock()
    ws.state = State.OPEN
    ws.send = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest.mark.asyncio
async def test_connect_without_api_key():
    client = RealtimeClient(api_key="")
    with patch("voicebridge.bot.realtime_api.websockets.connect") as mock_connect:
        assert await client.connect() is False
    mock_connect.assert_not_called()


@pytest.mark.asyncio
async def test_connect_sends_auth_headers():
    client = RealtimeClient(api_key="sk-test", model="test-model", url="wss://example.test/realtime")
    ws = open_socket()
    with patch(
        "voicebridge.bot.realtime_api.websockets.connect", new=AsyncMock(return_value=ws)
    ) as mock_connect:
        assert await client.connect() is True

    args, kwargs = mock_connect.call_args
    assert args[0] == "wss://example.test/realtime?model=test-model"
    assert kwargs["additional_headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["additional_headers"]["OpenAI-Beta"] == "realtime=v1"
    assert client.is_open


@pytest.mark.asyncio
async def test_connect_failure_returns_false():
    client = RealtimeClient(api_key="sk-test")
    with patch(
        "voicebridge.bot.realtime_api.websockets.connect",
        new=AsyncMock(side_effect=OSError("unreachable")),
    ):
        assert await client.connect() is False
    assert not client.is_open


@pytest.mark.asyncio
async def test_send_event_when_not_connected():
    client = RealtimeClient(api_key="sk-test")
    assert await client.send_event(ResponseCreateEvent()) is False


@pytest.mark.asyncio
async def test_send_event_serializes_models_and_dicts():
    client = RealtimeClient(api_key="sk-test")
    client.ws = open_socket()

    assert await client.send_event(InputAudioBufferAppendEvent(audio="AAAA")) is True
    assert await client.send_event({"type": "response.cancel"}) is True

    sent = [json.loads(c.args[0]) for c in client.ws.send.call_args_list]
    assert sent == [
        {"type": "input_audio_buffer.append", "audio": "AAAA"},
        {"type": "response.cancel"},
    ]


@pytest.mark.asyncio
async def test_send_event_on_closed_connection():
    client = RealtimeClient(api_key="sk-test")
    client.ws = open_socket()
    client.ws.send.side_effect = ConnectionClosedError(None, None)

    assert await client.send_event(ResponseCreateEvent()) is False


@pytest.mark.asyncio
async def test_events_skip_invalid_frames():
    client = RealtimeClient(api_key="sk-test")
    ws = open_socket()
    ws.__aiter__.return_value = [
        json.dumps({"type": "session.created"}),
        "not json",
        json.dumps([1, 2, 3]),
        json.dumps({"type": "response.done"}),
    ]
    client.ws = ws

    events = [event async for event in client.events()]

    assert [e["type"] for e in events] == ["session.created", "response.done"]


@pytest.mark.asyncio
async def test_events_end_on_connection_closed():
    client = RealtimeClient(api_key="sk-test")
    ws = MagicMock()

    async def frames():
        yield json.dumps({"type": "session.created"})
        raise ConnectionClosedError(None, None)

    ws.__aiter__ = lambda self: frames()
    client.ws = ws

    events = [event async for event in client.events()]

    assert len(events) == 1


@pytest.mark.asyncio
async def test_close_is_idempotent():
    client = RealtimeClient(api_key="sk-test")
    ws = open_socket()
    client.ws = ws

    await client.close()
    await client.close()

    ws.close.assert_awaited_once()
    assert not client.is_open
    assert await client.connect() is False
