import asyncio
import json
import logging
import time
import traceback
from typing import Any, AsyncIterator, Dict, Optional, Union

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.protocol import State

from voicebridge.config import settings
from voicebridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 30  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32  # Small queue to prevent buffering
WS_PING_INTERVAL = 5  # 5 seconds between pings


class RealtimeClient:
    """
    JSON event client for one OpenAI Realtime API WebSocket.

    The client does not reconnect: a closed model socket ends the call it serves.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_REALTIME_MODEL
        self.url = url or settings.OPENAI_REALTIME_URL
        self.ws = None
        self._is_closing = False
        logger.debug(f"RealtimeClient created for model: {self.model}")

    @property
    def is_open(self) -> bool:
        return self.ws is not None and not self._is_closing and self.ws.state is State.OPEN

    async def connect(self) -> bool:
        """
        Connect to the OpenAI Realtime WebSocket endpoint.

        Returns:
            bool: True if connection was successful, False otherwise
        """
        if not self.api_key:
            logger.error("OPENAI_API_KEY environment variable not set")
            return False
        if self._is_closing:
            logger.warning("Cannot connect - client is closing")
            return False

        url = f"{self.url}?model={self.model}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info(f"Connecting to OpenAI Realtime API with model: {self.model}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,  # Disable compression for lower latency
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
            connection_time = time.time() - connection_start
            logger.info(f"Connected to OpenAI Realtime API in {connection_time:.2f} seconds")
            return True
        except asyncio.TimeoutError:
            logger.error(
                f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)"
            )
            return False
        except Exception as e:
            logger.error(f"Failed to connect to OpenAI Realtime API: {e}")
            logger.debug(f"Connection error details: {traceback.format_exc()}")
            return False

    async def send_event(self, event: Union[BaseModel, Dict[str, Any]]) -> bool:
        """
        Send one client event.

        Args:
            event: A pydantic event model or a plain dict with a ``type`` key

        Returns:
            bool: True if the event was written to the socket
        """
        if not self.is_open:
            logger.warning("Cannot send event - OpenAI connection not open")
            return False

        if isinstance(event, BaseModel):
            payload = event.model_dump_json(exclude_none=True)
        else:
            payload = json.dumps(event)

        try:
            await self.ws.send(payload)
            return True
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending event: {e}")
            return False
        except Exception as e:
            logger.error(f"Error sending event: {e}")
            return False

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield server events in arrival order until the socket closes.

        Frames that are not JSON objects are logged and skipped.
        """
        if self.ws is None:
            logger.error("WebSocket not initialized for receive loop")
            return

        try:
            async for message in self.ws:
                try:
                    data = json.loads(message)
                except (json.JSONDecodeError, TypeError):
                    logger.warning(f"Received invalid JSON from OpenAI: {str(message)[:100]}...")
                    continue
                if not isinstance(data, dict):
                    logger.warning(f"Ignoring non-object OpenAI frame: {str(message)[:100]}")
                    continue
                yield data
        except ConnectionClosedOK:
            logger.info("OpenAI WebSocket connection closed normally")
        except ConnectionClosed as e:
            logger.warning(f"OpenAI WebSocket connection closed unexpectedly: {e}")

    async def close(self) -> None:
        """Close the WebSocket connection. Safe to call more than once."""
        if self._is_closing:
            return
        self._is_closing = True
        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing OpenAI WebSocket: {e}")
        logger.info("OpenAI Realtime client closed")
