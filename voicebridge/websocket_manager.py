"""
Session manager for Exotel media streams.

This module owns the objects every call shares and exposes the operations the
rest of the application uses to work with live calls:
- Accept an Exotel media stream and bridge it to the OpenAI Realtime API
- Report statistics for a live conversation
- End a conversation on request (status webhooks, admin API)
- Sweep conversations that have outlived the age limit
- Place outbound callbacks through Exotel

The WebSocketManager is created once per process by the application lifespan and
holds the data store, the conversation registry, the function dispatch table,
the Exotel client and the services built on it.
"""

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import WebSocket

from voicebridge.bot.exotel_realtime_bridge import ExotelRealtimeBridge
from voicebridge.bot.function_handlers import FunctionHandler
from voicebridge.bot.realtime_api import RealtimeClient
from voicebridge.config.constants import (
    LOGGER_NAME,
    STATUS_COMPLETED,
    STATUS_SERVER_SHUTDOWN,
    WS_CLOSE_INTERNAL_ERROR,
)
from voicebridge.models.conversation import ConversationManager
from voicebridge.services.data_store import HospitalDataStore, InMemoryHospitalStore
from voicebridge.services.exotel_client import ExotelClient
from voicebridge.services.phone_callback import PhoneCallbackService
from voicebridge.services.transfer import TransferService

logger = logging.getLogger(LOGGER_NAME)


class WebSocketManager:
    """Creates call bridges and fronts the conversation registry.

    Args:
        data_store: Hospital data collaborator (defaults to the YAML-seeded store)
        conversation_manager: Registry to use (defaults to a new one over ``data_store``)
        transfer_service: Redirects live calls (defaults to one over ``exotel``)
        realtime_client_factory: Builds the model-side client for each bridge
        exotel: Call-control client shared by transfers and outbound callbacks
    """

    def __init__(
        self,
        data_store: Optional[HospitalDataStore] = None,
        conversation_manager: Optional[ConversationManager] = None,
        transfer_service: Optional[TransferService] = None,
        realtime_client_factory: Callable[[], RealtimeClient] = RealtimeClient,
        exotel: Optional[ExotelClient] = None,
    ):
        self.data_store = data_store or InMemoryHospitalStore()
        self.conversation_manager = conversation_manager or ConversationManager(self.data_store)
        self.function_handler = FunctionHandler(self.data_store)
        self.function_handler.validate_tools()
        self.exotel = exotel or ExotelClient()
        self.transfer_service = transfer_service or TransferService(self.data_store, exotel=self.exotel)
        self.phone_callback_service = PhoneCallbackService(self.conversation_manager, self.exotel)
        self.realtime_client_factory = realtime_client_factory

    async def startup(self) -> None:
        self.conversation_manager.start_sweeper()

    async def shutdown(self) -> None:
        await self.conversation_manager.stop_sweeper()
        ended = await self.conversation_manager.shutdown(STATUS_SERVER_SHUTDOWN)
        if ended:
            logger.info(f"Ended {ended} conversations at shutdown")

    async def create_session(
        self,
        websocket: WebSocket,
        call_sid: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Optional[ExotelRealtimeBridge]:
        """
        Start a bridge for an accepted Exotel media stream.

        Returns:
            The initialized bridge, or None if the model socket could not be opened.
            The caller still owns ``websocket`` and should close it on None.
        """
        bridge = ExotelRealtimeBridge(
            websocket,
            registry=self.conversation_manager,
            function_handler=self.function_handler,
            transfer_service=self.transfer_service,
            call_sid=call_sid,
            phone_number=phone_number,
            realtime_client=self.realtime_client_factory(),
        )
        if not await bridge.initialize():
            return None
        return bridge

    async def handle_websocket(
        self,
        websocket: WebSocket,
        call_sid: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> None:
        """Handle an Exotel media stream connection throughout its lifecycle.

        Accepts the connection, bridges it to the model for the duration of the
        call and closes it with code 1011 if the bridge cannot be started.
        """
        await websocket.accept()
        logger.info(f"Exotel media stream connected: callSid={call_sid}, phone={phone_number}")

        try:
            bridge = await self.create_session(websocket, call_sid, phone_number)
        except Exception as e:
            logger.error(f"Error initializing session: {e}", exc_info=True)
            bridge = None

        if bridge is None:
            await websocket.close(code=WS_CLOSE_INTERNAL_ERROR, reason="Error initializing session")
            return

        await bridge.run()

    def get_active_session_stats(self, identifier: str) -> Optional[Dict[str, Any]]:
        conversation = self.conversation_manager.get_conversation(identifier)
        return conversation.get_stats() if conversation else None

    async def end_session(
        self, identifier: str, status: str = STATUS_COMPLETED
    ) -> Optional[Dict[str, Any]]:
        return await self.conversation_manager.end_conversation(identifier, status)

    async def sweep_stale(self) -> int:
        return await self.conversation_manager.sweep_stale()
