"""
Bridge between an Exotel media stream WebSocket and the OpenAI Realtime API.

One ExotelRealtimeBridge serves one call. It relays caller audio to the model
and model audio back to the caller, records transcripts on the call's
Conversation, dispatches model function calls and executes the transfers they
request. Audio is relayed best-effort: nothing is queued, and frames that cannot
be delivered right now are dropped.

State machine: INITIALIZING -> ACTIVE -> CLOSING -> CLOSED. Teardown runs once
however many close signals arrive.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from voicebridge.bot.function_handlers import FunctionHandler
from voicebridge.bot.realtime_api import RealtimeClient
from voicebridge.config.constants import (
    ACTION_TRANSFER_EMERGENCY,
    ACTION_TRANSFER_OPERATOR,
    CONVERSATION_TYPE_PHONE,
    EXOTEL_EVENT_CONNECTED,
    EXOTEL_EVENT_DTMF,
    EXOTEL_EVENT_MARK,
    EXOTEL_EVENT_MEDIA,
    EXOTEL_EVENT_START,
    EXOTEL_EVENT_STOP,
    LOGGER_NAME,
    SERVER_EVENT_CONVERSATION_ITEM_CREATED,
    SERVER_EVENT_ERROR,
    SERVER_EVENT_FUNCTION_CALL_ARGUMENTS_DONE,
    SERVER_EVENT_INPUT_TRANSCRIPTION_COMPLETED,
    SERVER_EVENT_RESPONSE_AUDIO_DELTA,
    SERVER_EVENT_RESPONSE_AUDIO_TRANSCRIPT_DONE,
    SERVER_EVENT_RESPONSE_DONE,
    SERVER_EVENT_SESSION_CREATED,
    SERVER_EVENT_SESSION_UPDATED,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from voicebridge.config.prompts import (
    FUNCTION_TOOLS,
    OPENING_USER_TURN,
    SYSTEM_PROMPT,
    VOICE_CONFIG,
)
from voicebridge.models.conversation import Conversation, ConversationManager
from voicebridge.models.exotel_schemas import (
    MediaEvent,
    MediaPayload,
    OutgoingMediaEvent,
    StartEvent,
)
from voicebridge.models.openai_schemas import (
    ConversationItem,
    ConversationItemContent,
    ConversationItemCreatedEvent,
    ConversationItemCreateEvent,
    FunctionCallArgumentsDoneEvent,
    InputAudioBufferAppendEvent,
    InputAudioTranscriptionCompletedEvent,
    MessageRole,
    RealtimeErrorEvent,
    ResponseAudioDeltaEvent,
    ResponseAudioTranscriptDoneEvent,
    ResponseCreateEvent,
    SessionConfig,
    SessionUpdateEvent,
)
from voicebridge.services.transfer import TransferService

logger = logging.getLogger(LOGGER_NAME)


class BridgeState(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ExotelRealtimeBridge:
    """
    Relays one Exotel call to one OpenAI Realtime session.

    Attributes:
        telephony_websocket (WebSocket): Exotel media stream connection (owned by the route)
        realtime_client (RealtimeClient): Model-side socket client
        registry (ConversationManager): Process-wide conversation registry
        conversation (Conversation): Record for this call, set by ``initialize``
        call_sid (Optional[str]): Exotel call identifier; may arrive with the ``start`` event
        stream_sid (Optional[str]): Media stream identifier; unknown until ``start``
        state (BridgeState): Lifecycle state
    """

    def __init__(
        self,
        telephony_websocket: WebSocket,
        registry: ConversationManager,
        function_handler: FunctionHandler,
        transfer_service: TransferService,
        call_sid: Optional[str] = None,
        phone_number: Optional[str] = None,
        realtime_client: Optional[RealtimeClient] = None,
    ):
        self.telephony_websocket = telephony_websocket
        self.registry = registry
        self.function_handler = function_handler
        self.transfer_service = transfer_service
        self.realtime_client = realtime_client or RealtimeClient()
        self.call_sid = call_sid
        self.phone_number = phone_number
        self.stream_sid: Optional[str] = None
        self.conversation: Optional[Conversation] = None
        self.state = BridgeState.INITIALIZING
        self._closed = False
        self._function_tasks: Set[asyncio.Task] = set()
        self._teardown_task: Optional[asyncio.Task] = None

        # First-audio flags, used only to keep audio logging to one line per direction
        self.audio_received_from_caller = False
        self.audio_received_from_model = False
        self.audio_sent_to_caller = False

        self.telephony_event_handlers = {
            EXOTEL_EVENT_CONNECTED: self.handle_connected,
            EXOTEL_EVENT_START: self.handle_start,
            EXOTEL_EVENT_MEDIA: self.handle_media,
            EXOTEL_EVENT_STOP: self.handle_stop,
            EXOTEL_EVENT_MARK: self.handle_passive_event,
            EXOTEL_EVENT_DTMF: self.handle_passive_event,
        }

        self.realtime_event_handlers = {
            SERVER_EVENT_SESSION_CREATED: self.handle_session_event,
            SERVER_EVENT_SESSION_UPDATED: self.handle_session_event,
            SERVER_EVENT_CONVERSATION_ITEM_CREATED: self.handle_conversation_item_created,
            SERVER_EVENT_INPUT_TRANSCRIPTION_COMPLETED: self.handle_input_transcription_completed,
            SERVER_EVENT_RESPONSE_AUDIO_DELTA: self.handle_audio_delta,
            SERVER_EVENT_RESPONSE_AUDIO_TRANSCRIPT_DONE: self.handle_audio_transcript_done,
            SERVER_EVENT_FUNCTION_CALL_ARGUMENTS_DONE: self.handle_function_call,
            SERVER_EVENT_RESPONSE_DONE: self.handle_response_done,
            SERVER_EVENT_ERROR: self.handle_error,
        }

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def identifier(self) -> Optional[str]:
        return self.conversation.key if self.conversation else self.call_sid

    def _is_websocket_closed(self) -> bool:
        """True if the Exotel socket is gone or no longer usable."""
        return (
            not self.telephony_websocket
            or self.telephony_websocket.client_state == WebSocketState.DISCONNECTED
            or self.telephony_websocket.application_state == WebSocketState.DISCONNECTED
        )

    def _model_socket_open(self) -> bool:
        return self.state == BridgeState.ACTIVE and self.realtime_client.is_open

    # Lifecycle

    async def initialize(self) -> bool:
        """
        Attach to (or create) the call's conversation and open the model socket.

        Returns:
            bool: False if the model socket could not be opened. The bridge is then
            already torn down, and the caller closes the Exotel socket with an error code.
        """
        self.conversation = self.registry.get_conversation(self.call_sid)
        if self.conversation is None:
            self.conversation = await self.registry.create_conversation(
                call_sid=self.call_sid,
                phone_number=self.phone_number,
                conversation_type=CONVERSATION_TYPE_PHONE,
            )
        elif not self.phone_number:
            self.phone_number = self.conversation.phone_number
        self.registry.attach_bridge(self.conversation.key, self)

        if not await self.realtime_client.connect():
            logger.error(f"Could not open model socket for call: {self.identifier}")
            await self.cleanup(STATUS_FAILED, close_telephony=False)
            return False

        await self.on_model_socket_open()
        logger.info(f"Realtime session initialized: {self.identifier}")
        return True

    async def on_model_socket_open(self) -> None:
        """Configure the session and ask the model to greet the caller before any audio flows."""
        if self._closed:
            return
        session_config = SessionConfig(
            instructions=SYSTEM_PROMPT,
            voice=VOICE_CONFIG["voice"],
            input_audio_format=VOICE_CONFIG["input_audio_format"],
            output_audio_format=VOICE_CONFIG["output_audio_format"],
            turn_detection=VOICE_CONFIG["turn_detection"],
            tools=FUNCTION_TOOLS,
            tool_choice="auto",
            temperature=VOICE_CONFIG["temperature"],
            max_response_output_tokens=VOICE_CONFIG["max_response_output_tokens"],
        )
        await self.realtime_client.send_event(SessionUpdateEvent(session=session_config))
        logger.info(
            f"Session configuration sent to OpenAI - Voice: {session_config.voice}, "
            f"Audio Format: {session_config.input_audio_format}/{session_config.output_audio_format}"
        )

        opening_turn = ConversationItemCreateEvent(
            item=ConversationItem(
                type="message",
                role=MessageRole.USER,
                content=[ConversationItemContent(type="input_text", text=OPENING_USER_TURN)],
            )
        )
        await self.realtime_client.send_event(opening_turn)
        await self.realtime_client.send_event(ResponseCreateEvent())

        if not self._closed:
            self.state = BridgeState.ACTIVE

    async def run(self) -> None:
        """Pump both sockets until either side closes, then tear down."""
        receivers = [
            asyncio.create_task(self.receive_from_telephony()),
            asyncio.create_task(self.receive_from_realtime()),
        ]
        try:
            await asyncio.wait(receivers, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in receivers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*receivers, return_exceptions=True)
            await self.cleanup(STATUS_COMPLETED)

    async def cleanup(self, status: str = STATUS_COMPLETED, close_telephony: bool = True) -> None:
        """
        Close the model socket, end the conversation and close the Exotel socket.

        The first call starts teardown in its own task; every call waits for that
        task to finish. A receive loop cancelled while it waits here does not
        cancel the teardown. In-flight function calls are left to finish; their
        results are discarded.
        """
        if self._teardown_task is None:
            self._closed = True
            self.state = BridgeState.CLOSING
            self._teardown_task = asyncio.create_task(self._teardown(status, close_telephony))
        if asyncio.current_task() is self._teardown_task:
            return
        await asyncio.shield(self._teardown_task)

    async def _teardown(self, status: str, close_telephony: bool) -> None:
        logger.info(f"Cleaning up realtime session: {self.identifier} ({status})")

        try:
            await self.realtime_client.close()
        except Exception as e:
            logger.error(f"Error closing OpenAI connection: {e}")

        if self.conversation is not None:
            try:
                if self.registry.get_conversation(self.conversation.key) is self.conversation:
                    await self.registry.end_conversation(self.conversation.key, status)
                else:
                    await self.conversation.end(status)
            except Exception as e:
                logger.error(f"Error ending conversation {self.identifier}: {e}", exc_info=True)

        if close_telephony and not self._is_websocket_closed():
            try:
                await self.telephony_websocket.close()
            except Exception as e:
                logger.error(f"Error closing Exotel connection: {e}")

        self.state = BridgeState.CLOSED
        logger.info(f"Realtime session cleaned up: {self.identifier}")

    # Receive loops

    async def receive_from_telephony(self) -> None:
        """Receive and dispatch Exotel media stream events."""
        status = STATUS_COMPLETED
        try:
            async for message in self.telephony_websocket.iter_text():
                if self._closed:
                    break
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON from Exotel: {message[:100]}...")
                    continue
                if not isinstance(data, dict):
                    logger.warning(f"Ignoring non-object Exotel frame: {message[:100]}")
                    continue
                await self.on_telephony_event(data)
        except WebSocketDisconnect:
            logger.info(f"Exotel WebSocket closed: {self.identifier}")
        except Exception as e:
            logger.error(f"Error in receive_from_telephony: {e}", exc_info=True)
            status = STATUS_FAILED
        await self.cleanup(status)

    async def receive_from_realtime(self) -> None:
        """
        Receive and dispatch OpenAI events.

        Function calls run as separate tasks so a slow data store or transfer
        request does not hold up audio relay.
        """
        status = STATUS_COMPLETED
        try:
            async for event in self.realtime_client.events():
                if self._closed:
                    break
                if event.get("type") == SERVER_EVENT_FUNCTION_CALL_ARGUMENTS_DONE:
                    task = asyncio.create_task(self.on_model_event(event))
                    self._function_tasks.add(task)
                    task.add_done_callback(self._function_tasks.discard)
                else:
                    await self.on_model_event(event)
            logger.info(f"OpenAI WebSocket closed: {self.identifier}")
        except Exception as e:
            logger.error(f"Error in receive_from_realtime: {e}", exc_info=True)
            status = STATUS_FAILED
        await self.cleanup(status)

    # Event dispatch

    async def on_telephony_event(self, data: Dict[str, Any]) -> None:
        event_type = data.get("event")
        handler = self.telephony_event_handlers.get(event_type)
        if handler is None:
            logger.debug(f"Unhandled Exotel event: {event_type}")
            return
        try:
            await handler(data)
        except ValidationError as e:
            logger.warning(f"Malformed Exotel {event_type} event: {e}")
        except Exception as e:
            logger.error(f"Error in handler for Exotel {event_type}: {e}", exc_info=True)

    async def on_model_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        handler = self.realtime_event_handlers.get(event_type)
        if handler is None:
            logger.debug(f"Unhandled OpenAI event: {event_type}")
            return
        try:
            await handler(event)
        except ValidationError as e:
            logger.warning(f"Malformed OpenAI {event_type} event: {e}")
        except Exception as e:
            logger.error(f"Error in handler for OpenAI {event_type}: {e}", exc_info=True)

    # Exotel events

    async def handle_connected(self, data: Dict[str, Any]) -> None:
        logger.info(f"Exotel stream connected: {self.identifier}")

    async def handle_passive_event(self, data: Dict[str, Any]) -> None:
        logger.debug(f"Exotel {data.get('event')} event: {data}")

    async def handle_start(self, data: Dict[str, Any]) -> None:
        """Record the stream identifier and pick up call details the webhook did not carry."""
        start = StartEvent.from_message(data).start
        self.stream_sid = start.streamSid
        params = start.customParameters

        if not self.call_sid:
            call_sid = params.get("callSid") or start.callSid
            if call_sid:
                self.call_sid = call_sid
                logger.info(f"CallSid extracted from stream: {call_sid}")
                if self.conversation is not None:
                    if self.conversation.call_sid is None:
                        self.conversation.call_sid = call_sid
                    self.registry.add_alias(self.conversation.key, call_sid)

        if not self.phone_number and params.get("phoneNumber"):
            self.phone_number = params["phoneNumber"]
            logger.info(f"Phone number extracted from stream: {self.phone_number}")
            if self.conversation is not None and not self.conversation.phone_number:
                self.conversation.phone_number = self.phone_number

        logger.info(f"Exotel media stream started: {self.stream_sid} for call: {self.call_sid}")

    async def handle_media(self, data: Dict[str, Any]) -> None:
        """Forward caller audio to the model, or drop it if it cannot be delivered now."""
        payload = MediaEvent.from_message(data).media.payload
        if not payload:
            logger.warning("Cannot forward audio to OpenAI: Empty payload")
            return
        if not self.stream_sid:
            logger.debug("Dropping caller audio received before stream start")
            return
        if not self._model_socket_open():
            logger.warning("Cannot forward audio to OpenAI: Not connected")
            return

        if not self.audio_received_from_caller:
            logger.info(
                f"First audio chunk received from Exotel ({len(payload)} bytes) - Forwarding to OpenAI"
            )
            self.audio_received_from_caller = True
        await self.realtime_client.send_event(InputAudioBufferAppendEvent(audio=payload))

    async def handle_stop(self, data: Dict[str, Any]) -> None:
        logger.info(f"Exotel media stream stopped: {self.stream_sid}")
        await self.cleanup(STATUS_COMPLETED)

    # OpenAI events

    async def handle_session_event(self, event: Dict[str, Any]) -> None:
        logger.info(f"OpenAI {event.get('type')}")

    async def handle_conversation_item_created(self, event: Dict[str, Any]) -> None:
        transcript = ConversationItemCreatedEvent(**event).user_transcript
        if transcript:
            await self.conversation.add_message(MessageRole.USER.value, transcript)

    async def handle_input_transcription_completed(self, event: Dict[str, Any]) -> None:
        # Whisper transcripts of caller audio usually arrive here rather than on the item
        transcript = InputAudioTranscriptionCompletedEvent(**event).transcript.strip()
        if transcript:
            await self.conversation.add_message(MessageRole.USER.value, transcript)

    async def handle_audio_delta(self, event: Dict[str, Any]) -> None:
        """Forward one model audio chunk to the caller. Never queued, never retried."""
        delta = ResponseAudioDeltaEvent(**event).delta
        if not delta:
            return
        if not self.audio_received_from_model:
            logger.info(f"First audio delta received from OpenAI ({len(delta)} bytes)")
            self.audio_received_from_model = True

        if not self.stream_sid:
            logger.warning("Cannot send audio to Exotel: No streamSid available")
            return
        if self._closed or self._is_websocket_closed():
            logger.debug("Cannot send audio to Exotel: WebSocket not open")
            return

        media_message = OutgoingMediaEvent(
            streamSid=self.stream_sid, media=MediaPayload(payload=delta)
        )
        await self.telephony_websocket.send_text(media_message.model_dump_json(exclude_none=True))
        if not self.audio_sent_to_caller:
            logger.info(f"First audio packet sent to Exotel ({len(delta)} bytes)")
            self.audio_sent_to_caller = True

    async def handle_audio_transcript_done(self, event: Dict[str, Any]) -> None:
        transcript = ResponseAudioTranscriptDoneEvent(**event).transcript
        if transcript:
            await self.conversation.add_message(MessageRole.ASSISTANT.value, transcript)

    async def handle_response_done(self, event: Dict[str, Any]) -> None:
        logger.debug("OpenAI response done")

    async def handle_error(self, event: Dict[str, Any]) -> None:
        error = RealtimeErrorEvent(**event).error
        logger.error(
            f"OpenAI error: {error.get('type', 'unknown')} - {error.get('message', 'No message provided')}"
        )

    async def handle_function_call(self, event: Dict[str, Any]) -> None:
        """
        Run a model function call and report the result back to the model.

        Any transfer the result asks for is executed before the result is sent.
        Every step after an await first checks that the bridge is still open.
        """
        call = FunctionCallArgumentsDoneEvent(**event)
        try:
            args = json.loads(call.arguments or "{}")
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Malformed arguments for {call.name}: {call.arguments!r}")
            args = {}
        if not isinstance(args, dict):
            args = {}

        logger.info(f"Function call: {call.name}")
        result = await self.function_handler.dispatch(call.name, args)
        if self._closed:
            logger.info(f"Discarding result of {call.name}: session already closed")
            return

        self.conversation.log_function_call(call.name, args, result)

        action = result.get("action")
        if action == ACTION_TRANSFER_EMERGENCY:
            logger.warning(f"Emergency transfer requested: {result.get('transferTo')}")
            self.conversation.log_emergency(
                result.get("emergencyType"), {"transferTo": result.get("transferTo")}
            )
            await self.transfer_service.execute_emergency_transfer(
                self.call_sid, result.get("transferTo"), result.get("emergencyType")
            )
        elif action == ACTION_TRANSFER_OPERATOR:
            logger.info(f"Operator transfer requested: {result.get('department')}")
            self.conversation.log_transfer(
                "operator", result.get("department"), result.get("reason")
            )
            await self.transfer_service.execute_operator_transfer(
                self.call_sid, result.get("department"), result.get("reason")
            )

        if self._closed:
            logger.info(f"Not reporting {call.name} result: session closed during transfer")
            return

        output = ConversationItemCreateEvent(
            item=ConversationItem(
                type="function_call_output",
                call_id=call.call_id,
                output=json.dumps(result, default=str),
            )
        )
        await self.realtime_client.send_event(output)
        # The model does not respond to function output on its own
        await self.realtime_client.send_event(ResponseCreateEvent())
