"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names and default values and making it
easier to maintain consistent naming throughout the codebase.
"""

# Logger name used throughout the application
LOGGER_NAME = "voice_bridge"

# Default OpenAI model and endpoint for the Realtime API
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"

# Audio format constants (OpenAI names)
AUDIO_FORMAT_G711_ULAW = "g711_ulaw"

# Exotel media stream events
EXOTEL_EVENT_CONNECTED = "connected"
EXOTEL_EVENT_START = "start"
EXOTEL_EVENT_MEDIA = "media"
EXOTEL_EVENT_STOP = "stop"
EXOTEL_EVENT_MARK = "mark"
EXOTEL_EVENT_DTMF = "dtmf"

# OpenAI Realtime server events
SERVER_EVENT_SESSION_CREATED = "session.created"
SERVER_EVENT_SESSION_UPDATED = "session.updated"
SERVER_EVENT_CONVERSATION_ITEM_CREATED = "conversation.item.created"
SERVER_EVENT_INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
SERVER_EVENT_RESPONSE_AUDIO_DELTA = "response.audio.delta"
SERVER_EVENT_RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
SERVER_EVENT_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
SERVER_EVENT_RESPONSE_DONE = "response.done"
SERVER_EVENT_ERROR = "error"

# Side-effect actions a function result may carry
ACTION_TRANSFER_EMERGENCY = "TRANSFER_EMERGENCY"
ACTION_TRANSFER_OPERATOR = "TRANSFER_OPERATOR"

# Conversation channel discriminator
CONVERSATION_TYPE_PHONE = "phone"
CONVERSATION_TYPE_WEB = "web"

# Terminal conversation statuses
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"
STATUS_TIMEOUT = "timeout"
STATUS_SERVER_SHUTDOWN = "server_shutdown"

# Close code used when a media stream cannot be bridged
WS_CLOSE_INTERNAL_ERROR = 1011
