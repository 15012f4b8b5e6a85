"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the messages exchanged with the OpenAI Realtime API,
including both the client events the bridge sends and the server events it consumes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""
    USER = "user"
    ASSISTANT = "assistant"


class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API messages."""
    model_config = ConfigDict(extra="allow")

    type: str


# Client events

class SessionConfig(BaseModel):
    """Session parameters sent once the model socket opens."""
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    instructions: str
    voice: str
    input_audio_format: str
    output_audio_format: str
    input_audio_transcription: Optional[Dict[str, Any]] = Field(
        default_factory=lambda: {"model": "whisper-1"}
    )
    turn_detection: Optional[Dict[str, Any]] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    tool_choice: str = "auto"
    temperature: float = 0.8
    max_response_output_tokens: Union[int, str] = "inf"


class SessionUpdateEvent(RealtimeBaseMessage):
    """session.update client event."""
    type: str = "session.update"
    session: SessionConfig


class InputAudioBufferAppendEvent(RealtimeBaseMessage):
    """input_audio_buffer.append client event carrying base64 caller audio."""
    type: str = "input_audio_buffer.append"
    audio: str


class ConversationItemContent(BaseModel):
    """Content part of a conversation item."""
    type: str = "input_text"
    text: Optional[str] = None


class ConversationItem(BaseModel):
    """Item added to the model-side conversation."""
    type: str = "message"
    role: Optional[MessageRole] = None
    content: Optional[List[ConversationItemContent]] = None
    call_id: Optional[str] = None
    output: Optional[str] = None


class ConversationItemCreateEvent(RealtimeBaseMessage):
    """conversation.item.create client event."""
    type: str = "conversation.item.create"
    item: ConversationItem


class ResponseCreateEvent(RealtimeBaseMessage):
    """response.create client event; asks the model to produce a turn."""
    type: str = "response.create"


# Server events

class ServerContentPart(BaseModel):
    """Content part reported inside a server conversation item."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    text: Optional[str] = None
    transcript: Optional[str] = None


class ServerConversationItem(BaseModel):
    """Conversation item as reported by the server."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: Optional[str] = None
    role: Optional[str] = None
    content: List[ServerContentPart] = Field(default_factory=list)


class ConversationItemCreatedEvent(RealtimeBaseMessage):
    """conversation.item.created server event."""
    item: ServerConversationItem = Field(default_factory=ServerConversationItem)

    @property
    def user_transcript(self) -> str:
        """Transcript of a user message item, or an empty string."""
        if self.item.type != "message" or self.item.role != MessageRole.USER.value:
            return ""
        if not self.item.content:
            return ""
        return self.item.content[0].transcript or ""


class InputAudioTranscriptionCompletedEvent(RealtimeBaseMessage):
    """conversation.item.input_audio_transcription.completed server event."""
    item_id: Optional[str] = None
    transcript: str = ""


class ResponseAudioDeltaEvent(RealtimeBaseMessage):
    """response.audio.delta server event; ``delta`` is base64 audio."""
    delta: str = ""


class ResponseAudioTranscriptDoneEvent(RealtimeBaseMessage):
    """response.audio_transcript.done server event."""
    transcript: str = ""


class FunctionCallArgumentsDoneEvent(RealtimeBaseMessage):
    """response.function_call_arguments.done server event."""
    call_id: Optional[str] = None
    name: str = ""
    arguments: Optional[str] = None


class RealtimeErrorEvent(RealtimeBaseMessage):
    """error server event."""
    error: Dict[str, Any] = Field(default_factory=dict)
