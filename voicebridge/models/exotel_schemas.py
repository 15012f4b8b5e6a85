"""
Pydantic models for the Exotel media stream WebSocket protocol.

This module defines structured data models for the events exchanged over a
telephony media stream (start, media, stop), providing type validation and a
single place that knows the provider's field names. Exotel has used both
camelCase and snake_case field names across stream versions, so incoming
models accept either spelling.
"""

import logging
from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from voicebridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class BaseStreamEvent(BaseModel):
    """Base model for all media stream events."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    event: str = Field(..., description="Event type identifier")
    sequenceNumber: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("sequenceNumber", "sequence_number"),
        description="Provider-assigned sequence number",
    )

    @field_validator("sequenceNumber", mode="before")
    def coerce_sequence_number(cls, v):
        """Exotel sends sequence numbers as strings on some stream versions."""
        if isinstance(v, str):
            return int(v) if v.isdigit() else None
        return v


class StreamStartPayload(BaseModel):
    """Details carried by the ``start`` event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    streamSid: Optional[str] = Field(
        None, validation_alias=AliasChoices("streamSid", "stream_sid", "streamId")
    )
    callSid: Optional[str] = Field(
        None, validation_alias=AliasChoices("callSid", "call_sid")
    )
    accountSid: Optional[str] = Field(
        None, validation_alias=AliasChoices("accountSid", "account_sid")
    )
    customParameters: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices(
            "customParameters", "custom_parameters", "customParams"
        ),
    )

    @field_validator("customParameters", mode="before")
    def default_custom_parameters(cls, v):
        """Treat a null parameter block as empty."""
        return v or {}


class StartEvent(BaseStreamEvent):
    """Model for the ``start`` event. Assigns the media-stream identifier."""

    event: Literal["start"]
    start: StreamStartPayload

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "StartEvent":
        """
        Build a start event from either wire shape.

        The details are normally nested under ``start``; older passthrough
        routes put them at the top level of the message.
        """
        details = {k: v for k, v in message.items() if k not in ("event", "start")}
        nested = message.get("start")
        if isinstance(nested, dict):
            details.update(nested)
        return cls(event="start", start=StreamStartPayload(**details))


class MediaPayload(BaseModel):
    """Audio carried by a ``media`` event (base64, provider codec)."""

    model_config = ConfigDict(extra="allow")

    payload: str = ""
    chunk: Optional[int] = None
    timestamp: Optional[str] = None

    @field_validator("chunk", mode="before")
    def coerce_chunk(cls, v):
        if isinstance(v, str):
            return int(v) if v.isdigit() else None
        return v


class MediaEvent(BaseStreamEvent):
    """Model for the inbound ``media`` event."""

    event: Literal["media"]
    media: MediaPayload = Field(default_factory=MediaPayload)

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "MediaEvent":
        """Build a media event whether the payload is nested or top-level."""
        media = message.get("media")
        if not isinstance(media, dict):
            media = {"payload": message.get("payload") or ""}
        return cls(event="media", media=MediaPayload(**media))


class StopEvent(BaseStreamEvent):
    """Model for the ``stop`` event sent when the stream ends."""

    event: Literal["stop"]
    stop: Dict[str, Any] = Field(default_factory=dict)


class OutgoingMediaEvent(BaseModel):
    """Audio sent back to the caller, addressed to one media stream."""

    event: Literal["media"] = "media"
    streamSid: str = Field(..., description="Media-stream identifier from the start event")
    media: MediaPayload

    @field_validator("streamSid")
    def validate_stream_sid(cls, v):
        """Outbound audio must always be addressed."""
        if not v:
            raise ValueError("streamSid is required for outbound media")
        return v
