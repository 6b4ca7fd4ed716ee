"""
Realtime Event Schema
=====================

This module defines the Pydantic models for events exchanged with the
realtime endpoint, both live (over the WebSocket) and synthesized (by the
batch vision completion path).

Wire Contract:
    One UTF-8 JSON object per WebSocket text frame:
    {
        "event_id": "event_123",
        "type": "input_audio_buffer.append_video_frame",
        "client_timestamp": 1707321234567,
        "video_frame": "<base64 JPEG>"
    }

Design Rules:
    - Unset fields are omitted when serializing
    - Unknown server fields are preserved (extra="allow")
    - video_frame holds raw bytes in memory, base64 on the wire
    - type is a plain string so unknown event types still parse

Example:
    from glm_realtime.models.events import Event, EventType

    event = Event.from_json(raw)
    if event.type == EventType.RESPONSE_TEXT_DELTA:
        print(event.delta, end="")
"""

import base64
import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


REDACTED = "Ignored for logging"


class EventType(str, Enum):
    """
    Event type identifiers used by the realtime protocol.

    Client events are sent by this library, server events are received
    from the endpoint or synthesized by the batch completion path.
    """

    # Client events
    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_BUFFER_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_BUFFER_COMMIT = "input_audio_buffer.commit"
    INPUT_AUDIO_BUFFER_CLEAR = "input_audio_buffer.clear"
    INPUT_VIDEO_FRAME_APPEND = "input_audio_buffer.append_video_frame"
    CONVERSATION_ITEM_CREATE = "conversation.item.create"
    RESPONSE_CREATE = "response.create"
    RESPONSE_CANCEL = "response.cancel"

    # Server events
    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    CONVERSATION_ITEM_CREATED = "conversation.item.created"
    RESPONSE_CREATED = "response.created"
    RESPONSE_OUTPUT_ITEM_ADDED = "response.output_item.added"
    RESPONSE_OUTPUT_ITEM_DONE = "response.output_item.done"
    RESPONSE_TEXT_DELTA = "response.text.delta"
    RESPONSE_TEXT_DONE = "response.text.done"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_DONE = "response.audio.done"
    RESPONSE_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
    RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
    RESPONSE_DONE = "response.done"

    def __str__(self) -> str:
        return self.value


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow", use_enum_values=True)


class TTSCloned(_WireModel):
    """Cloned-voice payload carried in session beta fields."""

    audio: Optional[str] = Field(default=None, description="Base64 reference audio")
    text: Optional[str] = Field(default=None, description="Transcript of the reference audio")


class BetaFields(_WireModel):
    """Vendor beta extensions of the session configuration."""

    chat_mode: Optional[str] = None
    tts_source: Optional[str] = None
    auto_search: Optional[bool] = None
    tts_cloned: Optional[TTSCloned] = None


class SessionConfig(_WireModel):
    """Session configuration as carried by session.* events."""

    instructions: Optional[str] = None
    modalities: Optional[list[str]] = None
    voice: Optional[str] = None
    input_audio_format: Optional[str] = None
    output_audio_format: Optional[str] = None
    turn_detection: Optional[dict[str, Any]] = None
    tools: Optional[list[dict[str, Any]]] = None
    beta_fields: Optional[BetaFields] = None


class ConversationItem(_WireModel):
    """Conversation item; function call outputs carry the call correlation id."""

    id: Optional[str] = None
    type: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    output: Optional[str] = None
    content: Optional[list[dict[str, Any]]] = None


class ErrorDetail(_WireModel):
    """Error payload of an error event."""

    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    param: Optional[str] = None


class Event(_WireModel):
    """
    A single protocol event, live or synthesized.

    Identity is (type, event_id). The client stamps client_timestamp
    (milliseconds) before sending if the caller left it unset.

    Attributes:
        event_id: Event identifier
        type: Event type (see EventType)
        client_timestamp: Client-side UNIX timestamp in milliseconds
        response_id: Correlates events of one response
        item_id: Correlates events of one output item
        call_id: Correlates function call events
        delta: Incremental text or base64 audio
        text: Full text of a finished text part
        audio: Base64 audio appended to the input buffer
        video_frame: Raw JPEG bytes of one video frame
        session: Session configuration (session.* events)
        item: Conversation item (conversation.item.* events)
        error: Error detail (error events)
    """

    event_id: Optional[str] = None
    type: str
    client_timestamp: Optional[int] = None

    response_id: Optional[str] = None
    item_id: Optional[str] = None
    call_id: Optional[str] = None
    output_index: Optional[int] = None
    content_index: Optional[int] = None

    delta: Optional[str] = None
    text: Optional[str] = None
    transcript: Optional[str] = None
    audio: Optional[str] = None
    video_frame: Optional[bytes] = None

    session: Optional[SessionConfig] = None
    item: Optional[ConversationItem] = None
    error: Optional[ErrorDetail] = None

    @field_validator("video_frame", mode="before")
    @classmethod
    def _decode_video_frame(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value)
        return value

    @field_serializer("video_frame", when_used="json")
    def _encode_video_frame(self, value: Optional[bytes]) -> Optional[str]:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Event":
        """Parse one wire message. Raises pydantic.ValidationError."""
        return cls.model_validate_json(raw)

    def to_json(self) -> str:
        """Serialize for the wire, omitting unset fields."""
        return self.model_dump_json(exclude_none=True)

    def stamp(self) -> None:
        """Set client_timestamp to now unless already set."""
        if self.client_timestamp is None or self.client_timestamp <= 0:
            self.client_timestamp = int(time.time() * 1000)

    def redacted(self) -> "Event":
        """Copy with bulky audio/video payloads replaced, for logging."""
        copy = self.model_copy(deep=True)
        if copy.audio:
            copy.audio = REDACTED
        if copy.video_frame:
            copy.video_frame = None
        if copy.type == EventType.RESPONSE_AUDIO_DELTA and copy.delta:
            copy.delta = REDACTED
        beta = copy.session.beta_fields if copy.session else None
        if beta is not None and beta.tts_cloned is not None and beta.tts_cloned.audio:
            beta.tts_cloned.audio = REDACTED
        return copy

    def __repr__(self) -> str:
        """Compact repr that doesn't dump payloads."""
        return (
            f"Event(type={self.type!r}, event_id={self.event_id!r}, "
            f"response_id={self.response_id!r})"
        )
