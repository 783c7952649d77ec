"""Typed definitions for voice agent events and message payloads."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


class VoiceEvent(str, Enum):
    """Event names emitted by a voice agent client."""

    CALL_START = "call-start"
    CALL_END = "call-end"
    MESSAGE = "message"
    SPEECH_START = "speech-start"
    SPEECH_END = "speech-end"
    ERROR = "error"


Role = Literal["user", "system", "assistant"]


# -------------------------
# Transcript
# -------------------------


class SavedMessage(BaseModel):
    """A finalized transcript line. Frozen once appended to a transcript."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


# -------------------------
# Messages (voice agent -> client)
# -------------------------


class _WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TranscriptMessage(_WireMessage):
    type: Literal["transcript"] = "transcript"
    role: Role
    transcript_type: Literal["partial", "final"] = Field(alias="transcriptType")
    transcript: str

    @property
    def is_final(self) -> bool:
        return self.transcript_type == "final"

    def to_saved_message(self) -> SavedMessage:
        return SavedMessage(role=self.role, content=self.transcript)


class SpeechUpdateMessage(_WireMessage):
    type: Literal["speech-update"] = "speech-update"
    status: Literal["started", "stopped"]
    role: Role


class StatusUpdateMessage(_WireMessage):
    type: Literal["status-update"] = "status-update"
    status: str
    ended_reason: Optional[str] = Field(default=None, alias="endedReason")


KnownMessage = Union[TranscriptMessage, SpeechUpdateMessage, StatusUpdateMessage]

_known_message_adapter: TypeAdapter[KnownMessage] = TypeAdapter(
    Annotated[KnownMessage, Field(discriminator="type")]
)


def parse_message(raw: Any) -> Optional[KnownMessage]:
    """Parse a raw ``message`` payload. Returns None for message kinds we don't track."""
    if isinstance(raw, (TranscriptMessage, SpeechUpdateMessage, StatusUpdateMessage)):
        return raw
    if not isinstance(raw, dict):
        return None
    if raw.get("type") not in ("transcript", "speech-update", "status-update"):
        return None
    try:
        return _known_message_adapter.validate_python(raw)
    except ValidationError:
        return None


def final_transcript(raw: Any) -> Optional[SavedMessage]:
    """Return the SavedMessage for a finalized transcript line, else None."""
    message = parse_message(raw)
    if isinstance(message, TranscriptMessage) and message.is_final:
        return message.to_saved_message()
    return None


# -------------------------
# Errors
# -------------------------


def _field(payload: Any, name: str) -> Any:
    if isinstance(payload, dict):
        return payload.get(name)
    return getattr(payload, name, None)


def describe_error(payload: Any) -> str:
    """
    Turn a voice agent error payload into a human-readable reason.

    Preference order: an explicit ``message``, a plain string payload, the
    ``code`` as ``Error code: <code>``, and finally a generic fallback.
    """
    message = _field(payload, "message")
    if not message and isinstance(payload, BaseException):
        message = str(payload)
    if message:
        return message if isinstance(message, str) else str(message)
    if isinstance(payload, str) and payload:
        return payload
    code = _field(payload, "code")
    if code:
        return f"Error code: {code}"
    return UNKNOWN_ERROR_MESSAGE


def error_details(payload: Any) -> Dict[str, Any]:
    """Collect the loggable fields of an error payload."""
    return {
        "error": payload,
        "message": _field(payload, "message"),
        "code": _field(payload, "code"),
        "details": _field(payload, "details"),
    }


__all__ = [
    "VoiceEvent",
    "Role",
    "SavedMessage",
    "TranscriptMessage",
    "SpeechUpdateMessage",
    "StatusUpdateMessage",
    "KnownMessage",
    "parse_message",
    "final_transcript",
    "describe_error",
    "error_details",
    "UNKNOWN_ERROR_MESSAGE",
]
