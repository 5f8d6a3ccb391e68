"""
Realtime event routing.

Inbound data-channel messages are decoded into a small envelope, dispatched
on `type` to a typed pydantic payload, and returned as one of the domain
event dataclasses below. Anything that cannot be decoded becomes an
`UnknownEvent` carrying the raw envelope, so new server event types never
break the stream.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from voicequiz.core.errors import ProtocolDecodeError
from voicequiz.core.logging import get_logger

logger = get_logger(__name__)


# ==============================================================================
# Wire payloads
# ==============================================================================


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Envelope(_Payload):
    type: str
    event_id: Optional[str] = None


class _TranscriptionConfig(_Payload):
    model: Optional[str] = None


class _AudioInput(_Payload):
    transcription: Optional[_TranscriptionConfig] = None


class _Audio(_Payload):
    input: Optional[_AudioInput] = None


class _SessionInfo(_Payload):
    id: str
    audio: Optional[_Audio] = None
    # Pre-GA session shape
    input_audio_transcription: Optional[_TranscriptionConfig] = None

    @property
    def transcription_enabled(self) -> bool:
        if self.input_audio_transcription is not None:
            return True
        return bool(self.audio and self.audio.input and self.audio.input.transcription)


class SessionCreatedPayload(_Payload):
    session: _SessionInfo


class SpeechBoundaryPayload(_Payload):
    item_id: Optional[str] = None
    audio_start_ms: Optional[int] = None
    audio_end_ms: Optional[int] = None


class TranscriptionCompletedPayload(_Payload):
    item_id: Optional[str] = None
    transcript: str


class TranscriptDeltaPayload(_Payload):
    response_id: Optional[str] = None
    delta: str


class TranscriptDonePayload(_Payload):
    response_id: Optional[str] = None
    transcript: str


class _ErrorDetail(_Payload):
    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


class ErrorPayload(_Payload):
    error: _ErrorDetail


# ==============================================================================
# Domain events
# ==============================================================================


@dataclass(frozen=True)
class SessionCreated:
    session_id: str
    transcription_enabled: bool


@dataclass(frozen=True)
class SpeechStarted:
    pass


@dataclass(frozen=True)
class SpeechStopped:
    pass


@dataclass(frozen=True)
class UserTranscriptCompleted:
    text: str


@dataclass(frozen=True)
class AITranscriptDelta:
    partial_text: str


@dataclass(frozen=True)
class AITranscriptDone:
    full_text: str


@dataclass(frozen=True)
class ProtocolErrorEvent:
    code: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class UnknownEvent:
    """Unrecognized or undecodable message; `type` is None when absent."""

    type: Optional[str]
    envelope: Dict[str, Any] = field(default_factory=dict)
    raw: Optional[str] = None


RealtimeEvent = Union[
    SessionCreated,
    SpeechStarted,
    SpeechStopped,
    UserTranscriptCompleted,
    AITranscriptDelta,
    AITranscriptDone,
    ProtocolErrorEvent,
    UnknownEvent,
]


_Handler = Callable[[Any], RealtimeEvent]

_ROUTES: Dict[str, Tuple[Type[_Payload], _Handler]] = {
    "session.created": (
        SessionCreatedPayload,
        lambda p: SessionCreated(session_id=p.session.id, transcription_enabled=p.session.transcription_enabled),
    ),
    "input_audio_buffer.speech_started": (SpeechBoundaryPayload, lambda p: SpeechStarted()),
    "input_audio_buffer.speech_stopped": (SpeechBoundaryPayload, lambda p: SpeechStopped()),
    "conversation.item.input_audio_transcription.completed": (
        TranscriptionCompletedPayload,
        lambda p: UserTranscriptCompleted(text=p.transcript),
    ),
    "response.audio_transcript.delta": (TranscriptDeltaPayload, lambda p: AITranscriptDelta(partial_text=p.delta)),
    "response.output_audio_transcript.delta": (
        TranscriptDeltaPayload,
        lambda p: AITranscriptDelta(partial_text=p.delta),
    ),
    "response.audio_transcript.done": (TranscriptDonePayload, lambda p: AITranscriptDone(full_text=p.transcript)),
    "response.output_audio_transcript.done": (
        TranscriptDonePayload,
        lambda p: AITranscriptDone(full_text=p.transcript),
    ),
    "error": (ErrorPayload, lambda p: ProtocolErrorEvent(code=p.error.code, message=p.error.message)),
}


class EventRouter:
    """Stateless classifier; `route()` never raises."""

    def route(self, message: Union[str, bytes]) -> RealtimeEvent:
        raw = message.decode("utf-8", errors="replace") if isinstance(message, bytes) else message
        try:
            return self._decode(raw)
        except ProtocolDecodeError as e:
            envelope = e.extra.get("envelope") or {}
            event_type = envelope.get("type")
            return UnknownEvent(
                type=event_type if isinstance(event_type, str) else None,
                envelope=envelope,
                raw=raw,
            )

    def _decode(self, raw: str) -> RealtimeEvent:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ProtocolDecodeError(message="Message is not JSON", original_error=e) from e

        if not isinstance(data, dict):
            raise ProtocolDecodeError(message="Message is not a JSON object")

        try:
            envelope = Envelope.model_validate(data)
        except ValidationError as e:
            raise ProtocolDecodeError(message="Message has no type", envelope=data) from e

        route = _ROUTES.get(envelope.type)
        if route is None:
            logger.debug("unknown_realtime_event", event_type=envelope.type)
            return UnknownEvent(type=envelope.type, envelope=data, raw=raw)

        payload_cls, handler = route
        try:
            payload = payload_cls.model_validate(data)
        except ValidationError as e:
            raise ProtocolDecodeError(
                message=f"Malformed {envelope.type} payload",
                envelope=data,
            ) from e
        return handler(payload)


def session_update_enable_transcription(model: str = "whisper-1") -> Dict[str, Any]:
    """Command that turns on input transcription for the session."""
    return {
        "type": "session.update",
        "session": {
            "type": "realtime",
            "audio": {"input": {"transcription": {"model": model}}},
        },
    }
