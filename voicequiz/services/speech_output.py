"""
Speech output used for hints, guesses and feedback phrases.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from voicequiz.core.logging import get_voice_logger
from voicequiz.services.event_router import AITranscriptDelta, AITranscriptDone, RealtimeEvent

voice_log = get_voice_logger(__name__)


class SpeechOutput(Protocol):
    @property
    def is_speaking(self) -> bool:
        ...

    @property
    def is_paused(self) -> bool:
        ...

    def speak(self, text: str) -> None:
        ...

    def stop(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...


class RealtimeSpeechOutput:
    """
    Speaks through the realtime session's audio response.

    The peer cannot pause mid-utterance, so `pause()` cancels the response
    and `resume()` asks for the same text again.
    """

    def __init__(self, session):
        self._session = session
        self._current_text: Optional[str] = None
        self._speaking = False
        self._paused = False
        self._remove_listener: Optional[Callable[[], None]] = session.add_event_listener(self._handle_event)

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_paused(self) -> bool:
        return self._paused

    def speak(self, text: str) -> None:
        if self._speaking:
            self._session.cancel_response()
        self._current_text = text
        self._paused = False
        self._speaking = self._session.create_response(
            instructions=f'Say exactly the following and nothing else: "{text}"'
        )
        voice_log.info("speech_output_speak", session_id=self._session.session_id, text_length=len(text))

    def stop(self) -> None:
        if self._speaking:
            self._session.cancel_response()
        self._speaking = False
        self._paused = False
        self._current_text = None

    def pause(self) -> None:
        if not self._speaking:
            return
        self._session.cancel_response()
        self._speaking = False
        self._paused = True

    def resume(self) -> None:
        if not self._paused or self._current_text is None:
            return
        self.speak(self._current_text)

    def close(self) -> None:
        self.stop()
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    def _handle_event(self, event: RealtimeEvent) -> None:
        if isinstance(event, AITranscriptDelta) and not self._paused:
            self._speaking = True
        elif isinstance(event, AITranscriptDone):
            self._speaking = False
