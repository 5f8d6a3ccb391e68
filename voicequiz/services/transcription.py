"""
Speech-to-text sources consumed by the turn engines.

A source is started, yields `TranscriptUpdate`s until stopped, and can then
be started again. Starting a source that is already capturing raises
`CaptureActiveError`; callers stop prior capture first.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Protocol

from voicequiz.core.errors import CaptureActiveError
from voicequiz.core.logging import get_voice_logger
from voicequiz.services.event_router import RealtimeEvent, UserTranscriptCompleted

voice_log = get_voice_logger(__name__)

_STOP = object()


@dataclass(frozen=True)
class TranscriptUpdate:
    """
    Text of the current utterance so far.

    Partial updates are cumulative within one utterance; a final update
    closes the utterance and the next update starts a new one.
    """

    text: str
    is_final: bool


class TranscriptionSource(Protocol):
    @property
    def is_active(self) -> bool:
        ...

    def start(self) -> AsyncIterator[TranscriptUpdate]:
        ...

    async def stop(self) -> None:
        ...


class QueuedTranscriptionSource:
    """
    Transcription source fed through `push()`.

    Audio capture drivers push recognizer output here; the realtime-backed
    source below pushes server transcripts.
    """

    def __init__(self, name: str = "transcription"):
        self.name = name
        self._queue: Optional[asyncio.Queue] = None

    @property
    def is_active(self) -> bool:
        return self._queue is not None

    def start(self) -> AsyncIterator[TranscriptUpdate]:
        if self._queue is not None:
            raise CaptureActiveError(message=f"{self.name} capture already active")
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue
        self._on_start()
        voice_log.info("transcription_started", source=self.name)
        return self._drain(queue)

    async def stop(self) -> None:
        queue = self._queue
        if queue is None:
            return
        self._queue = None
        self._on_stop()
        queue.put_nowait(_STOP)
        voice_log.info("transcription_stopped", source=self.name)

    def push(self, text: str, is_final: bool = False) -> None:
        if self._queue is None:
            return
        self._queue.put_nowait(TranscriptUpdate(text=text, is_final=is_final))
        voice_log.transcript(session_id=None, transcript_length=len(text), is_final=is_final)

    async def _drain(self, queue: asyncio.Queue) -> AsyncIterator[TranscriptUpdate]:
        while True:
            item = await queue.get()
            if item is _STOP:
                return
            yield item

    def _on_start(self) -> None:
        pass

    def _on_stop(self) -> None:
        pass


class RealtimeTranscriptionSource(QueuedTranscriptionSource):
    """Final user transcripts delivered by the realtime session."""

    def __init__(self, session):
        super().__init__(name="realtime")
        self._session = session
        self._remove_listener: Optional[Callable[[], None]] = None

    def _on_start(self) -> None:
        self._remove_listener = self._session.add_event_listener(self._handle_event)

    def _on_stop(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    def _handle_event(self, event: RealtimeEvent) -> None:
        if isinstance(event, UserTranscriptCompleted):
            text = event.text.strip()
            if text:
                self.push(text, is_final=True)
