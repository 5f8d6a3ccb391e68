"""
Realtime Session

Owns one connection to the realtime peer endpoint:

1. obtain a credential from the CredentialBroker
2. create the transport and its ordered `oai-events` message channel
3. generate the local offer and POST it to the peer over HTTPS
4. apply the answer and wait for the transport to report `connected`

Inbound channel messages are classified by the EventRouter and exposed in
arrival order through `events()`. Commands are JSON objects sent back over
the same channel.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

import httpx

from voicequiz.core.config import settings
from voicequiz.core.errors import (
    TRANS_001,
    TRANS_002,
    TRANS_004,
    TRANS_005,
    TRANS_006,
    TRANS_007,
    QuizError,
    SessionStateError,
    TransportNegotiationError,
    record_quiz_error,
)
from voicequiz.core.logging import get_voice_logger
from voicequiz.game.models import GameMode
from voicequiz.services.credential_broker import Credential, CredentialBroker
from voicequiz.services.event_router import (
    EventRouter,
    RealtimeEvent,
    SessionCreated,
    session_update_enable_transcription,
)
from voicequiz.services.transport import MessageChannel, PeerTransport, TransportFactory, TransportState

voice_log = get_voice_logger(__name__)

DATA_CHANNEL_LABEL = "oai-events"


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionConnectionState:
    phase: ConnectionPhase
    reason: Optional[str] = None

    def __str__(self) -> str:
        if self.reason:
            return f"{self.phase.value}({self.reason})"
        return self.phase.value


_DISCONNECTED = SessionConnectionState(ConnectionPhase.DISCONNECTED)
_END_OF_STREAM = object()

StateListener = Callable[[SessionConnectionState], None]
EventListener = Callable[[RealtimeEvent], None]


class RealtimeSession:
    """
    Connection lifecycle plus typed event stream for one realtime peer.

    Only `disconnected` permits `connect()`. A failed attempt stays `failed`
    until the caller runs `disconnect()`.
    """

    def __init__(
        self,
        broker: CredentialBroker,
        transport_factory: TransportFactory,
        peer_url: Optional[str] = None,
        connect_timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        router: Optional[EventRouter] = None,
        transcription_model: Optional[str] = None,
    ):
        self.broker = broker
        self.transport_factory = transport_factory
        self.peer_url = peer_url or settings.REALTIME_CALLS_URL
        self.connect_timeout = connect_timeout if connect_timeout is not None else settings.CONNECT_TIMEOUT_SEC
        self.router = router or EventRouter()
        self.transcription_model = transcription_model or settings.REALTIME_TRANSCRIPTION_MODEL

        self._http_client = http_client
        self._owns_http_client = http_client is None

        self._state = _DISCONNECTED
        self._listeners: List[StateListener] = []
        self._event_listeners: List[EventListener] = []
        self._transport: Optional[PeerTransport] = None
        self._channel: Optional[MessageChannel] = None
        self._pending_channel: Optional[MessageChannel] = None
        self._connected: Optional[asyncio.Future] = None
        self._events: Optional[asyncio.Queue] = None
        self._connect_started_at: Optional[float] = None
        self.session_id: Optional[str] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.phase is ConnectionPhase.CONNECTED

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def add_event_listener(self, listener: EventListener) -> Callable[[], None]:
        """Push-style delivery of routed events, called in arrival order."""
        self._event_listeners.append(listener)

        def remove() -> None:
            if listener in self._event_listeners:
                self._event_listeners.remove(listener)

        return remove

    def _set_state(self, phase: ConnectionPhase, reason: Optional[str] = None, trigger: Optional[str] = None) -> None:
        previous = self._state
        self._state = SessionConnectionState(phase, reason)
        voice_log.state_change(
            session_id=self.session_id or "pending",
            from_state=str(previous),
            to_state=str(self._state),
            trigger=trigger,
        )
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                voice_log.error("realtime_state_listener_failed", session_id=self.session_id, error=repr(e))

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(
        self,
        mode: GameMode,
        word: Optional[str] = None,
        taboo: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Negotiate a new connection.

        Raises:
            SessionStateError: not currently `disconnected`
            CredentialError: credential fetch failed (state becomes `failed`)
            TransportNegotiationError: offer/answer or transport failure,
                or the overall timeout elapsed
        """
        if self._state.phase is not ConnectionPhase.DISCONNECTED:
            raise SessionStateError(message=f"Cannot connect while {self._state}")

        self._connect_started_at = time.monotonic()
        self._events = asyncio.Queue()
        self._connected = asyncio.get_running_loop().create_future()
        self._set_state(ConnectionPhase.CONNECTING, trigger="connect")
        voice_log.session_start(session_id="pending", mode=GameMode(mode).value)

        try:
            await asyncio.wait_for(self._negotiate(mode, word, taboo), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            error = TransportNegotiationError(TRANS_005, message=f"Connection timed out after {self.connect_timeout}s")
            record_quiz_error(error.error_code)
            await self._fail("timeout")
            raise error from None
        except QuizError as e:
            record_quiz_error(e.error_code)
            await self._fail(e.message)
            raise

        voice_log.latency(
            "realtime_connect",
            (time.monotonic() - self._connect_started_at) * 1000,
            session_id=self.session_id,
        )

    async def _negotiate(self, mode: GameMode, word: Optional[str], taboo: Optional[Iterable[str]]) -> None:
        credential = await self.broker.request_credential(mode, word=word, taboo=taboo)

        try:
            transport = self.transport_factory()
            self._transport = transport
            transport.on_state_change(self._handle_transport_state)

            # Channel must exist before the offer so it is part of the negotiation.
            self._pending_channel = transport.create_message_channel(DATA_CHANNEL_LABEL, self._handle_message)
        except Exception as e:
            raise TransportNegotiationError(TRANS_007, original_error=e) from e

        try:
            offer = await transport.create_offer()
        except Exception as e:
            raise TransportNegotiationError(TRANS_001, original_error=e) from e
        if not offer:
            raise TransportNegotiationError(TRANS_001, message="Transport produced an empty offer")

        self._channel = self._pending_channel
        self._pending_channel = None

        answer = await self._exchange_offer(offer, credential)

        try:
            await transport.set_remote_answer(answer)
        except Exception as e:
            raise TransportNegotiationError(TRANS_004, original_error=e) from e

        await self._connected

    async def _exchange_offer(self, offer: str, credential: Credential) -> str:
        client = await self._get_http_client()
        start = time.monotonic()
        try:
            response = await client.post(
                self.peer_url,
                content=offer.encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {credential.value}",
                    "Content-Type": "application/sdp",
                },
            )
        except httpx.HTTPError as e:
            raise TransportNegotiationError(TRANS_002, original_error=e) from e

        voice_log.latency("sdp_exchange", (time.monotonic() - start) * 1000, status_code=response.status_code)

        if response.status_code != 201:
            raise TransportNegotiationError(
                message=f"Peer endpoint returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        answer = response.text
        if not answer.strip():
            raise TransportNegotiationError(TRANS_004, status_code=response.status_code, body=answer)
        return answer

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=settings.OPENAI_TIMEOUT_SEC)
            self._owns_http_client = True
        return self._http_client

    async def _fail(self, reason: str) -> None:
        await self._teardown_transport()
        self._set_state(ConnectionPhase.FAILED, reason=reason, trigger="connect_failed")
        self._close_event_stream()

    async def disconnect(self) -> None:
        """Close channel and transport; always ends in `disconnected`."""
        was = self._state.phase
        await self._teardown_transport()
        self._close_event_stream()
        if was is not ConnectionPhase.DISCONNECTED:
            duration_ms = 0.0
            if self._connect_started_at is not None:
                duration_ms = (time.monotonic() - self._connect_started_at) * 1000
            voice_log.session_end(session_id=self.session_id or "pending", duration_ms=duration_ms, status=was.value)
            self._set_state(ConnectionPhase.DISCONNECTED, trigger="disconnect")
        self.session_id = None
        self._connect_started_at = None

    async def aclose(self) -> None:
        await self.disconnect()
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
        self._http_client = None

    async def _teardown_transport(self) -> None:
        channel = self._channel or self._pending_channel
        transport = self._transport
        self._channel = None
        self._pending_channel = None
        self._transport = None

        if self._connected is not None and not self._connected.done():
            self._connected.cancel()
        self._connected = None

        if channel is not None:
            channel.close()
        if transport is not None:
            await transport.close()

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _handle_transport_state(self, state: TransportState) -> None:
        phase = self._state.phase
        connected = self._connected

        if state is TransportState.CONNECTED:
            if phase is ConnectionPhase.CONNECTING:
                if connected is not None and not connected.done():
                    connected.set_result(None)
                self._set_state(ConnectionPhase.CONNECTED, trigger="transport_connected")
            return

        if state is TransportState.FAILED:
            if phase is ConnectionPhase.CONNECTING:
                if connected is not None and not connected.done():
                    connected.set_exception(TransportNegotiationError(TRANS_006))
            elif phase is ConnectionPhase.CONNECTED:
                record_quiz_error(TRANS_006)
                self._set_state(ConnectionPhase.FAILED, reason="transport failed", trigger="transport_failed")
                self._close_event_stream()
            return

        if state in (TransportState.DISCONNECTED, TransportState.CLOSED) and phase is ConnectionPhase.CONNECTED:
            self._set_state(ConnectionPhase.DISCONNECTED, trigger="transport_disconnected")
            self._close_event_stream()

    def _handle_message(self, message: Union[str, bytes]) -> None:
        event = self.router.route(message)
        voice_log.channel_message(
            session_id=self.session_id,
            direction="receive",
            message_type=type(event).__name__,
            size_bytes=len(message),
        )

        if isinstance(event, SessionCreated):
            self.session_id = event.session_id
            if not event.transcription_enabled:
                self.enable_transcription()

        if self._events is not None:
            self._events.put_nowait(event)
        for listener in list(self._event_listeners):
            try:
                listener(event)
            except Exception as e:
                voice_log.error(
                    "realtime_event_listener_failed",
                    session_id=self.session_id,
                    event_type=type(event).__name__,
                    error=repr(e),
                )

    def _close_event_stream(self) -> None:
        if self._events is not None:
            self._events.put_nowait(_END_OF_STREAM)
            self._events = None

    # ------------------------------------------------------------------
    # Events and commands
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        """Routed events in arrival order until the connection ends."""
        queue = self._events
        if queue is None:
            return
        while True:
            item = await queue.get()
            if item is _END_OF_STREAM:
                return
            yield item

    def send(self, command: Dict[str, Any]) -> bool:
        """Serialize a command onto the message channel; False when no channel."""
        channel = self._channel
        if channel is None:
            voice_log.warning("realtime_send_without_channel", session_id=self.session_id, type=command.get("type"))
            return False
        data = json.dumps(command)
        channel.send(data)
        voice_log.channel_message(
            session_id=self.session_id,
            direction="send",
            message_type=command.get("type", "unknown"),
            size_bytes=len(data),
        )
        return True

    def enable_transcription(self) -> bool:
        return self.send(session_update_enable_transcription(self.transcription_model))

    def cancel_response(self) -> bool:
        return self.send({"type": "response.cancel"})

    def create_response(self, instructions: Optional[str] = None) -> bool:
        command: Dict[str, Any] = {"type": "response.create"}
        if instructions:
            command["response"] = {"instructions": instructions}
        return self.send(command)
