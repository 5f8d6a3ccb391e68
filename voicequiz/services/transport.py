"""
Peer transport contract used by RealtimeSession.

The ICE/SDP machinery lives behind this interface. A transport carries the
media stream plus one ordered, reliable message channel and reports its
connection state through callbacks.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Protocol, Union


class TransportState(str, Enum):
    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


StateCallback = Callable[[TransportState], None]
MessageCallback = Callable[[Union[str, bytes]], None]


class MessageChannel(Protocol):
    label: str

    def send(self, data: str) -> None:
        ...

    def close(self) -> None:
        ...


class PeerTransport(Protocol):
    """
    Media + data transport negotiated by a single offer/answer exchange.

    Callbacks may be invoked from the event loop thread only.
    """

    def create_message_channel(self, label: str, on_message: MessageCallback) -> MessageChannel:
        ...

    async def create_offer(self) -> str:
        ...

    async def set_remote_answer(self, sdp: str) -> None:
        ...

    def on_state_change(self, callback: StateCallback) -> None:
        ...

    async def close(self) -> None:
        ...


TransportFactory = Callable[[], PeerTransport]
