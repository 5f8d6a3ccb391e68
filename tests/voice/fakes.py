"""
Test doubles for the peer transport and speech output.
"""

import asyncio
import json
from typing import List, Optional

from voicequiz.game.turn_engine import EngineTimings
from voicequiz.game.word_manager import Category, WordDeck
from voicequiz.services.transport import TransportState


class FakeChannel:
    def __init__(self, label, on_message):
        self.label = label
        self.on_message = on_message
        self.sent: List[str] = []
        self.closed = False

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True

    @property
    def sent_commands(self):
        return [json.loads(s) for s in self.sent]


class FakeTransport:
    """Completes negotiation when the answer is applied unless `auto_connect` is off."""

    def __init__(self, auto_connect=True, offer="v=0 offer"):
        self.auto_connect = auto_connect
        self.offer = offer
        self.answer: Optional[str] = None
        self.channel: Optional[FakeChannel] = None
        self.closed = False
        self._state_callback = None

    def create_message_channel(self, label, on_message):
        self.channel = FakeChannel(label, on_message)
        return self.channel

    async def create_offer(self):
        return self.offer

    async def set_remote_answer(self, sdp):
        self.answer = sdp
        if self.auto_connect:
            asyncio.get_running_loop().call_soon(self.set_state, TransportState.CONNECTED)

    def on_state_change(self, callback):
        self._state_callback = callback

    def set_state(self, state):
        if self._state_callback is not None:
            self._state_callback(state)

    def emit(self, message):
        self.channel.on_message(json.dumps(message))

    async def close(self):
        self.closed = True


class FakeSpeech:
    def __init__(self):
        self.is_speaking = False
        self.is_paused = False
        self.spoken: List[str] = []
        self.resumed = 0
        self.paused = 0

    def speak(self, text):
        self.spoken.append(text)
        self.is_speaking = True
        self.is_paused = False

    def stop(self):
        self.is_speaking = False
        self.is_paused = False

    def pause(self):
        self.paused += 1
        self.is_speaking = False
        self.is_paused = True

    def resume(self):
        self.resumed += 1
        self.is_speaking = True
        self.is_paused = False


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


FAST_TIMINGS = EngineTimings(
    round_duration=30.0,
    correct_pause=0.01,
    retry_pause=0.02,
    grace_window=0.05,
    penalty_delay=0.01,
    silence_gap=0.05,
    warmup=0.0,
    word_trigger=7,
    guess_history=5,
    tick_interval=0.5,
)


def make_deck(*words):
    return WordDeck(Category(id="food", title="Food", words=list(words)))

