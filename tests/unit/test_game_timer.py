"""
Unit tests for the pausable game timer.
"""

import asyncio

import pytest

from voicequiz.game.game_timer import GameTimer


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestGameTimer:
    @pytest.mark.asyncio
    async def test_remaining_tracks_clock_and_pause(self):
        clock = FakeClock()
        timer = GameTimer(duration=60.0, tick_interval=10.0, clock=clock)
        timer.start()
        clock.now += 10
        assert timer.remaining == pytest.approx(50.0)

        timer.pause()
        assert not timer.is_running
        clock.now += 30
        assert timer.remaining == pytest.approx(50.0)

        timer.start()
        clock.now += 5
        assert timer.remaining == pytest.approx(45.0)
        timer.stop()

    @pytest.mark.asyncio
    async def test_expires_and_calls_back(self):
        expired = asyncio.Event()
        ticks = []

        async def on_expire():
            expired.set()

        timer = GameTimer(duration=0.05, on_expire=on_expire, on_tick=ticks.append, tick_interval=0.01)
        timer.start()
        await asyncio.wait_for(expired.wait(), timeout=1.0)
        assert not timer.is_running
        assert timer.remaining == 0.0
        assert ticks and ticks[-1] == 0.0

    @pytest.mark.asyncio
    async def test_pause_stops_expiry(self):
        expired = []

        async def on_expire():
            expired.append(True)

        timer = GameTimer(duration=0.05, on_expire=on_expire, tick_interval=0.01)
        timer.start()
        timer.pause()
        await asyncio.sleep(0.1)
        assert expired == []
        assert timer.remaining > 0
