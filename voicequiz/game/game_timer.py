"""
Pausable countdown timer for a timed game.

Ticks every `tick_interval` seconds on the running event loop and awaits
`on_expire` once the remaining time reaches zero.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from voicequiz.core.logging import get_logger

logger = get_logger(__name__)


class GameTimer:
    def __init__(
        self,
        duration: float = 60.0,
        on_expire: Optional[Callable[[], Awaitable[None]]] = None,
        on_tick: Optional[Callable[[float], None]] = None,
        tick_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.duration = duration
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._tick_interval = tick_interval
        self._clock = clock

        self._elapsed_before_run = 0.0
        self._run_started_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._run_started_at is not None

    @property
    def elapsed(self) -> float:
        elapsed = self._elapsed_before_run
        if self._run_started_at is not None:
            elapsed += self._clock() - self._run_started_at
        return elapsed

    @property
    def remaining(self) -> float:
        return max(0.0, self.duration - self.elapsed)

    def start(self) -> None:
        if self.is_running:
            return
        self._run_started_at = self._clock()
        self._task = asyncio.create_task(self._run())

    def pause(self) -> None:
        if not self.is_running:
            return
        self._elapsed_before_run = self.elapsed
        self._run_started_at = None
        self._cancel_task()

    def stop(self) -> None:
        self.pause()

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        try:
            while self.is_running:
                await asyncio.sleep(min(self._tick_interval, max(self.remaining, 0.0)))
                if not self.is_running:
                    return
                remaining = self.remaining
                if self._on_tick:
                    self._on_tick(remaining)
                if remaining <= 0:
                    self._elapsed_before_run = self.duration
                    self._run_started_at = None
                    self._task = None
                    logger.info("game_timer_expired", duration=self.duration)
                    if self._on_expire:
                        await self._on_expire()
                    return
        except asyncio.CancelledError:
            pass
