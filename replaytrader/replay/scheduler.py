"""PeriodicTicker: cancellable asyncio ticker with a changeable interval.

The ticker sleeps on an event with a timeout, so pause, resume, interval
changes and stop all wake it immediately instead of waiting out the current
interval. Any wake-up other than a timeout restarts a full interval wait.

Usage::

    ticker = PeriodicTicker(controller.tick, interval=1.0)
    ticker.start()
    ...
    ticker.set_interval(0.25)
    await ticker.stop()
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Callback returns False to end the ticker loop (e.g. replay completed).
TickCallback = Callable[[], Awaitable["bool | None"]]


class PeriodicTicker:
    def __init__(self, callback: TickCallback, interval: float, name: str = "replay-ticker") -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self._interval = interval
        self._name = name
        self._wake = asyncio.Event()
        self._stopping = False
        self._paused = False
        self._task: asyncio.Task | None = None
        self.tick_count = 0
        self.error_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    def start(self) -> None:
        if self.is_running:
            raise RuntimeError(f"{self._name} is already running")
        self._stopping = False
        self._paused = False
        self._wake.clear()
        self._task = asyncio.create_task(self._run(), name=self._name)
        logger.debug("%s: started with interval %.3fs", self._name, self._interval)

    def set_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {seconds}")
        self._interval = seconds
        self._wake.set()

    def pause(self) -> None:
        self._paused = True
        self._wake.set()

    def resume(self) -> None:
        self._paused = False
        self._wake.set()

    async def stop(self) -> None:
        """Stop the loop and wait for an in-flight tick to finish.

        Safe to call from inside the tick callback itself; in that case the
        loop exits once the callback returns.
        """
        self._stopping = True
        self._wake.set()
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        await task
        logger.debug("%s: stopped after %d ticks", self._name, self.tick_count)

    async def wait(self) -> None:
        """Block until the loop exits on its own or via stop()."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        while not self._stopping:
            if self._paused:
                await self._wake.wait()
                self._wake.clear()
                continue

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
                # Woken early: stop, pause, resume or a new interval
                self._wake.clear()
                continue
            except asyncio.TimeoutError:
                pass

            if self._stopping or self._paused:
                continue

            try:
                keep_going = await self._callback()
            except Exception:
                self.error_count += 1
                logger.exception("%s: tick callback failed", self._name)
                continue
            self.tick_count += 1
            if keep_going is False:
                break
