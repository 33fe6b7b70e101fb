"""Epoch Scheduler: immediate first run, then fixed-interval recurring runs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class EpochScheduler:
    """Drives a zero-argument async callback on a fixed interval.

    Each tick awaits the callback before the next one is armed, so invocations
    never overlap. Ticks missed while a callback overran are skipped.
    The first invocation always runs, even when ``stop()`` follows ``start()``
    immediately. ``stop()`` prevents future ticks; it does not cancel an
    in-flight callback.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._in_progress = False

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def cycle_in_progress(self) -> bool:
        return self._in_progress

    def is_active(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start ticking; must be called from within a running event loop."""
        if self._running:
            logger.warning("scheduler_already_running")
            return

        loop = asyncio.get_running_loop()
        self._running = True
        self._stop_event = asyncio.Event()
        logger.info("scheduler_started interval_seconds=%s", self._interval_seconds)
        self._task = loop.create_task(self._run_loop(self._stop_event), name="epoch-scheduler")

    def stop(self) -> None:
        if not self._running:
            logger.warning("scheduler_not_running")
            return

        logger.info("scheduler_stopping")
        self._running = False
        assert self._stop_event is not None
        self._stop_event.set()

    async def wait_closed(self) -> None:
        """Wait for the loop task to exit after ``stop()``."""
        if self._task is not None:
            await self._task

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        await self._run_epoch(initial=True)
        while not stop_event.is_set():
            next_tick += self._interval_seconds
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self._interval_seconds) + 1
                logger.warning("scheduler_overrun skipped_ticks=%s", missed)
                next_tick += missed * self._interval_seconds

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_tick - loop.time())
            except TimeoutError:
                await self._run_epoch(initial=False)
        logger.info("scheduler_stopped")

    async def _run_epoch(self, *, initial: bool) -> None:
        self._in_progress = True
        try:
            await self._callback()
        except Exception:
            logger.exception("scheduled_epoch_failed initial=%s", initial)
        finally:
            self._in_progress = False
