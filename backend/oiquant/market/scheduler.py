"""Cancellable periodic refresh with a countdown for display."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum

from .models import DEFAULT_COUNTDOWN_SECONDS, RefreshCycleState

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class SchedulerState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class ScheduleHandle:
    """The tick/countdown task pair started by one RefreshScheduler.start() call.

    Ticks run as separate tasks guarded by an in-flight flag: a tick that comes
    due while the previous one is still running is skipped, never queued.
    """

    def __init__(
        self,
        interval: float,
        on_tick: TickCallback,
        cycle_state: RefreshCycleState,
        countdown_step: float,
    ) -> None:
        self.interval = interval
        self._on_tick = on_tick
        self._cycle = cycle_state
        self._countdown_step = countdown_step
        self._full_countdown = max(1, math.ceil(interval))
        self._in_flight = False
        self._tick_tasks: set[asyncio.Task] = set()
        self.ticks_started = 0
        self.skipped_ticks = 0

        self._cycle.countdown_seconds = self._full_countdown
        self._tick_loop = asyncio.create_task(self._run_ticks(), name="refresh-ticker")
        self._countdown_loop = asyncio.create_task(self._run_countdown(), name="refresh-countdown")

    @property
    def active(self) -> bool:
        return not self._tick_loop.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def reset_countdown(self) -> None:
        self._cycle.countdown_seconds = self._full_countdown

    async def cancel(self) -> None:
        """Cancel both timers and any tick still running, and wait for them to finish."""
        for task in (self._tick_loop, self._countdown_loop):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        # A tick may be the caller (on_tick stopping its own scheduler)
        pending = [t for t in self._tick_tasks if not t.done() and t is not asyncio.current_task()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d in-flight refresh tick(s)", len(pending))

    # --- Internal ---

    async def _run_ticks(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._in_flight:
                self.skipped_ticks += 1
                logger.warning("Refresh tick skipped: previous cycle still in flight")
                continue
            self._in_flight = True
            self.ticks_started += 1
            task = asyncio.create_task(self._run_one_tick(), name="refresh-tick")
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _run_one_tick(self) -> None:
        try:
            await self._on_tick()
        except Exception:
            logger.exception("Refresh tick failed")
        finally:
            self._in_flight = False

    async def _run_countdown(self) -> None:
        while True:
            await asyncio.sleep(self._countdown_step)
            remaining = self._cycle.countdown_seconds
            self._cycle.countdown_seconds = remaining - 1 if remaining > 0 else self._full_countdown


class RefreshScheduler:
    """Drives a refresh callback every ``interval`` seconds.

    Only one ScheduleHandle is active at a time: start() cancels the previous
    one before creating the next. The countdown is written into the shared
    RefreshCycleState so readers can display it.
    """

    def __init__(
        self,
        cycle_state: RefreshCycleState | None = None,
        countdown_step: float = 1.0,
        default_countdown: int = DEFAULT_COUNTDOWN_SECONDS,
    ) -> None:
        self._cycle = cycle_state if cycle_state is not None else RefreshCycleState()
        self._countdown_step = countdown_step
        self._default_countdown = default_countdown
        self._handle: ScheduleHandle | None = None

    async def start(self, interval: float, on_tick: TickCallback) -> ScheduleHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        await self._cancel_handle()
        self._handle = ScheduleHandle(interval, on_tick, self._cycle, self._countdown_step)
        logger.info("Refresh scheduler started: %.1fs interval", interval)
        return self._handle

    async def stop(self) -> None:
        """Cancel the timers and reset the countdown. Safe to call repeatedly."""
        was_running = self._handle is not None
        await self._cancel_handle()
        self._cycle.countdown_seconds = self._default_countdown
        if was_running:
            logger.info("Refresh scheduler stopped")

    @asynccontextmanager
    async def running(self, interval: float, on_tick: TickCallback) -> AsyncIterator[ScheduleHandle]:
        """Scoped start/stop: the timers are cancelled when the block exits."""
        handle = await self.start(interval, on_tick)
        try:
            yield handle
        finally:
            await self.stop()

    def reset_countdown(self) -> None:
        if self._handle is not None:
            self._handle.reset_countdown()

    @property
    def state(self) -> SchedulerState:
        if self._handle is not None and self._handle.active:
            return SchedulerState.RUNNING
        return SchedulerState.STOPPED

    @property
    def handle(self) -> ScheduleHandle | None:
        return self._handle

    @property
    def countdown(self) -> int:
        return self._cycle.countdown_seconds

    async def _cancel_handle(self) -> None:
        if self._handle is not None:
            await self._handle.cancel()
            self._handle = None
