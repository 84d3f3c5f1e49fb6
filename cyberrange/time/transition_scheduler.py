# cyberrange/time/transition_scheduler.py
"""
Delay queue for autonomous state transitions.

Transitions are fire-and-forget: once scheduled they cannot be cancelled,
rescheduled or inspected individually. A transition that must not clobber
newer state re-checks that state itself when it fires.
"""

import asyncio
import heapq
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from cyberrange.security.logging_system import (
    EventCategory,
    EventSeverity,
    get_logger,
)
from cyberrange.time.simulation_clock import SimulationClock

__all__ = ["ScheduledTransition", "TransitionScheduler"]

TransitionCallback = Callable[[], Awaitable[None]]


@dataclass(order=True)
class ScheduledTransition:
    """A pending transition, ordered by fire time then scheduling order."""

    fire_at: float
    seq: int
    name: str = field(compare=False)
    callback: TransitionCallback = field(compare=False, repr=False)


class TransitionScheduler:
    """
    Fires delayed transitions in nondecreasing order of fire time.

    With a REALTIME or ACCELERATED clock a driver task started by start()
    sleeps until the next transition is due. With a STEPPED clock nothing
    fires until advance() is awaited, which makes timed behaviour fully
    deterministic under test.

    Example:
        >>> scheduler = TransitionScheduler(SimulationClock(TimeMode.STEPPED))
        >>> scheduler.schedule(3.0, revert_scan, name="scan_revert:web-server")
        >>> await scheduler.advance(3.0)  # revert_scan has run
    """

    def __init__(self, clock: SimulationClock):
        self.clock = clock
        self._queue: list[ScheduledTransition] = []
        self._seq = itertools.count()
        self._wakeup = asyncio.Event()
        self._running = False
        self._driver_task: asyncio.Task | None = None

        self.total_scheduled = 0
        self.total_fired = 0
        self.total_failed = 0

        self.logger = get_logger(__name__, component="transition_scheduler")

    # ----------------------------------------------------------------
    # Scheduling
    # ----------------------------------------------------------------

    def schedule(
        self, delay: float, callback: TransitionCallback, name: str = "transition"
    ) -> None:
        """Schedule callback to run delay simulation seconds from now.

        Returns immediately; the caller never waits for the transition.

        Raises:
            ValueError: If delay is negative
        """
        if delay < 0:
            raise ValueError(f"Cannot schedule with negative delay: {delay}")

        transition = ScheduledTransition(
            fire_at=self.clock.now() + delay,
            seq=next(self._seq),
            name=name,
            callback=callback,
        )
        heapq.heappush(self._queue, transition)
        self.total_scheduled += 1
        self._wakeup.set()

        self.logger.debug(
            f"Scheduled {name} at t={transition.fire_at:.2f}s (delay={delay}s)"
        )

    @property
    def pending(self) -> int:
        """Number of transitions that have not fired yet."""
        return len(self._queue)

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    async def start(self) -> None:
        """Start the driver task (no-op for a STEPPED clock)."""
        if self._running:
            self.logger.warning("TransitionScheduler already running")
            return

        self._running = True
        if self.clock.stepped:
            self.logger.info("TransitionScheduler started in stepped mode")
            return

        self._driver_task = asyncio.create_task(self._drive())
        self.logger.info(
            f"TransitionScheduler started ({self.clock.mode.value}, "
            f"{self.clock.speed()}x)"
        )

    async def stop(self) -> None:
        """Stop the driver task. Pending transitions are dropped with it."""
        if not self._running:
            return

        self._running = False
        if self._driver_task:
            self._driver_task.cancel()
            try:
                await self._driver_task
            except asyncio.CancelledError:
                pass
            self._driver_task = None

        self.logger.info(
            f"TransitionScheduler stopped ({len(self._queue)} transitions pending)"
        )

    # ----------------------------------------------------------------
    # Stepped execution
    # ----------------------------------------------------------------

    async def advance(self, delta_seconds: float) -> int:
        """Advance a STEPPED clock, firing every transition that comes due.

        Each transition runs with the clock set to its own fire time, so
        transitions it schedules are measured from that moment.

        Returns:
            Number of transitions fired

        Raises:
            ValueError: If delta_seconds is negative
            RuntimeError: If the clock is not STEPPED
        """
        if delta_seconds < 0:
            raise ValueError(f"Cannot advance negative time: {delta_seconds}")
        if not self.clock.stepped:
            raise RuntimeError("advance() requires a STEPPED clock")

        target = self.clock.now() + delta_seconds
        fired = 0

        while self._queue and self._queue[0].fire_at <= target:
            transition = heapq.heappop(self._queue)
            self.clock.advance_to(transition.fire_at)
            await self._fire(transition)
            fired += 1

        self.clock.advance_to(target)
        return fired

    # ----------------------------------------------------------------
    # Internal
    # ----------------------------------------------------------------

    async def _drive(self) -> None:
        """Driver loop for REALTIME and ACCELERATED clocks."""
        while self._running:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            delay = self.clock.wall_seconds_until(self._queue[0].fire_at)
            if delay > 0:
                # Woken early if an earlier transition is scheduled meanwhile
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                continue

            now = self.clock.now()
            while self._queue and self._queue[0].fire_at <= now:
                await self._fire(heapq.heappop(self._queue))

    async def _fire(self, transition: ScheduledTransition) -> None:
        self.total_fired += 1
        try:
            await transition.callback()
        except Exception:
            self.total_failed += 1
            self.logger.exception(f"Transition {transition.name} failed")
            await self.logger.log_event(
                EventSeverity.ERROR,
                EventCategory.TRANSITION,
                f"Transition {transition.name} failed",
                data={"fire_at": transition.fire_at},
            )

    def get_status(self) -> dict[str, Any]:
        """Get scheduler status."""
        return {
            "running": self._running,
            "pending": len(self._queue),
            "next_fire_at": self._queue[0].fire_at if self._queue else None,
            "total_scheduled": self.total_scheduled,
            "total_fired": self.total_fired,
            "total_failed": self.total_failed,
        }
