# tests/unit/time/test_transition_scheduler.py
"""Tests for TransitionScheduler.

Level 1 - depends on SimulationClock.

Test Coverage:
- Scheduling validation
- Ordering of due transitions
- Stepped advance semantics
- Failure isolation
- Real-time driver loop
"""

import pytest

from cyberrange.time.simulation_clock import SimulationClock, TimeMode
from cyberrange.time.transition_scheduler import TransitionScheduler


def recorder(fired, label, clock=None):
    """Build a callback that records its label (and fire time) when run."""

    async def _callback():
        fired.append((label, clock.now()) if clock else label)

    return _callback


# ================================================================
# SCHEDULING TESTS
# ================================================================
class TestTransitionSchedulerSchedule:
    """Test schedule()."""

    def test_schedule_is_pending(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)

        scheduler.schedule(3.0, recorder([], "a"), name="a")

        assert scheduler.pending == 1
        assert scheduler.total_scheduled == 1

    def test_rejects_negative_delay(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        with pytest.raises(ValueError):
            scheduler.schedule(-1.0, recorder([], "a"))

    def test_status_reports_next_fire_time(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        scheduler.schedule(5.0, recorder([], "late"))
        scheduler.schedule(2.0, recorder([], "early"))

        status = scheduler.get_status()

        assert status["pending"] == 2
        assert status["next_fire_at"] == 2.0


# ================================================================
# STEPPED ADVANCE TESTS
# ================================================================
class TestTransitionSchedulerAdvance:
    """Test deterministic firing with a STEPPED clock."""

    @pytest.mark.asyncio
    async def test_nothing_fires_before_due(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        fired = []
        scheduler.schedule(3.0, recorder(fired, "scan"))

        assert await scheduler.advance(2.9) == 0
        assert fired == []

        assert await scheduler.advance(0.1) == 1
        assert fired == ["scan"]

    @pytest.mark.asyncio
    async def test_fires_in_time_order(self, stepped_clock):
        """Test ordering.

        WHY: Transitions must fire in nondecreasing order of fire time,
        regardless of the order they were scheduled in.
        """
        scheduler = TransitionScheduler(stepped_clock)
        fired = []
        scheduler.schedule(5.0, recorder(fired, "c"))
        scheduler.schedule(1.0, recorder(fired, "a"))
        scheduler.schedule(3.0, recorder(fired, "b"))

        await scheduler.advance(10.0)

        assert fired == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_equal_fire_times_keep_scheduling_order(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        fired = []
        for label in ("first", "second", "third"):
            scheduler.schedule(2.0, recorder(fired, label))

        await scheduler.advance(2.0)

        assert fired == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_each_transition_sees_its_own_fire_time(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        fired = []
        scheduler.schedule(2.0, recorder(fired, "a", stepped_clock))
        scheduler.schedule(7.0, recorder(fired, "b", stepped_clock))

        await scheduler.advance(10.0)

        assert fired == [("a", 2.0), ("b", 7.0)]
        assert stepped_clock.now() == 10.0

    @pytest.mark.asyncio
    async def test_chained_transition_fires_within_same_advance(self, stepped_clock):
        """Test chained scheduling.

        WHY: An attack schedules its own expiry; both must fire when one
        advance spans their combined delay.
        """
        scheduler = TransitionScheduler(stepped_clock)
        fired = []

        async def attack():
            fired.append(("attack", stepped_clock.now()))
            scheduler.schedule(5.0, recorder(fired, "expire", stepped_clock))

        scheduler.schedule(2.0, attack)
        await scheduler.advance(7.0)

        assert fired == [("attack", 2.0), ("expire", 7.0)]
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_advance_requires_stepped_clock(self):
        scheduler = TransitionScheduler(SimulationClock())
        with pytest.raises(RuntimeError):
            await scheduler.advance(1.0)

    @pytest.mark.asyncio
    async def test_advance_rejects_negative(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        with pytest.raises(ValueError):
            await scheduler.advance(-1.0)


# ================================================================
# FAILURE TESTS
# ================================================================
class TestTransitionSchedulerFailures:
    """Test that one failing transition does not stop the others."""

    @pytest.mark.asyncio
    async def test_failure_is_counted_and_others_still_fire(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        fired = []

        async def broken():
            raise RuntimeError("boom")

        scheduler.schedule(1.0, broken, name="broken")
        scheduler.schedule(2.0, recorder(fired, "ok"))

        await scheduler.advance(3.0)

        assert fired == ["ok"]
        assert scheduler.total_fired == 2
        assert scheduler.total_failed == 1


# ================================================================
# DRIVER LOOP TESTS
# ================================================================
class TestTransitionSchedulerDriver:
    """Test the real-time driver task."""

    @pytest.mark.asyncio
    async def test_accelerated_clock_fires_without_advance(self, wait_for_condition):
        """Test that the driver task fires due transitions on its own.

        WHY: A live server never calls advance(); time passes by itself.
        """
        clock = SimulationClock(TimeMode.ACCELERATED, speed=100.0)
        scheduler = TransitionScheduler(clock)
        fired = []
        await scheduler.start()
        try:
            scheduler.schedule(2.0, recorder(fired, "scan"))
            await wait_for_condition(lambda: fired == ["scan"], timeout=2.0)
        finally:
            await scheduler.stop()

        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_earlier_transition_scheduled_later_fires_first(
        self, wait_for_condition
    ):
        clock = SimulationClock(TimeMode.ACCELERATED, speed=100.0)
        scheduler = TransitionScheduler(clock)
        fired = []
        await scheduler.start()
        try:
            scheduler.schedule(50.0, recorder(fired, "late"))
            scheduler.schedule(1.0, recorder(fired, "early"))
            await wait_for_condition(lambda: fired == ["early"], timeout=2.0)
        finally:
            await scheduler.stop()

        assert scheduler.pending == 1

    @pytest.mark.asyncio
    async def test_stepped_start_creates_no_driver(self, stepped_clock):
        scheduler = TransitionScheduler(stepped_clock)
        await scheduler.start()

        assert scheduler.get_status()["running"] is True
        assert scheduler._driver_task is None

        await scheduler.stop()
        assert scheduler.get_status()["running"] is False
