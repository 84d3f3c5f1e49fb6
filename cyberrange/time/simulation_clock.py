# cyberrange/time/simulation_clock.py
"""
Simulation clock for the cyber range.

Every delayed transition is measured against this clock, so the same
engine runs in real time on a live server, faster than real time for
demos, or fully under test control in stepped mode.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Configure logging
logger = logging.getLogger(__name__)


# ----------------------------------------------------------------
# Time modes
# ----------------------------------------------------------------
class TimeMode(Enum):
    """Simulation time operation modes."""

    REALTIME = "realtime"
    ACCELERATED = "accelerated"
    STEPPED = "stepped"


@dataclass
class ClockState:
    """State container for simulation time tracking."""

    mode: TimeMode = TimeMode.REALTIME
    speed_multiplier: float = 1.0
    wall_time_start: float = 0.0
    # Simulation time accumulated before wall_time_start (and all of it in STEPPED mode)
    offset: float = 0.0


class SimulationClock:
    """Time authority for one cyber range.

    In REALTIME and ACCELERATED modes simulation time follows the
    monotonic wall clock scaled by the speed multiplier. In STEPPED mode
    it only moves when step() or advance_to() is called.

    Example:
        >>> clock = SimulationClock(TimeMode.STEPPED)
        >>> clock.step(3.0)
        >>> clock.now()
        3.0
    """

    _MAX_SPEED_MULTIPLIER = 1000.0  # Safety limit

    def __init__(self, mode: TimeMode = TimeMode.REALTIME, speed: float = 1.0):
        """Initialise clock.

        Args:
            mode: Time operation mode
            speed: Speed multiplier for REALTIME/ACCELERATED (1.0 = realtime)

        Raises:
            ValueError: If speed is <= 0 or exceeds maximum
        """
        self._validate_speed(speed)
        if mode == TimeMode.REALTIME and speed != 1.0:
            mode = TimeMode.ACCELERATED

        self.state = ClockState(
            mode=mode,
            speed_multiplier=speed,
            wall_time_start=time.monotonic(),
        )

    @classmethod
    def from_config(cls, clock_cfg: dict[str, Any]) -> "SimulationClock":
        """Create a clock from the `clock` section of range.yml.

        Invalid values are replaced by defaults with a warning.
        """
        speed = clock_cfg.get("time_acceleration", 1.0)
        if isinstance(speed, bool) or not isinstance(speed, (int, float)) or speed <= 0:
            logger.warning(f"Invalid time_acceleration {speed}, using default 1.0")
            speed = 1.0
        elif speed > cls._MAX_SPEED_MULTIPLIER:
            logger.warning(
                f"time_acceleration {speed} exceeds maximum "
                f"{cls._MAX_SPEED_MULTIPLIER}, capping"
            )
            speed = cls._MAX_SPEED_MULTIPLIER

        if clock_cfg.get("stepped", False):
            mode = TimeMode.STEPPED
        elif clock_cfg.get("realtime", True) and speed == 1.0:
            mode = TimeMode.REALTIME
        else:
            mode = TimeMode.ACCELERATED

        clock = cls(mode=mode, speed=speed)
        logger.info(
            f"SimulationClock configured: mode={clock.state.mode.value}, "
            f"speed={clock.state.speed_multiplier}x"
        )
        return clock

    def _validate_speed(self, multiplier: float) -> None:
        if multiplier <= 0:
            raise ValueError(f"Speed multiplier must be > 0, got {multiplier}")
        if multiplier > self._MAX_SPEED_MULTIPLIER:
            raise ValueError(
                f"Speed multiplier {multiplier} exceeds maximum "
                f"{self._MAX_SPEED_MULTIPLIER}"
            )

    # ----------------------------------------------------------------
    # Time queries
    # ----------------------------------------------------------------
    @property
    def mode(self) -> TimeMode:
        return self.state.mode

    @property
    def stepped(self) -> bool:
        return self.state.mode == TimeMode.STEPPED

    def now(self) -> float:
        """Get current simulation time in seconds."""
        if self.stepped:
            return self.state.offset
        wall_delta = time.monotonic() - self.state.wall_time_start
        return self.state.offset + wall_delta * self.state.speed_multiplier

    def speed(self) -> float:
        """Get current speed multiplier (1.0 = realtime)."""
        return self.state.speed_multiplier

    def wall_seconds_until(self, sim_time: float) -> float:
        """Wall-clock seconds until the clock reaches sim_time.

        Returns 0.0 if that time has already passed. Meaningless in STEPPED
        mode, where only step() moves time.
        """
        remaining = sim_time - self.now()
        if remaining <= 0:
            return 0.0
        return remaining / self.state.speed_multiplier

    # ----------------------------------------------------------------
    # Time control
    # ----------------------------------------------------------------
    def step(self, delta_seconds: float) -> None:
        """Manually advance simulation time (STEPPED mode).

        Raises:
            ValueError: If delta_seconds is negative
            RuntimeError: If not in STEPPED mode
        """
        if delta_seconds < 0:
            raise ValueError(f"Cannot step negative time: {delta_seconds}")
        self.advance_to(self.state.offset + delta_seconds)

    def advance_to(self, sim_time: float) -> None:
        """Move a STEPPED clock forward to sim_time.

        Raises:
            RuntimeError: If not in STEPPED mode
        """
        if not self.stepped:
            raise RuntimeError(
                f"advance only valid in STEPPED mode, "
                f"current mode is {self.state.mode.value}"
            )
        if sim_time > self.state.offset:
            self.state.offset = sim_time

        logger.debug(f"SimulationClock advanced to {self.state.offset}s")

    def reset(self) -> None:
        """Reset simulation time to zero, keeping mode and speed."""
        self.state.offset = 0.0
        self.state.wall_time_start = time.monotonic()
        logger.info("SimulationClock reset to zero")

    def get_status(self) -> dict[str, Any]:
        """Get clock status."""
        return {
            "simulation_time": self.now(),
            "mode": self.state.mode.value,
            "speed_multiplier": self.state.speed_multiplier,
        }
