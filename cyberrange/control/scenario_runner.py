# cyberrange/control/scenario_runner.py
"""
Server-driven attack scenarios.

A scenario runs on its own once triggered: after a short delay a random
node is compromised, and a while later the scenario expires. Only one
scenario can be active; triggers while one is running are dropped.
"""

import asyncio
import random
from functools import partial

from cyberrange.network.broadcast import BroadcastCoordinator
from cyberrange.network.events import OutboundEvent
from cyberrange.security.logging_system import EventCategory, EventSeverity, get_logger
from cyberrange.state.log_generator import generate_log
from cyberrange.state.simulation_state import LogSeverity, SimulationState
from cyberrange.state.topology import NodeStatus
from cyberrange.time.transition_scheduler import TransitionScheduler

__all__ = ["ScenarioRunner"]


class ScenarioRunner:
    """
    Starts scenarios and runs their attack and expiry transitions.

    Neither transition can be cancelled. The attack fires even if the
    range was reset in between, and the expiry clears whatever scenario
    is active at that moment.
    """

    def __init__(
        self,
        state: SimulationState,
        broadcaster: BroadcastCoordinator,
        scheduler: TransitionScheduler,
        lock: asyncio.Lock,
        attack_delay: float = 2.0,
        scenario_duration: float = 5.0,
        attack_penalty: int = 15,
        rng: random.Random | None = None,
    ):
        self.state = state
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self._lock = lock
        self.attack_delay = attack_delay
        self.scenario_duration = scenario_duration
        self.attack_penalty = attack_penalty
        self.rng = rng or random.Random()
        self.logger = get_logger(__name__, component="scenario_runner")

    async def trigger(self, scenario_id: str) -> bool:
        """
        Start a scenario unless one is already active.

        Returns:
            True if the scenario started
        """
        async with self._lock:
            if self.state.active_scenario:
                self.logger.debug(
                    f"Scenario {scenario_id} ignored, "
                    f"{self.state.active_scenario} already active"
                )
                return False

            self.state.active_scenario = scenario_id
            self.broadcaster.publish(OutboundEvent.SCENARIO_ACTIVE, scenario_id)

            entry = generate_log(
                LogSeverity.ALERT,
                "SIEM",
                "SOC",
                "9999",
                f"THREAT DETECTED: Scenario {scenario_id} initiated.",
            )
            self.state.append_log(entry)
            self.broadcaster.publish(OutboundEvent.NEW_LOG, entry.to_dict())

            self.scheduler.schedule(
                self.attack_delay,
                partial(self._inject_attack, scenario_id),
                name=f"scenario_attack:{scenario_id}",
            )

        await self.logger.log_security(
            f"Scenario {scenario_id} initiated",
            severity=EventSeverity.ALERT,
            data={"scenario": scenario_id},
        )
        return True

    async def _inject_attack(self, scenario_id: str) -> None:
        """Compromise one node chosen at fire time, then schedule expiry."""
        target = None
        async with self._lock:
            if self.state.nodes:
                target = self.rng.choice(self.state.nodes)
                target.status = NodeStatus.COMPROMISED
                self.state.adjust_score(-self.attack_penalty)

                entry = generate_log(
                    LogSeverity.CRITICAL,
                    "UNKNOWN",
                    target.ip,
                    "HACK",
                    "Malicious activity detected!",
                )
                self.state.append_log(entry)

                self.broadcaster.publish(
                    OutboundEvent.UPDATE_NODES, self.state.node_list()
                )
                self.broadcaster.publish(OutboundEvent.NEW_LOG, entry.to_dict())
                self.broadcaster.publish(
                    OutboundEvent.UPDATE_SCORE, self.state.defensive_score
                )
            else:
                self.logger.warning(f"Scenario {scenario_id}: no nodes to compromise")

            self.scheduler.schedule(
                self.scenario_duration,
                partial(self._expire, scenario_id),
                name=f"scenario_expiry:{scenario_id}",
            )

        if target is not None:
            await self.logger.log_security(
                f"Scenario {scenario_id} compromised {target.id} ({target.ip})",
                severity=EventSeverity.CRITICAL,
                node_id=target.id,
                data={"scenario": scenario_id, "score": self.state.defensive_score},
            )

    async def _expire(self, scenario_id: str) -> None:
        async with self._lock:
            self.state.active_scenario = None
            self.broadcaster.publish(OutboundEvent.SCENARIO_ACTIVE, None)

        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.TRANSITION,
            f"Scenario {scenario_id} expired",
            data={"scenario": scenario_id},
        )
