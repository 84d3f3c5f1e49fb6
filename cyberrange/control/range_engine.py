# cyberrange/control/range_engine.py
"""
Authoritative cyber range engine.

Owns the single SimulationState and the components allowed to mutate it.
All of them share one asyncio.Lock, so every mutation and the broadcast
that follows it happen as one step with respect to other events, whether
they come from a connection or from a fired transition.
"""

import asyncio
import random
from typing import Any

from cyberrange.control.action_dispatcher import ActionDispatcher
from cyberrange.control.scenario_runner import ScenarioRunner
from cyberrange.network.broadcast import BroadcastCoordinator, ObserverChannel
from cyberrange.network.events import InboundEvent, OutboundEvent
from cyberrange.network.session_registry import SessionRegistry
from cyberrange.security.logging_system import EventCategory, EventSeverity, get_logger
from cyberrange.state.log_generator import generate_log
from cyberrange.state.simulation_state import LogSeverity, SimulationState
from cyberrange.state.topology import TopologyTemplate
from cyberrange.time.simulation_clock import SimulationClock
from cyberrange.time.transition_scheduler import TransitionScheduler

__all__ = ["RangeEngine"]

BOOT_MESSAGE = "Server Uplink Established. Waiting for agents."


class RangeEngine:
    """
    Single owner of the range state.

    Example:
        >>> engine = RangeEngine.from_config(ConfigLoader().load_all())
        >>> await engine.start()
        >>> channel = await engine.connect("127.0.0.1:50412")
        >>> await engine.dispatch(channel.session_id, "join", "alice")
        >>> await engine.stop()
    """

    def __init__(
        self,
        template: TopologyTemplate,
        clock: SimulationClock | None = None,
        rng: random.Random | None = None,
        timing: dict[str, float] | None = None,
        scoring: dict[str, int] | None = None,
        max_pending_notifications: int = 1000,
    ):
        """Initialise engine.

        Args:
            template: Topology the range is built from (and reset to)
            clock: Clock for timed transitions (realtime if omitted)
            rng: Random source for attack target selection
            timing: scan_duration, attack_delay, scenario_duration
            scoring: initial, patch_bonus, attack_penalty, max, min
            max_pending_notifications: Undelivered notifications an observer
                may accumulate before it is disconnected
        """
        timing = timing or {}
        scoring = scoring or {}

        self.clock = clock or SimulationClock()
        self.state = SimulationState(
            template,
            initial_score=scoring.get("initial", 100),
            max_score=scoring.get("max", 100),
            min_score=scoring.get("min", 0),
        )
        self.broadcaster = BroadcastCoordinator(max_pending=max_pending_notifications)
        self.scheduler = TransitionScheduler(self.clock)
        self._lock = asyncio.Lock()

        self.sessions = SessionRegistry(
            self.state, self.broadcaster, self.clock, self._lock
        )
        self.actions = ActionDispatcher(
            self.state,
            self.broadcaster,
            self.scheduler,
            self._lock,
            scan_duration=timing.get("scan_duration", 3.0),
            patch_bonus=scoring.get("patch_bonus", 5),
        )
        self.scenarios = ScenarioRunner(
            self.state,
            self.broadcaster,
            self.scheduler,
            self._lock,
            attack_delay=timing.get("attack_delay", 2.0),
            scenario_duration=timing.get("scenario_duration", 5.0),
            attack_penalty=scoring.get("attack_penalty", 15),
            rng=rng,
        )

        self.logger = get_logger(__name__, component="range_engine")

        self.state.append_log(
            generate_log(
                LogSeverity.INFO,
                "SYSTEM",
                "SERVER",
                "0000",
                BOOT_MESSAGE,
                entry_id="init_0",
            )
        )

    @classmethod
    def from_config(
        cls, config: dict[str, Any], clock: SimulationClock | None = None
    ) -> "RangeEngine":
        """Build an engine from ConfigLoader output.

        Raises:
            ValueError: If the topology template is invalid
        """
        range_cfg = config.get("range", {})
        seed = range_cfg.get("scenario", {}).get("seed")

        return cls(
            TopologyTemplate.from_config(config.get("topology", [])),
            clock=clock or SimulationClock.from_config(range_cfg.get("clock", {})),
            rng=random.Random(seed),
            timing=range_cfg.get("timing"),
            scoring=range_cfg.get("scoring"),
            max_pending_notifications=range_cfg.get("server", {}).get(
                "max_pending_notifications", 1000
            ),
        )

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    async def start(self) -> None:
        await self.scheduler.start()
        self.logger.info(
            f"Range engine started with {len(self.state.nodes)} nodes"
        )

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.logger.info("Range engine stopped")

    # ----------------------------------------------------------------
    # Inbound events
    # ----------------------------------------------------------------

    async def connect(self, peer: str = "unknown") -> ObserverChannel:
        """Open a session; its channel starts with the init_state snapshot."""
        return await self.sessions.connect(peer)

    async def disconnect(self, session_id: str) -> bool:
        return await self.sessions.disconnect(session_id)

    async def dispatch(
        self, session_id: str, event: InboundEvent | str, data: Any = None
    ) -> None:
        """
        Route one inbound event from a session.

        Payloads are trusted; the transport is responsible for framing
        and shape.

        Raises:
            ValueError: If event is not an inbound event name
        """
        event = InboundEvent(event)

        if event is InboundEvent.JOIN:
            await self.sessions.join(session_id, data)
        elif event is InboundEvent.PERFORM_ACTION:
            await self.actions.perform_action(
                data.get("actionType"), data.get("nodeId"), data.get("handle")
            )
        elif event is InboundEvent.TRIGGER_SCENARIO:
            await self.scenarios.trigger(data)
        elif event is InboundEvent.RESET_SIM:
            await self.reset(requested_by=session_id)
        elif event is InboundEvent.DISCONNECT:
            await self.disconnect(session_id)
        elif event is InboundEvent.CONNECT:
            self.logger.warning(f"Session {session_id} sent connect after connecting")

    async def reset(self, requested_by: str = "") -> None:
        """
        Restore the range to its initial topology.

        Clears the log and scenario and restores the score. Operators stay
        joined. Observers receive the new state as one reset_client.
        Pending transitions still fire against the new state.
        """
        async with self._lock:
            self.state.reset()
            self.broadcaster.publish(OutboundEvent.RESET_CLIENT, self.state.snapshot())

        await self.logger.log_audit(
            "Simulation reset",
            user=self.state.operators.handle_for(requested_by) or "",
            action="reset_sim",
            result="APPLIED",
            session_id=requested_by,
        )

    # ----------------------------------------------------------------
    # Status
    # ----------------------------------------------------------------

    async def snapshot(self) -> dict[str, Any]:
        """Full state in wire format, consistent with all prior mutations."""
        async with self._lock:
            return self.state.snapshot()

    async def get_summary(self) -> dict[str, Any]:
        """Get high-level summary of the range."""
        async with self._lock:
            statuses: dict[str, int] = {}
            for node in self.state.nodes:
                statuses[node.status.value] = statuses.get(node.status.value, 0) + 1

            return {
                "clock": self.clock.get_status(),
                "scheduler": self.scheduler.get_status(),
                "nodes": statuses,
                "log_entries": len(self.state.logs),
                "active_scenario": self.state.active_scenario,
                "defensive_score": self.state.defensive_score,
                "operators": self.state.operators.handles(),
                "observers": self.broadcaster.channel_count,
            }

    async def log_summary(self) -> None:
        summary = await self.get_summary()
        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.SYSTEM,
            f"Range summary: score={summary['defensive_score']}, "
            f"nodes={summary['nodes']}, observers={summary['observers']}",
            data=summary,
        )
