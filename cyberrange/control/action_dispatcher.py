# cyberrange/control/action_dispatcher.py
"""
Operator actions against topology nodes.

Isolate, scan and patch each change one node's status, append a range
log entry and broadcast nodes, log and score. A scan also schedules its
own completion, which only applies if nothing has changed the node since.
"""

import asyncio
from enum import Enum
from functools import partial

from cyberrange.network.broadcast import BroadcastCoordinator
from cyberrange.network.events import OutboundEvent
from cyberrange.security.logging_system import EventCategory, EventSeverity, get_logger
from cyberrange.state.log_generator import generate_log
from cyberrange.state.simulation_state import LogSeverity, SimulationState
from cyberrange.state.topology import NodeStatus
from cyberrange.time.transition_scheduler import TransitionScheduler

__all__ = ["ActionType", "ActionDispatcher"]


class ActionType(str, Enum):
    """Operator actions."""

    ISOLATE = "isolate"
    SCAN = "scan"
    PATCH = "patch"


class ActionDispatcher:
    """
    Applies operator actions to the shared state.

    Example:
        >>> dispatcher = ActionDispatcher(state, broadcaster, scheduler, lock)
        >>> await dispatcher.perform_action("scan", "web-server", "alice")
        True
    """

    def __init__(
        self,
        state: SimulationState,
        broadcaster: BroadcastCoordinator,
        scheduler: TransitionScheduler,
        lock: asyncio.Lock,
        scan_duration: float = 3.0,
        patch_bonus: int = 5,
    ):
        self.state = state
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self._lock = lock
        self.scan_duration = scan_duration
        self.patch_bonus = patch_bonus
        self.logger = get_logger(__name__, component="action_dispatcher")

    async def perform_action(self, action_type: str, node_id: str, handle: str) -> bool:
        """
        Apply an action to a node.

        An unknown node id is ignored: nothing changes, nothing is logged
        to the range and nothing is broadcast. An unrecognised action on a
        known node leaves the node alone but still records an empty log
        entry and broadcasts.

        Args:
            action_type: "isolate", "scan" or "patch"
            node_id: Target node
            handle: Operator credited in the log entry

        Returns:
            True if the node was found
        """
        async with self._lock:
            node = self.state.get_node(node_id)
            if node is None:
                self.logger.debug(f"Action {action_type} on unknown node {node_id}")
                return False

            try:
                action = ActionType(action_type)
            except ValueError:
                action = None

            if action is ActionType.ISOLATE:
                node.status = NodeStatus.ISOLATED
                message = f"Host {node.ip} isolated by {handle}."
            elif action is ActionType.SCAN:
                node.status = NodeStatus.SCANNING
                message = f"Deep scan initiated on {node.ip} by {handle}."
                self.scheduler.schedule(
                    self.scan_duration,
                    partial(self._complete_scan, node.id),
                    name=f"scan_revert:{node.id}",
                )
            elif action is ActionType.PATCH:
                node.status = NodeStatus.SECURE
                message = f"Patch applied to {node.ip} by {handle}."
                self.state.adjust_score(self.patch_bonus)
            else:
                message = ""

            entry = generate_log(LogSeverity.INFO, handle, node.ip, "ACTION", message)
            self.state.append_log(entry)

            self.broadcaster.publish(OutboundEvent.UPDATE_NODES, self.state.node_list())
            self.broadcaster.publish(OutboundEvent.NEW_LOG, entry.to_dict())
            self.broadcaster.publish(
                OutboundEvent.UPDATE_SCORE, self.state.defensive_score
            )

        await self.logger.log_audit(
            message or f"Unrecognised action {action_type!r} on {node_id}",
            user=str(handle),
            action=str(action_type),
            result="APPLIED" if action else "IGNORED",
            node_id=node_id,
        )
        return True

    async def _complete_scan(self, node_id: str) -> None:
        """Return a scanned node to secure unless its status moved on."""
        async with self._lock:
            node = self.state.get_node(node_id)
            if node is None or node.status != NodeStatus.SCANNING:
                self.logger.debug(f"Scan revert on {node_id} superseded")
                return

            node.status = NodeStatus.SECURE
            self.broadcaster.publish(OutboundEvent.UPDATE_NODES, self.state.node_list())

        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.TRANSITION,
            f"Scan complete on {node_id}, node secure",
            node_id=node_id,
        )
