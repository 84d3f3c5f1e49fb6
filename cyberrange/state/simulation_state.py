# cyberrange/state/simulation_state.py
"""
Centralised state for the cyber range.

Holds the topology, the range event log, the active scenario, the
defensive score and the connected operators. This is the single source
of truth every observer is synchronised against. It carries no timing or
broadcast behaviour; RangeEngine owns it and serialises all mutation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from cyberrange.state.topology import Node, TopologyTemplate

__all__ = [
    "LogSeverity",
    "LogEntry",
    "OperatorRegistry",
    "SimulationState",
]


class LogSeverity(str, Enum):
    """Severity of a range event log entry."""

    INFO = "INFO"
    ALERT = "ALERT"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class LogEntry:
    """Range event shown to operators.

    Attributes:
        timestamp: ISO-8601 UTC creation time
        type: Severity
        source: Originating actor or subsystem
        dest: Target address or subsystem
        event_id: Event code (e.g. "ACTION", "HACK", "1000")
        message: Human-readable text
        id: Short random token, used as a list key by observers only
    """

    timestamp: str
    type: LogSeverity
    source: str
    dest: str
    event_id: str
    message: str
    id: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format."""
        return {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "source": self.source,
            "dest": self.dest,
            "eventId": self.event_id,
            "message": self.message,
            "id": self.id,
        }


class OperatorRegistry:
    """
    Ordered set of operator handles, keyed by the session holding them.

    A handle is listed once no matter how many sessions joined with it,
    and stays listed until the last of those sessions leaves.

    Example:
        >>> registry = OperatorRegistry()
        >>> registry.add("s1", "alice")
        True
        >>> registry.add("s2", "alice")
        False
        >>> registry.remove("s1")
        'alice'
        >>> registry.handles()
        ['alice']
    """

    def __init__(self):
        # handle -> sessions holding it; dict order is first-join order
        self._holders: dict[str, set[str]] = {}
        self._session_handles: dict[str, str] = {}

    def add(self, session_id: str, handle: str) -> bool:
        """Record that a session joined with a handle.

        A session that joins again under a different handle gives up its
        previous one.

        Returns:
            True if the handle was not listed before
        """
        previous = self._session_handles.get(session_id)
        if previous is not None and previous != handle:
            self._release(session_id, previous)

        self._session_handles[session_id] = handle
        holders = self._holders.get(handle)
        if holders is None:
            self._holders[handle] = {session_id}
            return True

        holders.add(session_id)
        return False

    def remove(self, session_id: str) -> str | None:
        """Release the handle held by a session.

        Returns:
            The handle the session held, or None if it never joined
        """
        handle = self._session_handles.pop(session_id, None)
        if handle is not None:
            self._release(session_id, handle)
        return handle

    def _release(self, session_id: str, handle: str) -> None:
        holders = self._holders.get(handle)
        if holders is None:
            return
        holders.discard(session_id)
        if not holders:
            del self._holders[handle]

    def handle_for(self, session_id: str) -> str | None:
        """Return the handle a session joined with, if any."""
        return self._session_handles.get(session_id)

    def handles(self) -> list[str]:
        """Return listed handles in first-join order."""
        return list(self._holders)

    def __contains__(self, handle: object) -> bool:
        return handle in self._holders

    def __len__(self) -> int:
        return len(self._holders)


class SimulationState:
    """
    Aggregate state of one cyber range.

    Attributes:
        nodes: Live topology in display order
        logs: Append-only range event log
        active_scenario: Id of the running scenario, or None
        defensive_score: Score bounded to [min_score, max_score]
        operators: Connected operator handles
    """

    def __init__(
        self,
        template: TopologyTemplate,
        initial_score: int = 100,
        max_score: int = 100,
        min_score: int = 0,
    ):
        if min_score > max_score:
            raise ValueError(
                f"min_score {min_score} must not exceed max_score {max_score}"
            )

        self.template = template
        self.initial_score = initial_score
        self.max_score = max_score
        self.min_score = min_score

        self.nodes: list[Node] = template.build()
        self.logs: list[LogEntry] = []
        self.active_scenario: str | None = None
        self.defensive_score = self._clamp(initial_score)
        self.operators = OperatorRegistry()

    # ----------------------------------------------------------------
    # Mutation
    # ----------------------------------------------------------------

    def get_node(self, node_id: str) -> Node | None:
        """Resolve a node by id against the current topology."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def append_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    def adjust_score(self, delta: int) -> int:
        """Add delta to the defensive score, clamped to its bounds.

        Returns:
            The new score
        """
        self.defensive_score = self._clamp(self.defensive_score + delta)
        return self.defensive_score

    def _clamp(self, score: int) -> int:
        return max(self.min_score, min(self.max_score, score))

    def reset(self) -> None:
        """Restore topology, log, score and scenario. Operators are kept."""
        self.nodes = self.template.build()
        self.logs = []
        self.defensive_score = self._clamp(self.initial_score)
        self.active_scenario = None

    # ----------------------------------------------------------------
    # Serialisation
    # ----------------------------------------------------------------

    def node_list(self) -> list[dict[str, Any]]:
        """Return the topology in wire format."""
        return [node.to_dict() for node in self.nodes]

    def snapshot(self) -> dict[str, Any]:
        """Return a self-contained copy of the full state in wire format."""
        return {
            "nodes": self.node_list(),
            "logs": [entry.to_dict() for entry in self.logs],
            "activeScenario": self.active_scenario,
            "defensiveScore": self.defensive_score,
            "operators": self.operators.handles(),
        }
