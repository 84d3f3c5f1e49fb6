# cyberrange/state/topology.py
"""
Network topology model for the cyber range.

Nodes are created together from a fixed template when the range starts
and again on every reset. Only a node's status changes afterwards.
"""

import copy
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

__all__ = [
    "NodeType",
    "NodeStatus",
    "Node",
    "TopologyTemplate",
]


class NodeType(str, Enum):
    """Kinds of simulated network asset."""

    FIREWALL = "firewall"
    SERVER = "server"
    DATABASE = "database"
    WORKSTATION = "workstation"


class NodeStatus(str, Enum):
    """Security status of a node."""

    SECURE = "secure"
    SCANNING = "scanning"
    ISOLATED = "isolated"
    COMPROMISED = "compromised"


@dataclass
class Node:
    """A simulated network asset.

    Attributes:
        id: Unique identifier within the range
        type: Asset classification
        label: Display name
        ip: Address shown in log entries
        status: Current security status (the only mutable field)
        x: Layout coordinate (cosmetic)
        y: Layout coordinate (cosmetic)
    """

    id: str
    type: NodeType
    label: str
    ip: str
    status: NodeStatus = NodeStatus.SECURE
    x: float = 0
    y: float = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format."""
        node_dict = asdict(self)
        node_dict["type"] = self.type.value
        node_dict["status"] = self.status.value
        return node_dict


class TopologyTemplate:
    """
    Immutable node template the live topology is built from.

    Every call to build() returns fresh Node objects, so mutating the live
    topology never alters the template.

    Example:
        >>> template = TopologyTemplate.from_config(config["topology"])
        >>> nodes = template.build()
    """

    def __init__(self, nodes: list[Node]):
        """Initialise template.

        Args:
            nodes: Nodes in display order

        Raises:
            ValueError: If the template is empty or ids are not unique
        """
        if not nodes:
            raise ValueError("topology template must contain at least one node")

        seen: set[str] = set()
        for node in nodes:
            if not node.id:
                raise ValueError("node id must be a non-empty string")
            if node.id in seen:
                raise ValueError(f"duplicate node id in topology: {node.id}")
            seen.add(node.id)

        self._nodes = copy.deepcopy(nodes)

    @classmethod
    def from_config(cls, entries: list[dict[str, Any]]) -> "TopologyTemplate":
        """Build a template from YAML node entries.

        Args:
            entries: List of node mappings (id, type, label, ip, x, y, status)

        Returns:
            Validated template

        Raises:
            ValueError: If an entry is missing fields or uses an unknown type
        """
        nodes = []
        for entry in entries or []:
            try:
                nodes.append(
                    Node(
                        id=str(entry["id"]),
                        type=NodeType(entry["type"]),
                        label=str(entry.get("label", entry["id"])),
                        ip=str(entry["ip"]),
                        status=NodeStatus(entry.get("status", "secure")),
                        x=entry.get("x", 0),
                        y=entry.get("y", 0),
                    )
                )
            except KeyError as e:
                raise ValueError(f"topology node missing field {e}: {entry}") from e
            except ValueError as e:
                raise ValueError(f"invalid topology node {entry}: {e}") from e
        return cls(nodes)

    def build(self) -> list[Node]:
        """Return a deep copy of the template nodes."""
        return copy.deepcopy(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)
