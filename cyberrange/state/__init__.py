# cyberrange/state/__init__.py
"""
Range state model.

Modules:
- topology: Node model and the topology template
- simulation_state: Range log entries, operator registry and the state aggregate
- log_generator: Range log entry factory
"""

from cyberrange.state.log_generator import generate_log
from cyberrange.state.simulation_state import (
    LogEntry,
    LogSeverity,
    OperatorRegistry,
    SimulationState,
)
from cyberrange.state.topology import Node, NodeStatus, NodeType, TopologyTemplate

__all__ = [
    "LogEntry",
    "LogSeverity",
    "Node",
    "NodeStatus",
    "NodeType",
    "OperatorRegistry",
    "SimulationState",
    "TopologyTemplate",
    "generate_log",
]
