# cyberrange/network/events.py
"""Event names exchanged between the range server and its observers."""

from enum import Enum

__all__ = ["InboundEvent", "OutboundEvent"]


class InboundEvent(str, Enum):
    """Events received from a connection."""

    CONNECT = "connect"
    JOIN = "join"
    PERFORM_ACTION = "perform_action"
    TRIGGER_SCENARIO = "trigger_scenario"
    RESET_SIM = "reset_sim"
    DISCONNECT = "disconnect"


class OutboundEvent(str, Enum):
    """Notifications pushed to observers."""

    INIT_STATE = "init_state"  # new connection only
    UPDATE_TEAM = "update_team"
    NEW_LOG = "new_log"
    UPDATE_NODES = "update_nodes"
    UPDATE_SCORE = "update_score"
    SCENARIO_ACTIVE = "scenario_active"
    RESET_CLIENT = "reset_client"
