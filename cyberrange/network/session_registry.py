# cyberrange/network/session_registry.py
"""
Session registry for tracking connected observers and operators.

Every connection gets a session. A session becomes an operator once it
joins with a handle; the handle is listed in the shared state until the
last session holding it disconnects.

Event-driven (not tick-based). Sessions open and close on demand.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any

from cyberrange.network.broadcast import BroadcastCoordinator, ObserverChannel
from cyberrange.network.events import OutboundEvent
from cyberrange.security.logging_system import EventCategory, EventSeverity, get_logger
from cyberrange.state.log_generator import generate_log
from cyberrange.state.simulation_state import LogSeverity, SimulationState
from cyberrange.time.simulation_clock import SimulationClock


@dataclass
class Session:
    """An open connection to the range."""

    session_id: str
    peer: str
    connected_at: float  # Simulation time
    handle: str | None = None
    joined_at: float | None = None


class SessionRegistry:
    """
    Registry of open sessions.

    Opens a session and hands the new observer its snapshot on connect,
    records operator handles on join, and releases them on disconnect.

    Example:
        >>> registry = SessionRegistry(state, broadcaster, clock, lock)
        >>> channel = await registry.connect(peer="127.0.0.1:50412")
        >>> await registry.join(channel.session_id, "alice")
        >>> await registry.disconnect(channel.session_id)
    """

    def __init__(
        self,
        state: SimulationState,
        broadcaster: BroadcastCoordinator,
        clock: SimulationClock,
        lock: asyncio.Lock,
        max_history: int = 1000,
    ):
        self.state = state
        self.broadcaster = broadcaster
        self.clock = clock
        self._lock = lock
        self._sessions: dict[str, Session] = {}
        self._history: list[dict[str, Any]] = []  # Closed sessions
        self._max_history = max_history
        self.logger = get_logger(__name__, component="session_registry")

    async def connect(self, peer: str = "unknown") -> ObserverChannel:
        """
        Open a session and send it the full state snapshot.

        The snapshot is queued before the channel can receive any
        broadcast, so the observer never misses an update.

        Returns:
            Channel carrying notifications for the new session
        """
        session_id = uuid.uuid4().hex[:12]

        async with self._lock:
            self._sessions[session_id] = Session(
                session_id=session_id,
                peer=peer,
                connected_at=self.clock.now(),
            )
            channel = self.broadcaster.open_channel(session_id)
            self.broadcaster.send(
                session_id, OutboundEvent.INIT_STATE, self.state.snapshot()
            )

        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.SESSION,
            f"New client connected: {peer} [session={session_id}]",
            session_id=session_id,
        )
        return channel

    async def join(self, session_id: str, handle: str) -> bool:
        """
        Register a session's operator handle.

        Broadcasts the operator list and a join log entry even when the
        handle was already listed.

        Returns:
            False if the session is not open
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                self.logger.warning(f"Join from closed session {session_id} ignored")
                return False

            session.handle = handle
            session.joined_at = self.clock.now()
            self.state.operators.add(session_id, handle)
            self.broadcaster.publish(
                OutboundEvent.UPDATE_TEAM, self.state.operators.handles()
            )

            entry = generate_log(
                LogSeverity.INFO,
                "SYSTEM",
                "AUTH",
                "1000",
                f"Agent {handle} connected to the range.",
            )
            self.state.append_log(entry)
            self.broadcaster.publish(OutboundEvent.NEW_LOG, entry.to_dict())

        await self.logger.log_event(
            EventSeverity.NOTICE,
            EventCategory.SESSION,
            f"Agent {handle} joined [session={session_id}]",
            user=handle,
            session_id=session_id,
        )
        return True

    async def disconnect(self, session_id: str) -> bool:
        """
        Close a session.

        If the session had joined, its handle is released and the operator
        list is broadcast. A session that never joined changes nothing
        observers can see.

        Returns:
            True if the session was open
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False

            self.broadcaster.unregister(session_id)
            handle = self.state.operators.remove(session_id)
            if handle is not None:
                self.broadcaster.publish(
                    OutboundEvent.UPDATE_TEAM, self.state.operators.handles()
                )

        now = self.clock.now()
        duration = now - session.connected_at
        self._history.append({
            "session_id": session.session_id,
            "peer": session.peer,
            "handle": session.handle,
            "connected_at": session.connected_at,
            "disconnected_at": now,
            "duration": duration,
        })
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.SESSION,
            f"Client disconnected: {session.peer} [session={session_id}, "
            f"duration={duration:.1f}s]",
            user=session.handle or "",
            session_id=session_id,
        )
        return True

    def get_active_sessions(self) -> list[dict[str, Any]]:
        """Get open sessions."""
        now = self.clock.now()
        return [
            {
                "session_id": s.session_id,
                "peer": s.peer,
                "handle": s.handle,
                "connected_at": s.connected_at,
                "duration": now - s.connected_at,
            }
            for s in self._sessions.values()
        ]

    def get_session_history(self, limit: int = 50) -> list[dict[str, Any]]:
        """Get closed session history."""
        return self._history[-limit:]

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def is_connected(self, session_id: str) -> bool:
        return session_id in self._sessions
