# cyberrange/network/broadcast.py
"""
Broadcast fan-out to connected observers.

Every state mutation ends with a publish() to all channels. Delivery only
enqueues, so a mutation and its notifications happen without yielding to
the event loop; a per-connection writer drains the queue to the socket.
"""

import asyncio
import copy
import json
from dataclasses import dataclass
from typing import Any

from cyberrange.network.events import OutboundEvent
from cyberrange.security.logging_system import get_logger

__all__ = ["Notification", "ObserverChannel", "BroadcastCoordinator"]


@dataclass(frozen=True)
class Notification:
    """A single outbound event with its payload frozen at publish time."""

    event: OutboundEvent
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event.value, "data": self.data}

    def to_line(self) -> bytes:
        """Encode as one newline-terminated JSON frame."""
        return (json.dumps(self.to_dict(), separators=(",", ":")) + "\n").encode()


class ObserverChannel:
    """
    Outbound notification queue for one connection.

    The queue is bounded. A channel whose observer stops reading is
    closed by the coordinator once the queue is full; the transport
    watches `closed` and drops the connection.
    """

    def __init__(self, session_id: str, maxsize: int = 0):
        self.session_id = session_id
        self.queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self.closed = asyncio.Event()
        self.delivered = 0

    def deliver(self, notification: Notification) -> None:
        """Queue a notification.

        Raises:
            asyncio.QueueFull: If the observer is too far behind
        """
        self.queue.put_nowait(notification)
        self.delivered += 1

    def close(self) -> None:
        self.closed.set()

    async def next(self) -> Notification:
        """Wait for the next queued notification."""
        return await self.queue.get()

    def drain(self) -> list[Notification]:
        """Return everything queued so far without waiting."""
        notifications = []
        while not self.queue.empty():
            notifications.append(self.queue.get_nowait())
        return notifications


class BroadcastCoordinator:
    """
    Registry of observer channels.

    A channel that cannot take another notification is unregistered and
    closed; it receives nothing further.

    Example:
        >>> broadcaster = BroadcastCoordinator(max_pending=1000)
        >>> broadcaster.register(ObserverChannel("a1b2c3"))
        >>> broadcaster.publish(OutboundEvent.UPDATE_SCORE, 95)
        1
    """

    def __init__(self, max_pending: int = 1000):
        """Initialise coordinator.

        Args:
            max_pending: Queue bound for channels opened through this
                coordinator

        Raises:
            ValueError: If max_pending is not positive
        """
        if max_pending <= 0:
            raise ValueError(f"max_pending must be > 0, got {max_pending}")

        self.max_pending = max_pending
        self._channels: dict[str, ObserverChannel] = {}
        self.total_published = 0
        self.evicted = 0
        self.logger = get_logger(__name__, component="broadcast")

    def open_channel(self, session_id: str) -> ObserverChannel:
        """Create and register a bounded channel for a session."""
        channel = ObserverChannel(session_id, maxsize=self.max_pending)
        self.register(channel)
        return channel

    def register(self, channel: ObserverChannel) -> None:
        if channel.session_id in self._channels:
            self.logger.warning(
                f"Channel {channel.session_id} already registered, replacing"
            )
        self._channels[channel.session_id] = channel

    def unregister(self, session_id: str) -> bool:
        """Remove a channel. Returns False if it was not registered."""
        return self._channels.pop(session_id, None) is not None

    def get_channel(self, session_id: str) -> ObserverChannel | None:
        return self._channels.get(session_id)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def publish(self, event: OutboundEvent, payload: Any) -> int:
        """Deliver a notification to every registered channel.

        Returns:
            Number of channels the notification was delivered to
        """
        notification = Notification(event, copy.deepcopy(payload))
        delivered = 0
        for channel in list(self._channels.values()):
            if self._deliver(channel, notification):
                delivered += 1

        self.total_published += 1
        self.logger.debug(f"Published {event.value} to {delivered} observers")
        return delivered

    def send(self, session_id: str, event: OutboundEvent, payload: Any) -> bool:
        """Deliver a notification to a single channel.

        Returns:
            False if no channel is registered for session_id
        """
        channel = self._channels.get(session_id)
        if channel is None:
            self.logger.debug(f"Dropped {event.value} for unknown session {session_id}")
            return False

        return self._deliver(channel, Notification(event, copy.deepcopy(payload)))

    def _deliver(self, channel: ObserverChannel, notification: Notification) -> bool:
        try:
            channel.deliver(notification)
        except asyncio.QueueFull:
            self._channels.pop(channel.session_id, None)
            channel.close()
            self.evicted += 1
            self.logger.warning(
                f"Observer {channel.session_id} has {channel.queue.qsize()} "
                f"undelivered notifications, closing channel"
            )
            return False
        return True
