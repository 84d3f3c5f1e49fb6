# cyberrange/network/range_server.py
"""
Async TCP transport for the range engine.

Speaks newline-delimited JSON frames of the form
{"event": "<name>", "data": <payload>} in both directions. Opening a
connection is the connect event and closing it is the disconnect event.
Malformed frames are logged and dropped here and never reach the engine.
"""

import asyncio
import json
from typing import Any

from cyberrange.control.range_engine import RangeEngine
from cyberrange.network.broadcast import ObserverChannel
from cyberrange.network.events import InboundEvent
from cyberrange.security.logging_system import RangeLogger, get_logger

__all__ = ["RangeServer"]

# Inbound events whose payload must be a string
_STRING_PAYLOADS = (InboundEvent.JOIN, InboundEvent.TRIGGER_SCENARIO)


class RangeServer:
    """
    JSON-lines TCP server in front of a RangeEngine.

    Example:
        >>> server = RangeServer(engine, host="127.0.0.1", port=3000)
        >>> await server.start()
    """

    def __init__(
        self,
        engine: RangeEngine,
        *,
        host: str = "127.0.0.1",
        port: int = 3000,
        max_frame_bytes: int = 64 * 1024,
    ):
        """Initialise server.

        Args:
            engine: Engine inbound events are routed to
            host: Host address to listen on
            port: Port to listen on (0 picks a free port)
            max_frame_bytes: Longest accepted inbound line

        Raises:
            ValueError: If parameters are invalid
        """
        if not host:
            raise ValueError("host cannot be empty")
        if not (0 <= port < 65536):
            raise ValueError(f"port must be 0-65535, got {port}")
        if max_frame_bytes <= 0:
            raise ValueError(f"max_frame_bytes must be > 0, got {max_frame_bytes}")

        self.engine = engine
        self.host = host
        self.port = port
        self.max_frame_bytes = max_frame_bytes

        self.server: asyncio.AbstractServer | None = None
        self.active_connections = 0
        self.total_connections = 0
        self.frames_received = 0
        self.frames_dropped = 0
        self.evicted_connections = 0
        self._connection_tasks: set[asyncio.Task[None]] = set()
        self.logger: RangeLogger = get_logger(__name__, component="range_server")

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.server is not None and self.server.is_serving()

    @property
    def bound_port(self) -> int:
        """Port actually bound (differs from port when port is 0)."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.port

    async def start(self) -> None:
        """Start listening.

        Raises:
            OSError: If unable to bind to the listen address
        """
        try:
            self.server = await asyncio.start_server(
                self._handle_client,
                self.host,
                self.port,
                limit=self.max_frame_bytes,
            )
        except OSError as e:
            self.logger.error(f"Failed to start range server on {self.host}:{self.port}: {e}")
            raise

        self.logger.info(f"CyberRange server running on {self.host}:{self.bound_port}")

    async def stop(self) -> None:
        """Stop listening and close all connections."""
        if not self.server:
            return

        self.logger.info(
            f"Stopping range server ({self.active_connections} active connections)"
        )

        self.server.close()

        # Cancel handlers before wait_closed(), which waits for them
        if self._connection_tasks:
            tasks = list(self._connection_tasks)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._connection_tasks.clear()

        await self.server.wait_closed()
        self.server = None

        self.logger.info(
            f"Range server stopped: served {self.total_connections} connections, "
            f"{self.frames_received} frames received, {self.frames_dropped} dropped"
        )

    # ----------------------------------------------------------------
    # Connection handling
    # ----------------------------------------------------------------

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one connection until it closes."""
        task = asyncio.current_task()
        if task is not None:
            self._connection_tasks.add(task)

        self.total_connections += 1
        self.active_connections += 1

        peername = writer.get_extra_info("peername")
        peer = f"{peername[0]}:{peername[1]}" if peername else "unknown"

        channel = await self.engine.connect(peer)
        pump = asyncio.create_task(self._pump(channel, writer))
        watchdog = asyncio.create_task(self._close_when_evicted(channel, writer))

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break

                frame = self._decode_frame(line, peer)
                if frame is None:
                    continue

                event, data = frame
                if event is InboundEvent.DISCONNECT:
                    break
                if event is InboundEvent.CONNECT:
                    self.logger.debug(f"Ignoring connect frame from {peer}")
                    continue

                await self.engine.dispatch(channel.session_id, event, data)

        except (ConnectionResetError, BrokenPipeError) as e:
            self.logger.debug(f"Connection from {peer} lost: {e}")
        except ValueError as e:
            # StreamReader.readline raises ValueError past the frame limit
            self.logger.warning(f"Closing {peer}: {e}")
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.exception(f"Error serving {peer}")
        finally:
            await self.engine.disconnect(channel.session_id)

            pump.cancel()
            watchdog.cancel()
            await asyncio.gather(pump, watchdog, return_exceptions=True)

            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

            self.active_connections -= 1
            if task is not None:
                self._connection_tasks.discard(task)

    async def _pump(self, channel: ObserverChannel, writer: asyncio.StreamWriter) -> None:
        """Write queued notifications to the socket in order."""
        try:
            while True:
                notification = await channel.next()
                writer.write(notification.to_line())
                await writer.drain()
        except (ConnectionError, OSError) as e:
            self.logger.debug(f"Stopped writing to {channel.session_id}: {e}")

    async def _close_when_evicted(
        self, channel: ObserverChannel, writer: asyncio.StreamWriter
    ) -> None:
        """Drop the connection once the broadcaster gives up on its channel."""
        await channel.closed.wait()
        self.evicted_connections += 1
        self.logger.warning(
            f"Observer {channel.session_id} stopped reading, closing connection"
        )
        writer.transport.abort()

    def _decode_frame(self, line: bytes, peer: str) -> tuple[InboundEvent, Any] | None:
        """Parse one inbound line, or return None to drop it."""
        self.frames_received += 1

        text = line.strip()
        if not text:
            return None

        try:
            frame = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return self._drop(peer, f"invalid JSON ({e})")

        if not isinstance(frame, dict) or "event" not in frame:
            return self._drop(peer, "frame is not an object with an event field")

        try:
            event = InboundEvent(frame["event"])
        except ValueError:
            return self._drop(peer, f"unknown event {frame['event']!r}")

        data = frame.get("data")
        if event is InboundEvent.PERFORM_ACTION and not isinstance(data, dict):
            return self._drop(peer, "perform_action payload must be an object")
        if event in _STRING_PAYLOADS and not isinstance(data, str):
            return self._drop(peer, f"{event.value} payload must be a string")

        return event, data

    def _drop(self, peer: str, reason: str) -> None:
        self.frames_dropped += 1
        self.logger.warning(f"Dropped frame from {peer}: {reason}")
        return None

    def get_status(self) -> dict[str, Any]:
        """Get server status."""
        return {
            "running": self.running,
            "host": self.host,
            "port": self.bound_port,
            "active_connections": self.active_connections,
            "total_connections": self.total_connections,
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
            "evicted_connections": self.evicted_connections,
        }
