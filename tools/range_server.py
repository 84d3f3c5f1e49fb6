#!/usr/bin/env python3
# tools/range_server.py
"""
CyberRange Server - Main Entry Point

Loads configuration, builds the range engine and serves it over the
JSON-lines TCP transport until interrupted.

Usage:
  python tools/range_server.py
  python tools/range_server.py --port 4000 --config-dir config
  PORT=4000 python tools/range_server.py
  python tools/range_server.py --speed 10   # timed transitions 10x faster
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.config_loader import ConfigLoader
from cyberrange.control.range_engine import RangeEngine
from cyberrange.network.range_server import RangeServer
from cyberrange.security.logging_system import configure_logging
from cyberrange.time.simulation_clock import SimulationClock, TimeMode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RangeServerManager:
    """
    Orchestrates the range server lifecycle.

    Example:
        >>> manager = RangeServerManager(config_dir="config")
        >>> await manager.run()
    """

    def __init__(
        self,
        config_dir: str = "config",
        host: str | None = None,
        port: int | None = None,
        speed: float | None = None,
    ):
        self.config = ConfigLoader(config_dir=config_dir).load_all()
        range_cfg = self.config["range"]

        clock_cfg = dict(range_cfg.get("clock", {}))
        if speed is not None:
            clock_cfg["time_acceleration"] = speed
            clock_cfg["realtime"] = speed == 1.0
        self.clock = SimulationClock.from_config(clock_cfg)
        if self.clock.mode == TimeMode.STEPPED:
            raise ValueError("A served range needs a running clock, not stepped mode")

        log_cfg = range_cfg.get("logging", {})
        configure_logging(
            log_dir=log_cfg.get("log_dir"),
            clock=self.clock,
            max_audit_entries=log_cfg.get("max_audit_entries"),
        )

        server_cfg = range_cfg.get("server", {})
        self.engine = RangeEngine.from_config(self.config, clock=self.clock)
        self.server = RangeServer(
            self.engine,
            host=host or server_cfg.get("host", "127.0.0.1"),
            port=port if port is not None else server_cfg.get("port", 3000),
        )

        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown.

        Handlers are registered with the running loop so a signal wakes
        it even when no connection is active.
        """
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._request_shutdown, sig)

        logger.info("Signal handlers configured")

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)

    def _request_shutdown(self, signum: int) -> None:
        logger.info(f"Received signal {signum}")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Start, serve until a shutdown signal, then stop cleanly."""
        self.setup_signal_handlers()
        try:
            await self.engine.start()
            try:
                await self.server.start()
                logger.info("Range running. Press Ctrl+C to stop.")
                await self._shutdown_event.wait()
            finally:
                await self.server.stop()
                await self.engine.log_summary()
                await self.engine.stop()
        finally:
            self.remove_signal_handlers()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the CyberRange server")
    parser.add_argument(
        "--config-dir", default="config", help="Directory with range.yml/topology.yml"
    )
    parser.add_argument("--host", default=None, help="Listen address")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ["PORT"]) if os.environ.get("PORT") else None,
        help="Listen port (default: $PORT, then range.yml)",
    )
    parser.add_argument(
        "--speed", type=float, default=None, help="Simulation time multiplier"
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    logger.info("=== CyberRange Server ===")

    manager = RangeServerManager(
        config_dir=args.config_dir, host=args.host, port=args.port, speed=args.speed
    )
    await manager.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received")
