#!/usr/bin/env python3
"""
Range Console - Operator CLI

Connects to a running CyberRange server and issues operator events.
Every command prints the notifications the server pushes back.

Usage:
  python tools/range_console.py status
  python tools/range_console.py watch --handle alice
  python tools/range_console.py action scan web-server --handle alice
  python tools/range_console.py scenario phishing-01
  python tools/range_console.py reset
"""

import argparse
import asyncio
import json
import sys
from typing import Any


class RangeConsole:
    """JSON-lines client for the range server."""

    def __init__(self, host: str = "127.0.0.1", port: int = 3000):
        self.host = host
        self.port = port
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None

    async def connect(self) -> dict[str, Any]:
        """Open the connection and return the init_state snapshot."""
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
        frame = await self.recv()
        if frame is None or frame.get("event") != "init_state":
            raise RuntimeError(f"Expected init_state, got {frame}")
        return frame["data"]

    async def send(self, event: str, data: Any = None) -> None:
        self.writer.write((json.dumps({"event": event, "data": data}) + "\n").encode())
        await self.writer.drain()

    async def recv(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Read one notification, or None on EOF/timeout."""
        try:
            line = await asyncio.wait_for(self.reader.readline(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if not line:
            return None
        return json.loads(line)

    async def close(self) -> None:
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass


def format_notification(frame: dict[str, Any]) -> str:
    """Render a notification as one console line."""
    event = frame.get("event")
    data = frame.get("data")

    if event == "new_log":
        return (
            f"[{data['type']:8s}] {data['source']} -> {data['dest']} "
            f"({data['eventId']}) {data['message']}"
        )
    if event == "update_nodes":
        return "nodes: " + ", ".join(f"{n['id']}={n['status']}" for n in data)
    if event == "update_score":
        return f"score: {data}"
    if event == "update_team":
        return "team: " + (", ".join(data) if data else "(none)")
    if event == "scenario_active":
        return f"scenario: {data}" if data else "scenario: ended"
    if event in ("init_state", "reset_client"):
        return f"{event}: " + format_snapshot(data)
    return json.dumps(frame)


def format_snapshot(state: dict[str, Any]) -> str:
    nodes = ", ".join(f"{n['id']}={n['status']}" for n in state["nodes"])
    return (
        f"score={state['defensiveScore']} "
        f"scenario={state['activeScenario']} "
        f"operators={state['operators']} "
        f"logs={len(state['logs'])} "
        f"nodes=[{nodes}]"
    )


async def run_command(args: argparse.Namespace) -> int:
    console = RangeConsole(args.host, args.port)
    try:
        snapshot = await console.connect()
    except OSError as e:
        print(f"❌ Cannot connect to {args.host}:{args.port}: {e}")
        return 1

    try:
        if args.command == "status":
            print(format_snapshot(snapshot))
            for entry in snapshot["logs"][-args.logs:]:
                print(format_notification({"event": "new_log", "data": entry}))
            return 0

        if args.handle:
            await console.send("join", args.handle)

        if args.command == "action":
            await console.send(
                "perform_action",
                {"actionType": args.action, "nodeId": args.node, "handle": args.handle},
            )
        elif args.command == "scenario":
            await console.send("trigger_scenario", args.scenario_id)
        elif args.command == "reset":
            await console.send("reset_sim")

        linger = None if args.command == "watch" else args.linger
        while True:
            frame = await console.recv(timeout=linger)
            if frame is None:
                break
            print(format_notification(frame))
        return 0
    finally:
        await console.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CyberRange operator console")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--handle", default="", help="Join as this operator first")
    parser.add_argument(
        "--linger",
        type=float,
        default=1.0,
        help="Seconds to keep printing notifications after the command",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Print the current range state")
    status.add_argument("--logs", type=int, default=10, help="Log entries to show")

    subparsers.add_parser("watch", help="Print notifications until interrupted")

    action = subparsers.add_parser("action", help="Act on a node")
    action.add_argument("action", choices=["isolate", "scan", "patch"])
    action.add_argument("node", help="Node id, e.g. web-server")

    scenario = subparsers.add_parser("scenario", help="Trigger an attack scenario")
    scenario.add_argument("scenario_id")

    subparsers.add_parser("reset", help="Reset the range")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
