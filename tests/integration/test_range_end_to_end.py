# tests/integration/test_range_end_to_end.py
"""
Integration tests for the complete cyber range.

Operators talk to a real RangeServer over loopback TCP; the engine runs
on a stepped clock so timed transitions are fired by the test.

Test Coverage:
- Operator registry under repeated joins
- Scan revert superseded by a newer status
- Score bounds under repeated patches and attacks
- Single active scenario
- Reset semantics seen by every observer
- Full scan and scenario flows over the wire
"""

import asyncio
import json

import pytest

from cyberrange.network.range_server import RangeServer
from cyberrange.state.topology import NodeStatus


class Operator:
    """Minimal JSON-lines client used by the tests."""

    def __init__(self, reader, writer):
        self.reader = reader
        self.writer = writer

    @classmethod
    async def connect(cls, port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        operator = cls(reader, writer)
        operator.init_state = await operator.recv()
        assert operator.init_state["event"] == "init_state"
        return operator

    async def send(self, event, data=None):
        self.writer.write((json.dumps({"event": event, "data": data}) + "\n").encode())
        await self.writer.drain()

    async def recv(self, timeout=2.0):
        line = await asyncio.wait_for(self.reader.readline(), timeout=timeout)
        return json.loads(line)

    async def recv_until(self, event, timeout=2.0):
        """Read frames up to and including the first one named event."""
        frames = []
        while True:
            frame = await self.recv(timeout)
            frames.append(frame)
            if frame["event"] == event:
                return frames

    async def close(self):
        self.writer.close()
        await self.writer.wait_closed()


@pytest.fixture
async def range_port(engine):
    server = RangeServer(engine, port=0)
    await server.start()
    await engine.start()
    yield server.bound_port
    await server.stop()
    await engine.stop()


@pytest.fixture
async def operators(range_port):
    """Factory for connected operators, closed after the test."""
    opened = []

    async def _open():
        operator = await Operator.connect(range_port)
        opened.append(operator)
        return operator

    yield _open

    for operator in opened:
        await operator.close()


def node_status(nodes, node_id):
    return next(n["status"] for n in nodes if n["id"] == node_id)


# ================================================================
# REGISTRY PROPERTIES
# ================================================================
class TestOperatorRegistry:
    """Test operator listing over the wire."""

    @pytest.mark.asyncio
    async def test_repeated_join_lists_handle_once(self, operators):
        alice = await operators()

        for _ in range(4):
            await alice.send("join", "alice")
            frames = await alice.recv_until("new_log")
            assert frames[0] == {"event": "update_team", "data": ["alice"]}

    @pytest.mark.asyncio
    async def test_operator_list_follows_disconnects(self, operators):
        watcher = await operators()
        alice = await operators()
        bob = await operators()

        await alice.send("join", "alice")
        await watcher.recv_until("new_log")
        await bob.send("join", "bob")
        frames = await watcher.recv_until("new_log")
        assert frames[0]["data"] == ["alice", "bob"]

        await alice.close()
        frame = await watcher.recv()

        assert frame == {"event": "update_team", "data": ["bob"]}


# ================================================================
# STATE PROPERTIES
# ================================================================
class TestStateProperties:
    """Invariants that hold for every node and any repetition count."""

    @pytest.mark.asyncio
    async def test_revert_never_overrides_newer_status(self, engine, template):
        for node in template.build():
            await engine.actions.perform_action("scan", node.id, "alice")
            await engine.actions.perform_action("isolate", node.id, "alice")

        await engine.scheduler.advance(3.0)

        assert all(n.status == NodeStatus.ISOLATED for n in engine.state.nodes)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start", [0, 50, 96, 100])
    async def test_patch_never_exceeds_max(self, engine, start):
        engine.state.defensive_score = start

        for _ in range(30):
            await engine.actions.perform_action("patch", "web-server", "alice")
            assert engine.state.defensive_score <= 100

        assert engine.state.defensive_score == 100

    @pytest.mark.asyncio
    async def test_attacks_never_drop_score_below_zero(self, engine):
        for i in range(10):
            assert await engine.scenarios.trigger(f"wave-{i}")
            await engine.scheduler.advance(7.0)
            assert engine.state.defensive_score >= 0

        assert engine.state.defensive_score == 0

    @pytest.mark.asyncio
    async def test_second_scenario_produces_no_alert(self, operators, engine):
        red = await operators()

        await red.send("trigger_scenario", "phishing-01")
        await red.recv_until("new_log")
        await red.send("trigger_scenario", "ransomware-02")
        await red.send("join", "red")
        frames = await red.recv_until("new_log")

        # Only the join's broadcasts arrive; the second trigger was dropped
        assert [f["event"] for f in frames] == ["update_team", "new_log"]
        assert engine.state.active_scenario == "phishing-01"
        alerts = [e for e in engine.state.logs if e.event_id == "9999"]
        assert len(alerts) == 1


# ================================================================
# RESET
# ================================================================
class TestReset:
    """Test reset as seen by every observer."""

    @pytest.mark.asyncio
    async def test_reset_reaches_all_observers(self, operators, engine):
        alice = await operators()
        watcher = await operators()

        await alice.send("join", "alice")
        await alice.recv_until("new_log")
        await alice.send(
            "perform_action",
            {"actionType": "isolate", "nodeId": "dc-01", "handle": "alice"},
        )
        await alice.recv_until("update_score")
        await alice.send("trigger_scenario", "phishing-01")
        await alice.recv_until("new_log")
        await engine.scheduler.advance(2.0)
        await alice.recv_until("update_score")

        await alice.send("reset_sim")

        for observer in (alice, watcher):
            frame = (await observer.recv_until("reset_client"))[-1]
            snapshot = frame["data"]
            assert {n["status"] for n in snapshot["nodes"]} == {"secure"}
            assert snapshot["logs"] == []
            assert snapshot["defensiveScore"] == 100
            assert snapshot["activeScenario"] is None
            assert snapshot["operators"] == ["alice"]

    @pytest.mark.asyncio
    async def test_new_observer_after_reset(self, operators, engine):
        alice = await operators()
        await alice.send("reset_sim")
        await alice.recv_until("reset_client")

        late = await operators()

        assert late.init_state["data"]["logs"] == []
        assert late.init_state["data"] == await engine.snapshot()


# ================================================================
# END-TO-END FLOWS
# ================================================================
class TestEndToEnd:
    """The two core operator flows over the wire."""

    @pytest.mark.asyncio
    async def test_scan_then_automatic_revert(self, operators, engine):
        alice = await operators()
        watcher = await operators()

        await alice.send("join", "alice")
        await alice.send(
            "perform_action",
            {"actionType": "scan", "nodeId": "web-server", "handle": "alice"},
        )

        frames = await watcher.recv_until("update_score")
        updates = [f for f in frames if f["event"] == "update_nodes"]
        assert node_status(updates[-1]["data"], "web-server") == "scanning"
        logs = [f["data"]["message"] for f in frames if f["event"] == "new_log"]
        assert logs == [
            "Agent alice connected to the range.",
            "Deep scan initiated on 192.168.1.10 by alice.",
        ]

        await engine.scheduler.advance(3.0)

        frame = await watcher.recv()
        assert frame["event"] == "update_nodes"
        assert node_status(frame["data"], "web-server") == "secure"

    @pytest.mark.asyncio
    async def test_phishing_scenario(self, operators, engine, expected_attack_target):
        watcher = await operators()
        red = await operators()

        await red.send("trigger_scenario", "phishing-01")

        assert await watcher.recv() == {
            "event": "scenario_active",
            "data": "phishing-01",
        }
        alert = await watcher.recv()
        assert alert["data"]["type"] == "ALERT"

        await engine.scheduler.advance(2.0)

        nodes = await watcher.recv()
        log = await watcher.recv()
        score = await watcher.recv()
        compromised = [n["id"] for n in nodes["data"] if n["status"] == "compromised"]
        assert compromised == [expected_attack_target]
        assert log["data"]["type"] == "CRITICAL"
        assert log["data"]["eventId"] == "HACK"
        assert score == {"event": "update_score", "data": 85}

        await engine.scheduler.advance(5.0)

        assert await watcher.recv() == {"event": "scenario_active", "data": None}
        assert engine.state.active_scenario is None
