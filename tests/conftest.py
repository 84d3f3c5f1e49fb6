# tests/conftest.py
"""Shared pytest fixtures for cyber range tests.

This file provides common fixtures used across all test modules,
following the bottom-up testing strategy where foundation components
are tested with real dependencies wherever possible. Timed behaviour is
driven by a STEPPED clock so no test waits on wall-clock delays.
"""

import asyncio
import random
import tempfile
from pathlib import Path
from typing import Generator

import pytest
import yaml

from config.config_loader import ConfigLoader
from cyberrange.control.range_engine import RangeEngine
from cyberrange.network.broadcast import ObserverChannel
from cyberrange.state.topology import TopologyTemplate
from cyberrange.time.simulation_clock import SimulationClock, TimeMode

ATTACK_SEED = 1337


# ----------------------------------------------------------------
# Configuration fixtures
# ----------------------------------------------------------------
@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test configuration files.

    Yields:
        Path to temporary configuration directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_config_file(temp_config_dir):
    """Factory fixture for writing YAML configuration files.

    Returns:
        Function that writes config dict to YAML file
    """

    def _write_config(config: dict, filename: str = "range.yml") -> Path:
        config_file = temp_config_dir / filename
        with open(config_file, "w") as f:
            yaml.dump(config, f)
        return config_file

    return _write_config


@pytest.fixture
def default_topology(temp_config_dir) -> list[dict]:
    """The six-node topology shipped by default."""
    return ConfigLoader(config_dir=temp_config_dir)._create_default_topology()


# ----------------------------------------------------------------
# Engine fixtures
# ----------------------------------------------------------------
@pytest.fixture
def template(default_topology) -> TopologyTemplate:
    return TopologyTemplate.from_config(default_topology)


@pytest.fixture
def stepped_clock() -> SimulationClock:
    """Clock that only moves when a test advances it."""
    return SimulationClock(TimeMode.STEPPED)


@pytest.fixture
def engine(template, stepped_clock) -> RangeEngine:
    """Engine on a stepped clock with a seeded attack target picker."""
    return RangeEngine(
        template,
        clock=stepped_clock,
        rng=random.Random(ATTACK_SEED),
    )


@pytest.fixture
def expected_attack_target(template) -> str:
    """Node id the seeded picker compromises first."""
    return random.Random(ATTACK_SEED).choice(template.build()).id


# ----------------------------------------------------------------
# Observer helpers
# ----------------------------------------------------------------
def drain_events(channel: ObserverChannel) -> list[tuple[str, object]]:
    """Return (event name, payload) for everything queued on a channel."""
    return [(n.event.value, n.data) for n in channel.drain()]


@pytest.fixture
def drain():
    return drain_events


@pytest.fixture
async def observer(engine) -> ObserverChannel:
    """A connected observer whose init_state has already been consumed."""
    channel = await engine.connect("observer")
    channel.drain()
    return channel


# ----------------------------------------------------------------
# Async utilities
# ----------------------------------------------------------------
@pytest.fixture
async def wait_for_condition():
    """Provide utility for waiting on async conditions.

    Returns:
        Async function that polls a condition until true or timeout
    """

    async def _wait(
        condition_fn,
        timeout: float = 1.0,
        poll_interval: float = 0.01,
        error_msg: str = "Condition not met within timeout",
    ):
        loop = asyncio.get_running_loop()
        start = loop.time()
        while loop.time() - start < timeout:
            if condition_fn():
                return
            await asyncio.sleep(poll_interval)

        raise AssertionError(error_msg)

    return _wait
