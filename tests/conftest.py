"""
Shared fixtures: a controllable clock, in-memory adapters and a config factory.
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from lambda_autofix.config import AutoFixConfig
from lambda_autofix.integrations.memory import InMemoryControlPlane, InMemorySignalSource
from lambda_autofix.logging_config import reset_logging_config
from lambda_autofix.logging_context import clear_context
from lambda_autofix.metrics import MetricsCollector

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock whose ``sleep`` moves time forward instantly."""

    def __init__(self, start: datetime = START):
        self.now = start
        self.sleeps = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signals(clock):
    return InMemorySignalSource(clock=clock)


@pytest.fixture
def plane(clock):
    return InMemoryControlPlane(clock=clock)


@pytest.fixture
def make_config():
    """Build a valid AutoFixConfig with auto-fix on and no delays."""
    def _make(resources, **overrides):
        values = dict(
            resources=list(resources),
            auto_fix_enabled=True,
            settle_delay_seconds=0,
            inter_batch_delay_seconds=0,
        )
        values.update(overrides)
        return AutoFixConfig(**values)
    return _make


@pytest.fixture(autouse=True)
def reset_state():
    MetricsCollector().reset()
    clear_context()
    yield
    clear_context()
    reset_logging_config()
    logging.getLogger().setLevel(logging.WARNING)
