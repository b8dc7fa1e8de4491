"""
AI-Link Test Configuration

Shared fixtures: an in-memory store with every component on top of it, a
controllable clock for expiry tests, and a hub wired with its dispatcher.
"""

import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path FIRST
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from ailink.agents.transport import InProcessTransport
from ailink.config import HubConfig
from ailink.coordination.context_store import ContextStore
from ailink.coordination.mailbox import Mailbox
from ailink.coordination.registry import AgentRegistry
from ailink.coordination.scheduler import Scheduler
from ailink.coordination.task_queue import TaskQueue
from ailink.database.persistence import MEMORY_DB, Store
from ailink.hub import Hub


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    s = Store(MEMORY_DB)
    yield s
    s.close()


@pytest.fixture
def registry(store, clock):
    return AgentRegistry(store, clock=clock)


@pytest.fixture
def mailbox(store, clock):
    return Mailbox(store, clock=clock)


@pytest.fixture
def task_queue(store, clock):
    return TaskQueue(store, clock=clock)


@pytest.fixture
def contexts(store, clock):
    return ContextStore(store, clock=clock)


@pytest.fixture
def scheduler(registry, task_queue, mailbox):
    return Scheduler(registry, task_queue, mailbox, interval=0.05)


@pytest.fixture
def hub_config():
    return HubConfig(db_path=MEMORY_DB, scheduler_interval=0.05, poll_interval=0.05)


@pytest.fixture
def hub(hub_config, clock):
    h = Hub(hub_config, clock=clock)
    yield h
    h.store.close()


@pytest.fixture
def dispatcher(hub):
    return hub.dispatcher


@pytest.fixture
def transport(dispatcher):
    return InProcessTransport(dispatcher)
