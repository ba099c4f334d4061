"""Pytest hooks and fixtures."""

import os

import pytest

from agentflow.collaboration.engine import CollaborationEngine
from agentflow.config.schema import OrchestratorConfig
from agentflow.notifications.bus import InMemoryNotificationBus
from agentflow.notifications.dispatcher import SideEffectDispatcher
from agentflow.orchestration.planner import OrchestrationPlanner
from agentflow.storage.sqlite_store import SqliteAgentRegistry, SqliteSessionStore


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line("markers", "slow: end-to-end orchestration runs")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests when AGENTFLOW_SKIP_SLOW=1."""
    if os.environ.get("AGENTFLOW_SKIP_SLOW") != "1":
        return
    skip = pytest.mark.skip(reason="AGENTFLOW_SKIP_SLOW=1")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip)


class RecordingSink:
    """Outbound sink that keeps every notify() call."""

    def __init__(self):
        self.calls = []

    async def notify(self, event, correlation_id, payload, owner_user_id):
        self.calls.append((event, correlation_id, payload, owner_user_id))

    async def close(self):
        return None

    def events(self):
        return [c[0] for c in self.calls]


class RecordingWebhooks:
    def __init__(self):
        self.calls = []

    async def trigger(self, owner_user_id, event, payload):
        self.calls.append((owner_user_id, event, payload))
        return 1

    async def close(self):
        return None


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "agentflow.db"


@pytest.fixture
def store(db_path):
    return SqliteSessionStore(db_path)


@pytest.fixture
def registry(db_path):
    return SqliteAgentRegistry(db_path)


@pytest.fixture
def bus():
    return InMemoryNotificationBus(max_queue_size=500)


@pytest.fixture
def dispatcher():
    # Not started: tests drain it with `await dispatcher.join()`.
    return SideEffectDispatcher(max_queue_size=5000)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def webhooks():
    return RecordingWebhooks()


@pytest.fixture
def engine(store, bus, dispatcher, sink, webhooks):
    return CollaborationEngine(store, bus, dispatcher, outbound=sink, webhooks=webhooks)


@pytest.fixture
def planner(engine, registry):
    return OrchestrationPlanner(engine, registry, OrchestratorConfig())
