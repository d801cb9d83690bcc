"""
Queue worker fixtures: an in-memory queue table wired to a full pipeline.
"""

import pytest

from geoagent.config import AppConfig, QueueConfig
from geoagent.infrastructure import InMemoryRecordStore
from geoagent.queue_worker import build_consumer
from tests.factories.http_factories import FakeSources
from tests.factories.model_factories import make_osm_node

QUEUE_TABLE = "AgentQueries"


@pytest.fixture
def fake_sources():
    return FakeSources(overpass_elements=[make_osm_node() for _ in range(2)])


@pytest.fixture
def record_store():
    store = InMemoryRecordStore()
    store.create_table(QUEUE_TABLE)
    return store


@pytest.fixture
def make_consumer(record_store, fake_sources):
    """Factory fixture: consumer over ``record_store`` with optional queue overrides."""
    def _make(store=None, **queue_overrides):
        config = AppConfig(queue=QueueConfig(table_name=QUEUE_TABLE, **queue_overrides))
        return build_consumer(config, store or record_store, transport=fake_sources.transport)
    return _make
