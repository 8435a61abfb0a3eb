"""
Shared fixtures.

Every test gets its own in-memory SQLite store, so tests never share data.
"""

import pytest
import pytest_asyncio

from ildang.orchestrator import create_app_components
from ildang.queries import LiveQueryLayer, WorkLogQueries
from ildang.services.storage import SQLiteRecordStore


@pytest_asyncio.fixture
async def store():
    store = SQLiteRecordStore("sqlite://")
    await store.initialize()
    yield store
    store.dispose()


@pytest_asyncio.fixture
async def live(store):
    layer = LiveQueryLayer(store)
    yield layer
    layer.close()


@pytest.fixture
def queries(store, live):
    return WorkLogQueries(store, live)


@pytest_asyncio.fixture
async def app():
    components = await create_app_components("sqlite://")
    yield components
    components.live.close()
    components.store.dispose()
