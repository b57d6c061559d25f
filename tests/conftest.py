"""Pytest configuration and fixtures"""
import os
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Set test environment variables
os.environ.setdefault("STOCK_STORE_BACKEND", "memory")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("ADMIN_API_KEY", "test_admin_key")
os.environ.setdefault("CRON_SECRET", "test_cron_secret")

from shopstock.config import StockSettings
from shopstock.services.domains import StockEngine, StockQueries
from shopstock.services.models import Collections
from shopstock.services.store import MemoryRecordStore

BUYER = "buyer-1"
SELLER = "seller-1"
SKU = "SKU-1"


@pytest.fixture
def store():
    """In-memory record store with fast retries"""
    return MemoryRecordStore(max_attempts=10, backoff_secs=0.001, backoff_max_secs=0.01)


@pytest.fixture
def events():
    """Recording event emitter"""
    emitter = Mock()
    emitter.emit = AsyncMock()
    return emitter


@pytest.fixture
def engine(store, events):
    return StockEngine(store, StockSettings(store_backend="memory"), events)


@pytest.fixture
def queries(store):
    return StockQueries(store)


@pytest_asyncio.fixture
async def seeded(engine):
    """Catalog SKU-1: 10 units at $10. Buyer and seller start with $100."""
    await engine.restock(SKU, 10, name="T-Shirt", price="10.00", description="Cotton tee")
    await engine.credit_account(BUYER, "100")
    await engine.credit_account(SELLER, "100")
    engine.events.emit.reset_mock()
    return engine


def snapshot_all(store: MemoryRecordStore) -> dict:
    """Every collection's committed documents, for before/after comparisons."""
    return {
        name: store.dump(name)
        for name in (
            Collections.CATALOG,
            Collections.INVENTORY,
            Collections.LISTINGS,
            Collections.PURCHASES,
            Collections.USERS,
        )
    }


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client"""
    client = Mock()

    # Mock table operations
    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.range.return_value = table_mock
    table_mock.execute = AsyncMock()

    client.table.return_value = table_mock
    client.rpc.return_value = table_mock

    channel = Mock()
    channel.on_postgres_changes.return_value = channel
    channel.subscribe = AsyncMock(return_value=channel)
    client.channel.return_value = channel
    client.remove_channel = AsyncMock()

    return client
