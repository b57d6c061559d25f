"""
Database Module - Record Store, Supabase and Redis Clients

Provides singleton instances of:
- Async Supabase client for the stock tables and Realtime
- Upstash Redis client for post-commit event streams
- The record store selected by STOCK_STORE_BACKEND
"""

from typing import Optional

from supabase._async.client import AsyncClient, create_client as acreate_client
from upstash_redis.asyncio import Redis as AsyncRedis

from shopstock.config import BACKEND_MEMORY, BACKEND_SUPABASE, StockSettings
from shopstock.logging import get_logger
from shopstock.services.store import MemoryRecordStore, RecordStore, SupabaseRecordStore

logger = get_logger(__name__)


# Singleton instances
_async_supabase_client: Optional[AsyncClient] = None
_redis_client: Optional[AsyncRedis] = None
_record_store: Optional[RecordStore] = None


async def get_supabase(settings: Optional[StockSettings] = None) -> AsyncClient:
    """
    Get async Supabase client (singleton).
    Uses the service role key: the stock tables reject writes from other roles.
    """
    global _async_supabase_client

    if _async_supabase_client is None:
        settings = settings or StockSettings.from_env()
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _async_supabase_client = await acreate_client(settings.supabase_url, settings.supabase_key)

    return _async_supabase_client


def get_redis(settings: Optional[StockSettings] = None) -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _redis_client

    if _redis_client is None:
        settings = settings or StockSettings.from_env()
        if not settings.redis_configured:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(url=settings.redis_url, token=settings.redis_token)

    return _redis_client


async def get_record_store(settings: Optional[StockSettings] = None) -> RecordStore:
    """Get the record store for the configured backend (singleton)."""
    global _record_store

    if _record_store is None:
        settings = settings or StockSettings.from_env()
        retry = {
            "max_attempts": settings.txn_max_attempts,
            "backoff_secs": settings.txn_backoff_secs,
            "backoff_max_secs": settings.txn_backoff_max_secs,
        }
        if settings.store_backend == BACKEND_MEMORY:
            logger.warning("Using in-memory record store; data is lost on restart")
            _record_store = MemoryRecordStore(**retry)
        elif settings.store_backend == BACKEND_SUPABASE:
            _record_store = SupabaseRecordStore(await get_supabase(settings), **retry)
        else:
            raise ValueError(f"Unknown STOCK_STORE_BACKEND: {settings.store_backend}")

    return _record_store


def reset_clients() -> None:
    """Drop cached clients so the next call rebuilds them from the environment."""
    global _async_supabase_client, _redis_client, _record_store
    _async_supabase_client = None
    _redis_client = None
    _record_store = None
