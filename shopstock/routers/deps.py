"""
Shared Dependencies for Routers

Lazy-loaded singletons to optimize cold start.
Import heavy modules only when needed.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from shopstock.services.domains import StockEngine, StockQueries
    from shopstock.services.projections import StockProjections


# ==================== LAZY SINGLETONS ====================

_stock_engine: Optional["StockEngine"] = None
_stock_queries: Optional["StockQueries"] = None
_projections: Optional["StockProjections"] = None


async def get_stock_engine() -> "StockEngine":
    """Get or create StockEngine singleton (lazy loaded)"""
    global _stock_engine
    if _stock_engine is None:
        from shopstock.config import StockSettings
        from shopstock.db import get_record_store
        from shopstock.realtime import RedisStockEvents
        from shopstock.services.domains import StockEngine

        settings = StockSettings.from_env()
        events = RedisStockEvents() if settings.redis_configured else None
        _stock_engine = StockEngine(await get_record_store(settings), settings, events)
    return _stock_engine


async def get_stock_queries() -> "StockQueries":
    """Get or create StockQueries singleton (lazy loaded)"""
    global _stock_queries
    if _stock_queries is None:
        from shopstock.db import get_record_store
        from shopstock.services.domains import StockQueries

        _stock_queries = StockQueries(await get_record_store())
    return _stock_queries


async def get_projections() -> "StockProjections":
    """Get or create StockProjections singleton (lazy loaded)"""
    global _projections
    if _projections is None:
        from shopstock.db import get_record_store
        from shopstock.services.projections import StockProjections

        _projections = StockProjections(await get_record_store())
    return _projections


# ==================== SHUTDOWN HELPERS ====================

def reset_services() -> None:
    """Forget cached services (tests, config reloads)."""
    global _stock_engine, _stock_queries, _projections
    _stock_engine = None
    _stock_queries = None
    _projections = None
