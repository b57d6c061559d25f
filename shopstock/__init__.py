"""
shopstock Core Module

This package contains the stock transaction engine and its infrastructure:
- db: Record store, Supabase and Redis clients
- services: typed records, repositories, the stock engine and projections
- realtime: post-commit events for frontend streams
- routers: FastAPI endpoints

Note: Imports are lazy to keep module loading cheap in serverless environments.
"""

__all__ = [
    "get_record_store",
    "get_supabase",
    "get_redis",
]


def __getattr__(name):
    """Lazy attribute access for clean serverless loading."""
    if name == "get_record_store":
        from shopstock.db import get_record_store
        return get_record_store
    if name == "get_supabase":
        from shopstock.db import get_supabase
        return get_supabase
    if name == "get_redis":
        from shopstock.db import get_redis
        return get_redis
    raise AttributeError(f"module 'shopstock' has no attribute '{name}'")
