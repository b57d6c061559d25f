"""
Record Store

Versioned document storage with optimistic transactions:
- MemoryRecordStore: in-process backend (tests, local runs)
- SupabaseRecordStore: hosted Postgres via supabase-py
"""
from .base import (
    DocumentSnapshot,
    FieldFilter,
    RecordStore,
    Transaction,
    Watch,
    where,
)
from .memory import MemoryRecordStore
from .supabase_store import SupabaseRecordStore

__all__ = [
    "DocumentSnapshot",
    "FieldFilter",
    "RecordStore",
    "Transaction",
    "Watch",
    "where",
    "MemoryRecordStore",
    "SupabaseRecordStore",
]
