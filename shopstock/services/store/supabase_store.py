"""Supabase-backed record store.

Each collection is a table `(id text primary key, data jsonb, version bigint)`.
Reads go through PostgREST; commits call the `commit_documents` Postgres
function (supabase/migrations), which locks every touched key, re-checks the
version of every document the transaction read and applies all writes inside
one database transaction.

Watches use Supabase Realtime postgres_changes. Each watch owns one refresh
worker: change events only mark it dirty, and the worker re-reads the watched
query serially so subscribers always end on the latest full contents.
"""

import asyncio
from typing import Any, Iterable, Optional, Set

import httpx
from postgrest import APIError
from supabase._async.client import AsyncClient

from shopstock.errors import StoreUnavailableError
from shopstock.logging import get_logger

from .base import (
    ChangeCallback,
    CommitConflict,
    DocumentSnapshot,
    ErrorCallback,
    FieldFilter,
    RecordStore,
    Transaction,
    Watch,
    matches_all,
)

logger = get_logger(__name__)

COMMIT_FUNCTION = "commit_documents"
PAGE_SIZE = 1000
_COLUMNS = "id,data,version"
_FAILED_CHANNEL_STATES = ("CHANNEL_ERROR", "TIMED_OUT", "CLOSED")
# deadlock_detected, serialization_failure
_RETRYABLE_SQLSTATES = ("40P01", "40001")


def _as_text(value: Any) -> str:
    """Render a filter value the way `data->>field` renders it in Postgres."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SupabaseRecordStore(RecordStore):
    """Record store over an async Supabase client."""

    def __init__(self, client: AsyncClient, page_size: int = PAGE_SIZE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.client = client
        self.page_size = page_size
        self._channels: dict[int, Any] = {}
        self._workers: dict[int, asyncio.Task] = {}
        self._background_tasks: Set[asyncio.Task] = set()

    def _row_to_snapshot(self, collection: str, row: dict) -> DocumentSnapshot:
        return DocumentSnapshot(
            collection=collection,
            id=row["id"],
            data=row.get("data") or {},
            version=int(row.get("version") or 0),
        )

    async def _fetch(self, collection: str, doc_id: str) -> DocumentSnapshot:
        try:
            result = (
                await self.client.table(collection).select(_COLUMNS).eq("id", doc_id).execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise StoreUnavailableError(f"Failed to read {collection}/{doc_id}: {e}") from e

        if not result.data:
            return DocumentSnapshot(collection, doc_id, None, 0)
        return self._row_to_snapshot(collection, result.data[0])

    def _select(self, collection: str, filters: tuple[FieldFilter, ...]):
        query = self.client.table(collection).select(_COLUMNS)
        # Equality is pushed down; range comparisons on ->> would compare text
        for f in filters:
            if f.op == "==":
                query = query.eq(f"data->>{f.field}", _as_text(f.value))
        return query.order("id")

    async def _fetch_many(
        self, collection: str, filters: tuple[FieldFilter, ...]
    ) -> list[DocumentSnapshot]:
        rows: list[dict] = []
        start = 0
        # PostgREST caps each response at max-rows, so read page by page
        while True:
            end = start + self.page_size - 1
            try:
                result = await self._select(collection, filters).range(start, end).execute()
            except (APIError, httpx.HTTPError) as e:
                raise StoreUnavailableError(f"Failed to query {collection}: {e}") from e
            page = result.data or []
            rows.extend(page)
            if len(page) < self.page_size:
                break
            start += self.page_size

        snapshots = [self._row_to_snapshot(collection, row) for row in rows]
        return [s for s in snapshots if matches_all(s.data, filters)]

    async def _commit(self, txn: Transaction) -> None:
        reads = sorted(txn.reads, key=lambda s: (s.collection, s.id))
        payload = {
            "p_reads": [
                {"collection": s.collection, "id": s.id, "version": s.version}
                for s in reads
            ],
            "p_writes": [
                {
                    "collection": w.collection,
                    "id": w.id,
                    "op": "delete" if w.is_delete else "set",
                    "data": w.data,
                }
                for w in txn.writes
            ],
        }
        try:
            result = await self.client.rpc(COMMIT_FUNCTION, payload).execute()
        except APIError as e:
            if e.code in _RETRYABLE_SQLSTATES:
                raise CommitConflict(f"commit_documents aborted ({e.code})") from e
            raise StoreUnavailableError(f"Commit failed: {e}") from e
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Commit failed: {e}") from e

        if result.data is not True:
            raise CommitConflict("version check failed in commit_documents")

    # ==================== WATCHES ====================

    async def _refresh(self, watch: Watch) -> None:
        try:
            snapshots = await self._fetch_many(watch.collection, watch.filters)
        except StoreUnavailableError as e:
            await watch.report_error(e)
            return
        await watch.deliver(snapshots)

    async def _refresh_worker(self, watch: Watch, dirty: asyncio.Event) -> None:
        """Re-read the watched query once per burst of change events."""
        while not watch.closed:
            await dirty.wait()
            dirty.clear()
            await self._refresh(watch)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _close_channel(self, watch: Watch) -> None:
        worker = self._workers.pop(id(watch), None)
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
        channel = self._channels.pop(id(watch), None)
        if channel is not None:
            await self.client.remove_channel(channel)

    async def watch(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Watch:
        watch = Watch(
            collection=collection,
            filters=tuple(filters),
            on_change=on_change,
            on_error=on_error,
            _closer=self._close_channel,
        )
        dirty = asyncio.Event()

        def _on_postgres_change(_payload: dict) -> None:
            dirty.set()

        def _on_status(status: Any, error: Optional[Exception] = None) -> None:
            state = getattr(status, "value", status)
            if state in _FAILED_CHANNEL_STATES and not watch.closed:
                reason = error or StoreUnavailableError(f"{collection} stream {state}")
                self._spawn(watch.report_error(reason))

        channel = self.client.channel(f"shopstock:{collection}:{id(watch)}")
        channel.on_postgres_changes("*", schema="public", table=collection, callback=_on_postgres_change)
        await channel.subscribe(_on_status)
        self._channels[id(watch)] = channel

        await self._refresh(watch)
        if not watch.closed:
            self._workers[id(watch)] = self._spawn(self._refresh_worker(watch, dirty))
        return watch
