"""In-process record store.

Serializable: commit re-checks every document version and every query result
the transaction observed. Used by the test-suite and for local runs without a
Supabase project.
"""

import asyncio
import copy
from typing import Iterable, Optional

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


class MemoryRecordStore(RecordStore):
    """Versioned documents kept in dicts, one per collection."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._documents: dict[str, dict[str, dict]] = {}
        # Survives deletes so a re-created document never reuses a version
        self._versions: dict[tuple[str, str], int] = {}
        self._watches: list[Watch] = []
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    def _snapshot(self, collection: str, doc_id: str) -> DocumentSnapshot:
        data = self._documents.get(collection, {}).get(doc_id)
        return DocumentSnapshot(
            collection=collection,
            id=doc_id,
            data=copy.deepcopy(data) if data is not None else None,
            version=self._versions.get((collection, doc_id), 0),
        )

    def _matching(self, collection: str, filters: tuple[FieldFilter, ...]) -> list[DocumentSnapshot]:
        return [
            self._snapshot(collection, doc_id)
            for doc_id, data in sorted(self._documents.get(collection, {}).items())
            if matches_all(data, filters)
        ]

    async def _fetch(self, collection: str, doc_id: str) -> DocumentSnapshot:
        # Each read is a suspension point, like a network round-trip
        await asyncio.sleep(0)
        return self._snapshot(collection, doc_id)

    async def _fetch_many(
        self, collection: str, filters: tuple[FieldFilter, ...]
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return self._matching(collection, filters)

    def _validate(self, txn: Transaction) -> None:
        for snapshot in txn.reads:
            current = self._versions.get((snapshot.collection, snapshot.id), 0)
            if current != snapshot.version:
                raise CommitConflict(f"{snapshot.collection}/{snapshot.id}")
        for query in txn.queries:
            current = frozenset((s.id, s.version) for s in self._matching(query.collection, query.filters))
            if current != query.result:
                raise CommitConflict(f"query on {query.collection}")

    async def _commit(self, txn: Transaction) -> None:
        async with self._lock:
            self._validate(txn)
            touched = set()
            for write in txn.writes:
                key = (write.collection, write.id)
                collection = self._documents.setdefault(write.collection, {})
                if write.is_delete:
                    if write.id not in collection:
                        continue
                    del collection[write.id]
                else:
                    collection[write.id] = copy.deepcopy(write.data)
                self._versions[key] = self._versions.get(key, 0) + 1
                touched.add(write.collection)
        self._notify(touched)

    # ==================== WATCHES ====================

    def _schedule(self, watch: Watch) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(watch))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, watch: Watch) -> None:
        await watch.deliver(self._matching(watch.collection, watch.filters))

    def _notify(self, collections: set[str]) -> None:
        for watch in list(self._watches):
            if not watch.closed and watch.collection in collections:
                self._schedule(watch)

    async def _remove_watch(self, watch: Watch) -> None:
        if watch in self._watches:
            self._watches.remove(watch)

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
            _closer=self._remove_watch,
        )
        self._watches.append(watch)
        # Initial snapshot, delivered asynchronously like every later change
        self._schedule(watch)
        return watch

    async def fail_watches(self, collection: str, error: Exception) -> None:
        """Report a stream failure to every open watch on `collection` and close them."""
        for watch in [w for w in self._watches if w.collection == collection and not w.closed]:
            await watch.report_error(error)
            await watch.close()

    async def drain(self) -> None:
        """Wait until every scheduled watch delivery has run."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def dump(self, collection: str) -> dict[str, dict]:
        """Copy of every document in a collection, keyed by id."""
        return copy.deepcopy(self._documents.get(collection, {}))

    @property
    def watch_count(self) -> int:
        return len([w for w in self._watches if not w.closed])
