"""Record store contract: versioned documents, optimistic transactions, watches.

A transaction records the version of every document it reads (absent documents
read as version 0). Writes are buffered and applied at commit only if none of
those versions changed; otherwise the whole body is re-executed by
`RecordStore.run_transaction`.
"""

import inspect
import operator
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from shopstock.errors import TransactionConflictError, TransactionUsageError
from shopstock.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


class CommitConflict(Exception):
    """A document read by the transaction changed before commit."""


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    id: str
    data: Optional[dict]
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, data: dict) -> bool:
        if self.field not in data:
            return False
        try:
            return _OPERATORS[self.op](data[self.field], self.value)
        except TypeError:
            return False


def where(field_name: str, op: str, value: Any) -> FieldFilter:
    return FieldFilter(field_name, op, value)


def matches_all(data: dict, filters: Iterable[FieldFilter]) -> bool:
    return all(f.matches(data) for f in filters)


@dataclass(frozen=True)
class Write:
    """Buffered write. Updates are folded into full-document sets before commit."""

    collection: str
    id: str
    data: Optional[dict]  # None = delete

    @property
    def is_delete(self) -> bool:
        return self.data is None


@dataclass(frozen=True)
class QueryRead:
    collection: str
    filters: tuple[FieldFilter, ...]
    result: frozenset[tuple[str, int]]


ChangeCallback = Callable[[list[DocumentSnapshot]], Optional[Awaitable[None]]]
ErrorCallback = Callable[[Exception], Optional[Awaitable[None]]]


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async callback."""
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


class Transaction:
    """Read-validate-write unit bound to one attempt of `run_transaction`.

    All reads must happen before the first write.
    """

    def __init__(self, store: "RecordStore") -> None:
        self._store = store
        self._reads: dict[tuple[str, str], DocumentSnapshot] = {}
        self._queries: list[QueryRead] = []
        self._writes: dict[tuple[str, str], Write] = {}

    @property
    def reads(self) -> list[DocumentSnapshot]:
        return list(self._reads.values())

    @property
    def queries(self) -> list[QueryRead]:
        return list(self._queries)

    @property
    def writes(self) -> list[Write]:
        return list(self._writes.values())

    def _check_readable(self) -> None:
        if self._writes:
            raise TransactionUsageError("All reads must be executed before writes")

    def _record(self, snapshot: DocumentSnapshot) -> None:
        key = (snapshot.collection, snapshot.id)
        previous = self._reads.get(key)
        if previous is not None and previous.version != snapshot.version:
            # Changed between two reads of the same attempt
            raise CommitConflict(f"{snapshot.collection}/{snapshot.id}")
        self._reads[key] = snapshot

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        self._check_readable()
        snapshot = await self._store._fetch(collection, doc_id)
        self._record(snapshot)
        return snapshot

    async def query(
        self, collection: str, filters: Iterable[FieldFilter] = ()
    ) -> list[DocumentSnapshot]:
        self._check_readable()
        filters = tuple(filters)
        snapshots = await self._store._fetch_many(collection, filters)
        for snapshot in snapshots:
            self._record(snapshot)
        self._queries.append(
            QueryRead(collection, filters, frozenset((s.id, s.version) for s in snapshots))
        )
        return snapshots

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._writes[(collection, doc_id)] = Write(collection, doc_id, dict(data))

    @staticmethod
    def create_id() -> str:
        return uuid.uuid4().hex

    def create(self, collection: str, data: dict) -> str:
        doc_id = self.create_id()
        self.set(collection, doc_id, data)
        return doc_id

    def update(self, collection: str, doc_id: str, changes: dict) -> None:
        key = (collection, doc_id)
        staged = self._writes.get(key)
        if staged is not None and not staged.is_delete:
            base = staged.data
        else:
            snapshot = self._reads.get(key)
            if snapshot is None or not snapshot.exists:
                raise TransactionUsageError(
                    f"update of {collection}/{doc_id} requires reading an existing document first"
                )
            base = snapshot.data
        self._writes[key] = Write(collection, doc_id, {**base, **changes})

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes[(collection, doc_id)] = Write(collection, doc_id, None)


@dataclass
class Watch:
    """Live subscription to one collection query; `close()` stops delivery."""

    collection: str
    filters: tuple[FieldFilter, ...]
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback] = None
    closed: bool = False
    _closer: Optional[Callable[["Watch"], Awaitable[None]]] = field(default=None, repr=False)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._closer is not None:
            await self._closer(self)

    async def report_error(self, error: Exception) -> None:
        if self.on_error is None:
            logger.error("Unhandled %s watch error: %s", self.collection, error)
            return
        try:
            await invoke_callback(self.on_error, error)
        except Exception:
            logger.exception("Error callback for %s watch failed", self.collection)

    async def deliver(self, snapshots: list[DocumentSnapshot]) -> None:
        if self.closed:
            return
        try:
            await invoke_callback(self.on_change, snapshots)
        except Exception as e:
            await self.report_error(e)


class RecordStore(ABC):
    """Document store with optimistic transactions and change watches."""

    def __init__(
        self,
        max_attempts: int = 5,
        backoff_secs: float = 0.05,
        backoff_max_secs: float = 1.0,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_secs = backoff_secs
        self.backoff_max_secs = backoff_max_secs

    # ==================== BACKEND HOOKS ====================

    @abstractmethod
    async def _fetch(self, collection: str, doc_id: str) -> DocumentSnapshot: ...

    @abstractmethod
    async def _fetch_many(
        self, collection: str, filters: tuple[FieldFilter, ...]
    ) -> list[DocumentSnapshot]: ...

    @abstractmethod
    async def _commit(self, txn: Transaction) -> None:
        """Apply txn writes atomically or raise CommitConflict."""

    @abstractmethod
    async def watch(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Watch: ...

    # ==================== READS ====================

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Read one committed document outside any transaction."""
        return await self._fetch(collection, doc_id)

    async def query(
        self, collection: str, filters: Iterable[FieldFilter] = ()
    ) -> list[DocumentSnapshot]:
        """Read committed documents matching all filters outside any transaction."""
        return await self._fetch_many(collection, tuple(filters))

    # ==================== TRANSACTIONS ====================

    def _retrying(self, attempts: int) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.backoff_secs, max=self.backoff_max_secs)
            + wait_random(0, self.backoff_secs),
            retry=retry_if_exception_type(CommitConflict),
            before_sleep=_log_conflict,
        )

    async def run_transaction(
        self,
        body: Callable[[Transaction], Awaitable[T]],
        *,
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run `body` in a transaction, re-executing it on commit conflicts.

        The body may run several times and must not have side effects beyond
        the transaction it is given. Exceptions other than conflicts propagate
        unchanged; exhausting the attempts raises TransactionConflictError.
        """
        attempts = max_attempts or self.max_attempts
        try:
            async for attempt in self._retrying(attempts):
                with attempt:
                    txn = Transaction(self)
                    result = await body(txn)
                    if txn.writes:
                        await self._commit(txn)
        except RetryError as e:
            raise TransactionConflictError(attempts) from e.last_attempt.exception()
        return result


def _log_conflict(retry_state: RetryCallState) -> None:
    logger.debug(
        "Transaction conflict on attempt %d: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )
