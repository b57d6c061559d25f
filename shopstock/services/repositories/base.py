"""Base repository over a record store or an open transaction.

Reads work against either source. Writes are only accepted when the
repository is bound to a Transaction, so quantity and balance fields cannot
be changed outside an engine transaction.
"""

from datetime import UTC, datetime
from typing import Generic, Iterable, TypeVar, Union

from pydantic import ValidationError

from shopstock.errors import DocumentValidationError, TransactionUsageError
from shopstock.services.models import StoredRecord
from shopstock.services.store import DocumentSnapshot, FieldFilter, RecordStore, Transaction

R = TypeVar("R", bound=StoredRecord)

Source = Union[RecordStore, Transaction]

_EPOCH = datetime.min.replace(tzinfo=UTC)


def newest_first(records: Iterable[R]) -> list[R]:
    return sorted(records, key=lambda r: getattr(r, "updated_at", None) or _EPOCH, reverse=True)


class BaseRepository(Generic[R]):
    """Typed access to one collection."""

    model: type[R]

    def __init__(self, source: Source) -> None:
        self.source = source

    @property
    def collection(self) -> str:
        return self.model.collection

    def decode(self, snapshot: DocumentSnapshot) -> R:
        """Validate a stored document into its record type."""
        try:
            return self.model.model_validate({**(snapshot.data or {}), "id": snapshot.id})
        except ValidationError as e:
            raise DocumentValidationError(snapshot.collection, snapshot.id, str(e)) from e

    async def get(self, doc_id: str) -> R | None:
        snapshot = await self.source.get(self.collection, doc_id)
        return self.decode(snapshot) if snapshot.exists else None

    async def _find(self, *filters: FieldFilter) -> list[R]:
        snapshots = await self.source.query(self.collection, filters)
        return [self.decode(s) for s in snapshots]

    @property
    def _txn(self) -> Transaction:
        if not isinstance(self.source, Transaction):
            raise TransactionUsageError(f"Writes to {self.collection} require a transaction")
        return self.source

    def _put(self, record: R) -> None:
        self._txn.set(self.collection, record.id, record.to_document())

    def _delete(self, doc_id: str) -> None:
        self._txn.delete(self.collection, doc_id)
