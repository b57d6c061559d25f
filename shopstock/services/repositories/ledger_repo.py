"""Ledger Repository - append-only purchase history."""

from shopstock.services.models import LedgerEntry
from shopstock.services.store import where

from .base import BaseRepository


class LedgerRepository(BaseRepository[LedgerEntry]):
    """Purchase ledger. Entries are appended, never updated or removed."""

    model = LedgerEntry

    async def get_for_user(self, user_id: str) -> list[LedgerEntry]:
        entries = await self._find(where("user_id", "==", user_id))
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def append(self, entry: LedgerEntry) -> None:
        self._put(entry)
