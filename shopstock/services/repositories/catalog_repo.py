"""Catalog Repository - platform stock entries keyed by product code."""

from shopstock.services.models import CatalogEntry
from shopstock.services.store import where

from .base import BaseRepository


class CatalogRepository(BaseRepository[CatalogEntry]):
    """Catalog entry operations."""

    model = CatalogEntry

    async def get_listed(self) -> list[CatalogEntry]:
        """Entries offered to sellers: listed and with units on hand."""
        entries = await self._find(where("listed", "==", True), where("quantity", ">", 0))
        return sorted(entries, key=lambda e: (-e.quantity, e.product_code))

    async def get_by_product(self, product_id: str) -> list[CatalogEntry]:
        return await self._find(where("product_id", "==", product_id))

    def save(self, entry: CatalogEntry) -> None:
        self._put(entry)
