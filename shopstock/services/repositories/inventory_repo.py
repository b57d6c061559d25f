"""Inventory Repository - per-seller holdings, one entry per product."""

from shopstock.services.models import InventoryEntry
from shopstock.services.store import where

from .base import BaseRepository, newest_first


class InventoryRepository(BaseRepository[InventoryEntry]):
    """Seller inventory operations."""

    model = InventoryEntry

    async def get_entry(self, seller_id: str, product_id: str) -> InventoryEntry | None:
        return await self.get(InventoryEntry.key(seller_id, product_id))

    async def get_for_seller(self, seller_id: str) -> list[InventoryEntry]:
        return newest_first(await self._find(where("seller_id", "==", seller_id)))

    async def get_for_product(self, product_id: str) -> list[InventoryEntry]:
        return await self._find(where("product_id", "==", product_id))

    def save(self, entry: InventoryEntry) -> None:
        self._put(entry)
