"""Listing Repository - sellers' public offers."""

from shopstock.services.models import Listing
from shopstock.services.store import where

from .base import BaseRepository, newest_first


class ListingRepository(BaseRepository[Listing]):
    """Listing operations."""

    model = Listing

    async def get_for_seller(self, seller_id: str) -> list[Listing]:
        return newest_first(await self._find(where("seller_id", "==", seller_id)))

    async def find_for_product(self, seller_id: str, product_id: str) -> Listing | None:
        """The seller's listing for a product, if any (oldest wins if duplicated)."""
        listings = await self._find(
            where("seller_id", "==", seller_id), where("product_id", "==", product_id)
        )
        if not listings:
            return None
        return min(
            listings,
            key=lambda listing: (listing.created_at is None, listing.created_at, listing.id),
        )

    async def get_active_for_product(self, product_id: str) -> list[Listing]:
        """Listings with units left for a product, cheapest first."""
        listings = await self._find(where("product_id", "==", product_id), where("quantity", ">", 0))
        return sorted(listings, key=lambda listing: (listing.price, -listing.quantity))

    async def get_for_product(self, product_id: str) -> list[Listing]:
        return await self._find(where("product_id", "==", product_id))

    async def get_empty(self) -> list[Listing]:
        return await self._find(where("quantity", "==", 0))

    def save(self, listing: Listing) -> None:
        self._put(listing)

    def remove(self, listing_id: str) -> None:
        self._delete(listing_id)
