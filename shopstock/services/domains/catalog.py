"""Read models over committed state.

Point-in-time queries outside any transaction: each call sees committed data,
but two calls may observe different commits.
"""

from typing import Optional

from shopstock.services.models import (
    CatalogEntry,
    ConservationReport,
    InventoryEntry,
    LedgerEntry,
    Listing,
)
from shopstock.services.repositories import (
    CatalogRepository,
    InventoryRepository,
    LedgerRepository,
    ListingRepository,
)
from shopstock.services.store import RecordStore


class StockQueries:
    """Typed reads for the storefront, seller dashboards and admin."""

    def __init__(self, store: RecordStore) -> None:
        self.catalog = CatalogRepository(store)
        self.inventory = InventoryRepository(store)
        self.listings = ListingRepository(store)
        self.ledger = LedgerRepository(store)

    async def list_catalog(self) -> list[CatalogEntry]:
        """Listed entries with units on hand, most stocked first."""
        return await self.catalog.get_listed()

    async def get_catalog_entry(self, catalog_entry_id: str) -> Optional[CatalogEntry]:
        return await self.catalog.get(catalog_entry_id)

    async def get_inventory(self, seller_id: str) -> list[InventoryEntry]:
        return await self.inventory.get_for_seller(seller_id)

    async def get_seller_listings(self, seller_id: str) -> list[Listing]:
        return await self.listings.get_for_seller(seller_id)

    async def get_listings_for_product(self, product_id: str) -> list[Listing]:
        """Listings with units left, cheapest first."""
        return await self.listings.get_active_for_product(product_id)

    async def get_purchases(self, user_id: str) -> list[LedgerEntry]:
        return await self.ledger.get_for_user(user_id)

    async def audit_conservation(self, product_id: str) -> ConservationReport:
        """Count every unit of a product across catalog, inventories and listings."""
        entries = await self.catalog.get_by_product(product_id)
        held = await self.inventory.get_for_product(product_id)
        listed = await self.listings.get_for_product(product_id)
        return ConservationReport(
            product_id=product_id,
            catalog_quantity=sum(e.quantity for e in entries),
            inventory_quantity=sum(i.quantity for i in held),
            listing_quantity=sum(listing.quantity for listing in listed),
            quantity_added=sum(e.quantity_added for e in entries),
        )
