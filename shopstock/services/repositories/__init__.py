"""
Repository Pattern for Record Store Operations

Provides typed access per collection:
- CatalogRepository: platform stock entries
- InventoryRepository: seller holdings
- ListingRepository: seller offers
- LedgerRepository: purchase history
- AccountRepository: user balances
"""
from .account_repo import AccountRepository
from .catalog_repo import CatalogRepository
from .inventory_repo import InventoryRepository
from .ledger_repo import LedgerRepository
from .listing_repo import ListingRepository

__all__ = [
    "AccountRepository",
    "CatalogRepository",
    "InventoryRepository",
    "LedgerRepository",
    "ListingRepository",
]
