"""Stock transaction engine.

Moves units Catalog -> seller Inventory -> seller Listing, and back from a
Listing to Inventory, each operation a single store transaction covering every
record it touches. For any product:

    catalog.quantity + sum(inventory.quantity) + sum(listing.quantity)
        == catalog.quantity_added

Validation failures (missing records, insufficient stock or balance, wrong
owner) are returned as StockResult(success=False) with no writes. Store
failures (TransactionConflictError, StoreUnavailableError) propagate.

Transaction bodies may run more than once; they only read and stage writes on
the transaction they are given. Logging of outcomes and event emission happen
after commit.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional

from shopstock.config import StockSettings
from shopstock.errors import (
    ERROR_EMPTY_UPDATE,
    ERROR_INSUFFICIENT_BALANCE,
    ERROR_INSUFFICIENT_INVENTORY,
    ERROR_INSUFFICIENT_STOCK,
    ERROR_INVALID_AMOUNT,
    ERROR_INVALID_PRICE,
    ERROR_INVALID_QUANTITY,
    ERROR_INVENTORY_NOT_FOUND,
    ERROR_LISTING_NOT_FOUND,
    ERROR_LISTING_NOT_OWNED,
    ERROR_STOCK_NOT_FOUND,
    ERROR_STOCK_NOT_LISTED,
    ERROR_USER_NOT_FOUND,
)
from shopstock.logging import get_logger, sanitize_id_for_logging
from shopstock.realtime import (
    EVENT_ACCOUNT_CREDITED,
    EVENT_CATALOG_RESTOCKED,
    EVENT_CATALOG_UPDATED,
    EVENT_LISTING_CREATED,
    EVENT_LISTING_DELETED,
    EVENT_LISTING_UPDATED,
    EVENT_STOCK_PURCHASED,
    StockEvent,
    StockEventEmitter,
)
from shopstock.services.models import (
    CatalogEntry,
    CatalogUpdate,
    InventoryEntry,
    LedgerEntry,
    Listing,
    ListingUpdate,
    StockResult,
)
from shopstock.services.money import line_total, to_decimal
from shopstock.services.repositories import (
    CatalogRepository,
    InventoryRepository,
    LedgerRepository,
    ListingRepository,
)
from shopstock.services.store import RecordStore, Transaction

from .accounts import Account

logger = get_logger(__name__)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _inventory_from_listing(listing: Listing, quantity: int, now: datetime) -> InventoryEntry:
    """Rebuild a missing inventory entry from a listing's display fields."""
    return InventoryEntry(
        id=InventoryEntry.key(listing.seller_id, listing.product_id),
        seller_id=listing.seller_id,
        product_id=listing.product_id,
        name=listing.name,
        description=listing.description,
        image=listing.image,
        category=listing.category,
        quantity=quantity,
        purchase_price=listing.price,
        created_at=now,
        updated_at=now,
    )


def _return_to_inventory(
    inventory: InventoryRepository,
    held: Optional[InventoryEntry],
    listing: Listing,
    quantity: int,
    now: datetime,
) -> None:
    if held is None:
        inventory.save(_inventory_from_listing(listing, quantity, now))
    else:
        inventory.save(
            held.model_copy(update={"quantity": held.quantity + quantity, "updated_at": now})
        )


class StockEngine:
    """Buy Stock, Create/Update/Delete Listing and the admin stock operations."""

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[StockSettings] = None,
        events: Optional[StockEventEmitter] = None,
    ) -> None:
        self.store = store
        self.settings = settings or StockSettings()
        self.events = events

    async def _emit(self, event: StockEvent) -> None:
        if self.events is not None:
            await self.events.emit(event)

    # ==================== BUY STOCK ====================

    async def buy_stock(self, buyer_id: str, catalog_entry_id: str, quantity: int) -> StockResult:
        """Move `quantity` units from the catalog into the buyer's inventory."""
        if not _is_positive_int(quantity):
            return StockResult.fail(ERROR_INVALID_QUANTITY)

        async def body(txn: Transaction) -> StockResult:
            catalog = CatalogRepository(txn)
            inventory = InventoryRepository(txn)

            entry = await catalog.get(catalog_entry_id)
            account = await Account.load(txn, buyer_id)
            if entry is None:
                return StockResult.fail(ERROR_STOCK_NOT_FOUND)
            if account is None:
                return StockResult.fail(ERROR_USER_NOT_FOUND)
            held = await inventory.get_entry(buyer_id, entry.product_id)

            if not entry.listed:
                return StockResult.fail(ERROR_STOCK_NOT_LISTED)
            if entry.quantity < quantity:
                return StockResult.fail(ERROR_INSUFFICIENT_STOCK)

            total_cost = line_total(entry.price, quantity)
            if not account.has_funds(total_cost):
                return StockResult.fail(ERROR_INSUFFICIENT_BALANCE, total_cost=total_cost)

            now = datetime.now(UTC)
            account.debit(total_cost, now)
            catalog.save(
                entry.model_copy(update={"quantity": entry.quantity - quantity, "updated_at": now})
            )
            if held is None:
                inventory.save(
                    InventoryEntry(
                        id=InventoryEntry.key(buyer_id, entry.product_id),
                        seller_id=buyer_id,
                        product_id=entry.product_id,
                        product_code=entry.product_code,
                        name=entry.name,
                        description=entry.description,
                        image=entry.display_image,
                        category=entry.category,
                        quantity=quantity,
                        purchase_price=entry.price,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                inventory.save(
                    held.model_copy(
                        update={
                            "quantity": held.quantity + quantity,
                            "purchase_price": entry.price,
                            "updated_at": now,
                        }
                    )
                )
            LedgerRepository(txn).append(
                LedgerEntry(
                    id=txn.create_id(),
                    user_id=buyer_id,
                    product_id=entry.product_id,
                    catalog_entry_id=entry.id,
                    quantity=quantity,
                    unit_price=entry.price,
                    total_price=total_cost,
                    created_at=now,
                )
            )
            return StockResult.ok("Purchase successful", quantity=quantity, total_cost=total_cost)

        result = await self.store.run_transaction(body)
        if result.success:
            logger.info(
                "Stock purchased: user=%s entry=%s qty=%d total=%s",
                sanitize_id_for_logging(buyer_id),
                sanitize_id_for_logging(catalog_entry_id),
                quantity,
                result.total_cost,
            )
            await self._emit(
                StockEvent(
                    EVENT_STOCK_PURCHASED,
                    user_id=buyer_id,
                    catalog_entry_id=catalog_entry_id,
                    quantity=quantity,
                )
            )
        return result

    # ==================== LISTINGS ====================

    async def create_listing(
        self, seller_id: str, product_id: str, quantity: int, price
    ) -> StockResult:
        """Move units from the seller's inventory into their listing for the product.

        An existing listing for the same product is topped up and takes the new price.
        """
        price = to_decimal(price)
        if not _is_positive_int(quantity):
            return StockResult.fail(ERROR_INVALID_QUANTITY)
        if not price.is_finite() or price <= 0:
            return StockResult.fail(ERROR_INVALID_PRICE)

        async def body(txn: Transaction) -> StockResult:
            inventory = InventoryRepository(txn)
            listings = ListingRepository(txn)

            held = await inventory.get_entry(seller_id, product_id)
            if held is None:
                return StockResult.fail(ERROR_INVENTORY_NOT_FOUND)
            existing = await listings.find_for_product(seller_id, product_id)
            if held.quantity < quantity:
                return StockResult.fail(ERROR_INSUFFICIENT_INVENTORY)

            now = datetime.now(UTC)
            inventory.save(
                held.model_copy(update={"quantity": held.quantity - quantity, "updated_at": now})
            )
            if existing is not None:
                listing = existing.model_copy(
                    update={
                        "quantity": existing.quantity + quantity,
                        "price": price,
                        "updated_at": now,
                    }
                )
            else:
                listing = Listing(
                    id=txn.create_id(),
                    seller_id=seller_id,
                    product_id=product_id,
                    name=held.name,
                    description=held.description,
                    image=held.image,
                    category=held.category,
                    quantity=quantity,
                    price=price,
                    created_at=now,
                    updated_at=now,
                )
            listings.save(listing)
            return StockResult.ok(
                "Listing created successfully",
                quantity=quantity,
                total_cost=line_total(price, quantity),
                listing_id=listing.id,
            )

        result = await self.store.run_transaction(body)
        if result.success:
            logger.info(
                "Listing %s: seller=%s product=%s +%d",
                sanitize_id_for_logging(result.listing_id),
                sanitize_id_for_logging(seller_id),
                sanitize_id_for_logging(product_id),
                quantity,
            )
            await self._emit(
                StockEvent(
                    EVENT_LISTING_CREATED,
                    user_id=seller_id,
                    product_id=product_id,
                    listing_id=result.listing_id,
                    quantity=quantity,
                )
            )
        return result

    async def update_listing(
        self, listing_id: str, seller_id: str, update: ListingUpdate
    ) -> StockResult:
        """Change a listing's price, description or quantity.

        A quantity increase draws the difference from inventory. A decrease only
        returns the excess to inventory when `return_reduced_listing_stock` is set;
        by default the excess leaves the listing without going back. Quantity 0
        removes the listing.
        """
        if update.is_empty:
            return StockResult.fail(ERROR_EMPTY_UPDATE)
        if update.price is not None and (not update.price.is_finite() or update.price <= 0):
            return StockResult.fail(ERROR_INVALID_PRICE)
        if update.quantity is not None and (
            not isinstance(update.quantity, int) or update.quantity < 0
        ):
            return StockResult.fail(ERROR_INVALID_QUANTITY)
        return_reduced = self.settings.return_reduced_listing_stock

        async def body(txn: Transaction) -> StockResult:
            inventory = InventoryRepository(txn)
            listings = ListingRepository(txn)

            listing = await listings.get(listing_id)
            if listing is None:
                return StockResult.fail(ERROR_LISTING_NOT_FOUND)
            if listing.seller_id != seller_id:
                return StockResult.fail(ERROR_LISTING_NOT_OWNED)

            new_quantity = listing.quantity if update.quantity is None else update.quantity
            delta = new_quantity - listing.quantity
            held = None
            if delta > 0 or (delta < 0 and return_reduced):
                held = await inventory.get_entry(seller_id, listing.product_id)
            if delta > 0 and (held is None or held.quantity < delta):
                return StockResult.fail(ERROR_INSUFFICIENT_INVENTORY)

            now = datetime.now(UTC)
            if delta > 0:
                inventory.save(
                    held.model_copy(update={"quantity": held.quantity - delta, "updated_at": now})
                )
            elif delta < 0 and return_reduced:
                _return_to_inventory(inventory, held, listing, -delta, now)

            if new_quantity == 0:
                listings.remove(listing.id)
                return StockResult.ok(
                    "Listing deleted because quantity reached zero", listing_id=listing.id
                )

            changes = {"quantity": new_quantity, "updated_at": now}
            if update.price is not None:
                changes["price"] = update.price
            if update.description is not None:
                changes["description"] = update.description
            updated = listing.model_copy(update=changes)
            listings.save(updated)
            return StockResult.ok(
                "Listing updated successfully",
                quantity=new_quantity,
                total_cost=line_total(updated.price, new_quantity),
                listing_id=listing.id,
            )

        result = await self.store.run_transaction(body)
        if result.success:
            logger.info(
                "Listing %s updated by seller %s: qty=%d",
                sanitize_id_for_logging(listing_id),
                sanitize_id_for_logging(seller_id),
                result.quantity,
            )
            await self._emit(
                StockEvent(
                    EVENT_LISTING_UPDATED if result.quantity else EVENT_LISTING_DELETED,
                    user_id=seller_id,
                    listing_id=listing_id,
                    quantity=result.quantity,
                )
            )
        return result

    async def delete_listing(self, listing_id: str, seller_id: str) -> StockResult:
        """Return a listing's remaining units to inventory and remove the listing."""

        async def body(txn: Transaction) -> StockResult:
            inventory = InventoryRepository(txn)
            listings = ListingRepository(txn)

            listing = await listings.get(listing_id)
            if listing is None:
                return StockResult.fail(ERROR_LISTING_NOT_FOUND)
            if listing.seller_id != seller_id:
                return StockResult.fail(ERROR_LISTING_NOT_OWNED)
            held = await inventory.get_entry(seller_id, listing.product_id)

            now = datetime.now(UTC)
            _return_to_inventory(inventory, held, listing, listing.quantity, now)
            listings.remove(listing.id)
            return StockResult.ok(
                "Listing deleted and stock returned to inventory",
                quantity=listing.quantity,
                total_cost=line_total(listing.price, listing.quantity),
                listing_id=listing.id,
            )

        result = await self.store.run_transaction(body)
        if result.success:
            logger.info(
                "Listing %s deleted, %d units back to seller %s",
                sanitize_id_for_logging(listing_id),
                result.quantity,
                sanitize_id_for_logging(seller_id),
            )
            await self._emit(
                StockEvent(
                    EVENT_LISTING_DELETED,
                    user_id=seller_id,
                    listing_id=listing_id,
                    quantity=result.quantity,
                )
            )
        return result

    async def cleanup_zero_quantity_listings(self) -> int:
        """Remove listings left with no units. Each removal re-checks inside its own transaction."""
        candidates = await ListingRepository(self.store).get_empty()
        removed = 0
        for candidate in candidates:

            async def body(txn: Transaction, listing_id: str = candidate.id) -> bool:
                listings = ListingRepository(txn)
                listing = await listings.get(listing_id)
                if listing is None or listing.quantity != 0:
                    return False
                listings.remove(listing_id)
                return True

            if await self.store.run_transaction(body):
                removed += 1
        if removed:
            logger.info("Cleanup removed %d zero-quantity listings", removed)
        return removed

    # ==================== ADMIN ====================

    async def restock(
        self,
        product_code: str,
        quantity: int,
        name: str,
        price,
        description: str = "",
        category: str = "general",
        listed: bool = True,
        images: Optional[list[str]] = None,
        main_image: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> StockResult:
        """Add units to the catalog entry for `product_code`, creating it if needed."""
        price = to_decimal(price)
        if not _is_positive_int(quantity):
            return StockResult.fail(ERROR_INVALID_QUANTITY)
        if not price.is_finite() or price < 0:
            return StockResult.fail(ERROR_INVALID_PRICE)

        async def body(txn: Transaction) -> StockResult:
            catalog = CatalogRepository(txn)
            entry = await catalog.get(product_code)

            now = datetime.now(UTC)
            details = {
                "name": name,
                "description": description,
                "price": price,
                "category": category,
                "listed": listed,
                "updated_at": now,
            }
            if images is not None:
                details["images"] = images
            if main_image is not None:
                details["main_image"] = main_image

            if entry is None:
                entry = CatalogEntry(
                    id=product_code,
                    product_id=product_id or product_code,
                    product_code=product_code,
                    quantity=quantity,
                    quantity_added=quantity,
                    created_at=now,
                    **details,
                )
            else:
                entry = entry.model_copy(
                    update={
                        **details,
                        "quantity": entry.quantity + quantity,
                        "quantity_added": entry.quantity_added + quantity,
                    }
                )
            catalog.save(entry)
            return StockResult.ok(
                "Stock added", quantity=entry.quantity, total_cost=line_total(price, quantity)
            )

        result = await self.store.run_transaction(body)
        if result.success:
            logger.info("Restocked %s: +%d", sanitize_id_for_logging(product_code), quantity)
            await self._emit(
                StockEvent(EVENT_CATALOG_RESTOCKED, catalog_entry_id=product_code, quantity=quantity)
            )
        return result

    async def update_catalog_entry(self, catalog_entry_id: str, update: CatalogUpdate) -> StockResult:
        """Change a catalog entry's display fields, price or listed flag. Never its quantity."""
        changes = update.changes()
        if not changes:
            return StockResult.fail(ERROR_EMPTY_UPDATE)
        if update.price is not None and (not update.price.is_finite() or update.price < 0):
            return StockResult.fail(ERROR_INVALID_PRICE)

        async def body(txn: Transaction) -> StockResult:
            catalog = CatalogRepository(txn)
            entry = await catalog.get(catalog_entry_id)
            if entry is None:
                return StockResult.fail(ERROR_STOCK_NOT_FOUND)
            updated = CatalogEntry.model_validate(
                {**entry.model_dump(), **changes, "updated_at": datetime.now(UTC)}
            )
            catalog.save(updated)
            return StockResult.ok("Stock item updated", quantity=updated.quantity)

        result = await self.store.run_transaction(body)
        if result.success:
            await self._emit(StockEvent(EVENT_CATALOG_UPDATED, catalog_entry_id=catalog_entry_id))
        return result

    async def credit_account(self, user_id: str, amount) -> StockResult:
        """Add funds to a user's balance, opening the account on first credit."""
        amount = to_decimal(amount)
        if not amount.is_finite() or amount <= 0:
            return StockResult.fail(ERROR_INVALID_AMOUNT)

        async def body(txn: Transaction) -> Decimal:
            account = await Account.load(txn, user_id) or Account.open(txn, user_id)
            return account.credit(amount, datetime.now(UTC))

        balance = await self.store.run_transaction(body)
        logger.info(
            "Credited %s to user %s, balance now %s",
            amount,
            sanitize_id_for_logging(user_id),
            balance,
        )
        await self._emit(StockEvent(EVENT_ACCOUNT_CREDITED, user_id=user_id))
        return StockResult.ok("Balance credited", total_cost=amount)
