"""Tests for the stock transaction engine"""
from decimal import Decimal

import pytest
from conftest import BUYER, SELLER, SKU, snapshot_all

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
from shopstock.realtime import EVENT_LISTING_CREATED, EVENT_STOCK_PURCHASED
from shopstock.services.domains import StockEngine, StockQueries
from shopstock.services.models import (
    CatalogUpdate,
    Collections,
    InventoryEntry,
    Listing,
    ListingUpdate,
)
from shopstock.services.repositories import AccountRepository


async def balance_of(store, user_id):
    account = await AccountRepository(store).get(user_id)
    return account.balance if account else None


async def inventory_quantity(queries, seller_id, product_id=SKU):
    for entry in await queries.get_inventory(seller_id):
        if entry.product_id == product_id:
            return entry.quantity
    return None


class TestBuyStock:
    """Catalog -> inventory purchases."""

    @pytest.mark.asyncio
    async def test_purchase_moves_units_and_debits_balance(self, seeded, store):
        queries = StockQueries(store)

        result = await seeded.buy_stock(BUYER, SKU, 5)

        assert result.success is True
        assert result.message == "Purchase successful"
        assert result.quantity == 5
        assert result.total_cost == Decimal("50.00")
        assert (await queries.get_catalog_entry(SKU)).quantity == 5
        assert await balance_of(store, BUYER) == Decimal("50.00")

        [held] = await queries.get_inventory(BUYER)
        assert held.id == InventoryEntry.key(BUYER, SKU)
        assert held.quantity == 5
        assert held.purchase_price == Decimal("10.00")
        assert held.name == "T-Shirt"

    @pytest.mark.asyncio
    async def test_purchase_appends_ledger_entry(self, seeded, store):
        await seeded.buy_stock(BUYER, SKU, 2)
        await seeded.buy_stock(BUYER, SKU, 1)

        purchases = await StockQueries(store).get_purchases(BUYER)

        assert len(purchases) == 2
        assert sorted(p.quantity for p in purchases) == [1, 2]
        assert all(p.catalog_entry_id == SKU for p in purchases)
        assert sum(p.total_price for p in purchases) == Decimal("30.00")

    @pytest.mark.asyncio
    async def test_repeat_purchase_merges_inventory(self, seeded, store):
        await seeded.buy_stock(BUYER, SKU, 2)
        await seeded.buy_stock(BUYER, SKU, 3)

        assert await inventory_quantity(StockQueries(store), BUYER) == 5

    @pytest.mark.asyncio
    async def test_purchase_takes_latest_catalog_price(self, seeded, store):
        await seeded.buy_stock(BUYER, SKU, 1)
        await seeded.update_catalog_entry(SKU, CatalogUpdate(price="12.50"))
        await seeded.buy_stock(BUYER, SKU, 1)

        [held] = await StockQueries(store).get_inventory(BUYER)
        assert held.purchase_price == Decimal("12.50")
        assert await balance_of(store, BUYER) == Decimal("77.50")

    @pytest.mark.asyncio
    async def test_unknown_entry(self, seeded):
        result = await seeded.buy_stock(BUYER, "SKU-404", 1)
        assert result.success is False
        assert result.message == ERROR_STOCK_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_user(self, seeded):
        result = await seeded.buy_stock("ghost", SKU, 1)
        assert result.success is False
        assert result.message == ERROR_USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unlisted_entry(self, seeded):
        await seeded.update_catalog_entry(SKU, CatalogUpdate(listed=False))

        result = await seeded.buy_stock(BUYER, SKU, 1)

        assert result.success is False
        assert result.message == ERROR_STOCK_NOT_LISTED

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, seeded):
        result = await seeded.buy_stock(BUYER, SKU, 11)
        assert result.success is False
        assert result.message == ERROR_INSUFFICIENT_STOCK

    @pytest.mark.asyncio
    async def test_insufficient_balance_reports_cost(self, seeded):
        await seeded.credit_account("poor", "5")

        result = await seeded.buy_stock("poor", SKU, 1)

        assert result.success is False
        assert result.message == ERROR_INSUFFICIENT_BALANCE
        assert result.total_cost == Decimal("10.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
    async def test_invalid_quantity(self, seeded, quantity):
        result = await seeded.buy_stock(BUYER, SKU, quantity)
        assert result.success is False
        assert result.message == ERROR_INVALID_QUANTITY

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(self, seeded, store):
        result = await seeded.buy_stock(BUYER, SKU, 10)

        assert result.success is True
        assert await balance_of(store, BUYER) == Decimal("0.00")
        assert (await StockQueries(store).get_catalog_entry(SKU)).quantity == 0

    @pytest.mark.asyncio
    async def test_failures_write_nothing(self, seeded, store):
        before = snapshot_all(store)

        await seeded.buy_stock(BUYER, SKU, 11)
        await seeded.buy_stock("ghost", SKU, 1)
        await seeded.buy_stock(BUYER, "SKU-404", 1)

        assert snapshot_all(store) == before

    @pytest.mark.asyncio
    async def test_emits_event_after_commit(self, seeded):
        await seeded.buy_stock(BUYER, SKU, 1)

        seeded.events.emit.assert_awaited_once()
        event = seeded.events.emit.await_args.args[0]
        assert event.event == EVENT_STOCK_PURCHASED
        assert event.user_id == BUYER
        assert event.quantity == 1

    @pytest.mark.asyncio
    async def test_no_event_on_failure(self, seeded):
        await seeded.buy_stock(BUYER, SKU, 99)
        seeded.events.emit.assert_not_awaited()


class TestListings:
    """Inventory <-> listing movements."""

    @pytest.mark.asyncio
    async def test_buy_list_delete_scenario(self, seeded, store):
        queries = StockQueries(store)
        await seeded.buy_stock(SELLER, SKU, 5)

        created = await seeded.create_listing(SELLER, SKU, 3, "15.00")

        assert created.success is True
        assert created.message == "Listing created successfully"
        assert created.total_cost == Decimal("45.00")
        assert await inventory_quantity(queries, SELLER) == 2
        [listing] = await queries.get_seller_listings(SELLER)
        assert listing.id == created.listing_id
        assert listing.quantity == 3
        assert listing.price == Decimal("15.00")
        assert listing.name == "T-Shirt"

        deleted = await seeded.delete_listing(created.listing_id, SELLER)

        assert deleted.success is True
        assert deleted.message == "Listing deleted and stock returned to inventory"
        assert deleted.quantity == 3
        assert await inventory_quantity(queries, SELLER) == 5
        assert await queries.get_seller_listings(SELLER) == []
        assert (await queries.audit_conservation(SKU)).balanced

    @pytest.mark.asyncio
    async def test_second_delete_fails(self, seeded):
        await seeded.buy_stock(SELLER, SKU, 2)
        created = await seeded.create_listing(SELLER, SKU, 2, 15)
        await seeded.delete_listing(created.listing_id, SELLER)

        again = await seeded.delete_listing(created.listing_id, SELLER)

        assert again.success is False
        assert again.message == ERROR_LISTING_NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_merges_with_existing_listing(self, seeded, store):
        await seeded.buy_stock(SELLER, SKU, 5)
        first = await seeded.create_listing(SELLER, SKU, 2, "15.00")

        second = await seeded.create_listing(SELLER, SKU, 1, "12.00")

        assert second.listing_id == first.listing_id
        [listing] = await StockQueries(store).get_seller_listings(SELLER)
        assert listing.quantity == 3
        assert listing.price == Decimal("12.00")

    @pytest.mark.asyncio
    async def test_create_without_inventory(self, seeded):
        result = await seeded.create_listing(SELLER, SKU, 1, 15)
        assert result.success is False
        assert result.message == ERROR_INVENTORY_NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_more_than_held(self, seeded, store):
        await seeded.buy_stock(SELLER, SKU, 2)
        before = snapshot_all(store)

        result = await seeded.create_listing(SELLER, SKU, 3, 15)

        assert result.success is False
        assert result.message == ERROR_INSUFFICIENT_INVENTORY
        assert snapshot_all(store) == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [0, "-1", None, float("nan"), float("inf"), "-Infinity"])
    async def test_create_rejects_bad_price(self, seeded, price):
        result = await seeded.create_listing(SELLER, SKU, 1, price)
        assert result.success is False
        assert result.message == ERROR_INVALID_PRICE

    @pytest.mark.asyncio
    async def test_create_emits_listing_event(self, seeded):
        await seeded.buy_stock(SELLER, SKU, 1)
        seeded.events.emit.reset_mock()

        result = await seeded.create_listing(SELLER, SKU, 1, 15)

        event = seeded.events.emit.await_args.args[0]
        assert event.event == EVENT_LISTING_CREATED
        assert event.listing_id == result.listing_id

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, seeded, store):
        await seeded.buy_stock(SELLER, SKU, 2)
        created = await seeded.create_listing(SELLER, SKU, 2, 15)
        before = snapshot_all(store)

        result = await seeded.delete_listing(created.listing_id, BUYER)

        assert result.success is False
        assert result.message == ERROR_LISTING_NOT_OWNED
        assert snapshot_all(store) == before

    @pytest.mark.asyncio
    async def test_delete_recreates_missing_inventory(self, seeded, store):
        await seeded.buy_stock(SELLER, SKU, 3)
        created = await seeded.create_listing(SELLER, SKU, 3, "15.00")
        inventory_id = InventoryEntry.key(SELLER, SKU)

        async def drop_inventory(txn):
            await txn.get(Collections.INVENTORY, inventory_id)
            txn.delete(Collections.INVENTORY, inventory_id)

        await store.run_transaction(drop_inventory)

        result = await seeded.delete_listing(created.listing_id, SELLER)

        assert result.success is True
        [held] = await StockQueries(store).get_inventory(SELLER)
        assert held.quantity == 3
        assert held.purchase_price == Decimal("15.00")
        assert held.name == "T-Shirt"


class TestUpdateListing:
    """Price, description and quantity changes."""

    async def _listed(self, engine, quantity=3):
        await engine.buy_stock(SELLER, SKU, 5)
        created = await engine.create_listing(SELLER, SKU, quantity, "15.00")
        return created.listing_id

    @pytest.mark.asyncio
    async def test_price_and_description(self, seeded, store):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(
            listing_id, SELLER, ListingUpdate(price="20", description="Soft cotton")
        )

        assert result.success is True
        [listing] = await StockQueries(store).get_seller_listings(SELLER)
        assert listing.price == Decimal("20")
        assert listing.description == "Soft cotton"
        assert listing.quantity == 3
        assert await inventory_quantity(StockQueries(store), SELLER) == 2

    @pytest.mark.asyncio
    async def test_increase_draws_from_inventory(self, seeded, store):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(listing_id, SELLER, ListingUpdate(quantity=5))

        assert result.success is True
        assert result.quantity == 5
        assert await inventory_quantity(StockQueries(store), SELLER) == 0
        assert (await StockQueries(store).audit_conservation(SKU)).balanced

    @pytest.mark.asyncio
    async def test_increase_beyond_inventory(self, seeded, store):
        listing_id = await self._listed(seeded)
        before = snapshot_all(store)

        result = await seeded.update_listing(listing_id, SELLER, ListingUpdate(quantity=6))

        assert result.success is False
        assert result.message == ERROR_INSUFFICIENT_INVENTORY
        assert snapshot_all(store) == before

    @pytest.mark.asyncio
    async def test_decrease_does_not_return_units_by_default(self, seeded, store):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(listing_id, SELLER, ListingUpdate(quantity=1))

        assert result.success is True
        [listing] = await StockQueries(store).get_seller_listings(SELLER)
        assert listing.quantity == 1
        assert await inventory_quantity(StockQueries(store), SELLER) == 2

    @pytest.mark.asyncio
    async def test_decrease_returns_units_when_enabled(self, store, events):
        engine = StockEngine(
            store,
            StockSettings(store_backend="memory", return_reduced_listing_stock=True),
            events,
        )
        await engine.restock(SKU, 10, name="T-Shirt", price="10")
        await engine.credit_account(SELLER, "100")
        listing_id = await self._listed(engine)

        await engine.update_listing(listing_id, SELLER, ListingUpdate(quantity=1))

        assert await inventory_quantity(StockQueries(store), SELLER) == 4
        assert (await StockQueries(store).audit_conservation(SKU)).balanced

    @pytest.mark.asyncio
    async def test_zero_quantity_removes_listing(self, seeded, store):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(listing_id, SELLER, ListingUpdate(quantity=0))

        assert result.success is True
        assert result.listing_id == listing_id
        assert await StockQueries(store).get_seller_listings(SELLER) == []
        assert await inventory_quantity(StockQueries(store), SELLER) == 2

    @pytest.mark.asyncio
    async def test_requires_owner(self, seeded):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(listing_id, BUYER, ListingUpdate(price=1))

        assert result.success is False
        assert result.message == ERROR_LISTING_NOT_OWNED

    @pytest.mark.asyncio
    async def test_unknown_listing(self, seeded):
        result = await seeded.update_listing("missing", SELLER, ListingUpdate(price=1))
        assert result.message == ERROR_LISTING_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "update, message",
        [
            (ListingUpdate(), ERROR_EMPTY_UPDATE),
            (ListingUpdate(price=0), ERROR_INVALID_PRICE),
            (ListingUpdate(quantity=-1), ERROR_INVALID_QUANTITY),
        ],
    )
    async def test_rejects_invalid_update(self, seeded, update, message):
        listing_id = await self._listed(seeded)

        result = await seeded.update_listing(listing_id, SELLER, update)

        assert result.success is False
        assert result.message == message


class TestAdminOperations:
    """Restock, catalog edits, credits and cleanup."""

    @pytest.mark.asyncio
    async def test_restock_creates_entry_keyed_by_code(self, engine, store):
        result = await engine.restock("SKU-9", 4, name="Mug", price="7.25")

        assert result.success is True
        entry = await StockQueries(store).get_catalog_entry("SKU-9")
        assert entry.product_id == "SKU-9"
        assert entry.quantity == 4
        assert entry.quantity_added == 4
        assert entry.price == Decimal("7.25")

    @pytest.mark.asyncio
    async def test_restock_merges_by_code(self, seeded, store):
        await seeded.buy_stock(BUYER, SKU, 4)

        await seeded.restock(SKU, 5, name="T-Shirt v2", price="12")

        entry = await StockQueries(store).get_catalog_entry(SKU)
        assert entry.quantity == 11
        assert entry.quantity_added == 15
        assert entry.name == "T-Shirt v2"
        assert entry.price == Decimal("12")
        assert (await StockQueries(store).audit_conservation(SKU)).balanced

    @pytest.mark.asyncio
    async def test_restock_rejects_bad_quantity(self, engine):
        result = await engine.restock("SKU-9", 0, name="Mug", price="7")
        assert result.message == ERROR_INVALID_QUANTITY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["-1", float("nan"), float("inf")])
    async def test_restock_rejects_bad_price(self, engine, store, price):
        result = await engine.restock("SKU-9", 1, name="Mug", price=price)

        assert result.message == ERROR_INVALID_PRICE
        assert store.dump(Collections.CATALOG) == {}

    @pytest.mark.asyncio
    async def test_catalog_update_keeps_quantity(self, seeded, store):
        result = await seeded.update_catalog_entry(
            SKU, CatalogUpdate(name="Tee", price="9.99", images=["/a.png"])
        )

        assert result.success is True
        entry = await StockQueries(store).get_catalog_entry(SKU)
        assert entry.name == "Tee"
        assert entry.price == Decimal("9.99")
        assert entry.quantity == 10
        assert entry.display_image == "/a.png"

    @pytest.mark.asyncio
    async def test_catalog_update_unknown_and_empty(self, seeded):
        missing = await seeded.update_catalog_entry("nope", CatalogUpdate(name="x"))
        empty = await seeded.update_catalog_entry(SKU, CatalogUpdate())

        assert missing.message == ERROR_STOCK_NOT_FOUND
        assert empty.message == ERROR_EMPTY_UPDATE

    @pytest.mark.asyncio
    async def test_credit_opens_account(self, engine, store):
        result = await engine.credit_account("new-user", "12.345")

        assert result.success is True
        assert await balance_of(store, "new-user") == Decimal("12.35")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "-5", float("nan"), float("inf")])
    async def test_credit_rejects_non_positive(self, engine, amount):
        result = await engine.credit_account(BUYER, amount)
        assert result.message == ERROR_INVALID_AMOUNT

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_empty_listings(self, seeded, store):
        await seeded.buy_stock(SELLER, SKU, 2)
        kept = await seeded.create_listing(SELLER, SKU, 2, 15)
        empty = Listing(
            id="empty-1", seller_id="seller-2", product_id=SKU, name="T-Shirt", quantity=0, price=15
        )

        async def insert_empty(txn):
            await txn.get(Collections.LISTINGS, empty.id)
            txn.set(Collections.LISTINGS, empty.id, empty.to_document())

        await store.run_transaction(insert_empty)

        removed = await seeded.cleanup_zero_quantity_listings()

        assert removed == 1
        listings = store.dump(Collections.LISTINGS)
        assert set(listings) == {kept.listing_id}
        assert await seeded.cleanup_zero_quantity_listings() == 0


class TestConservation:
    @pytest.mark.asyncio
    async def test_units_accounted_across_states(self, seeded, store):
        await seeded.buy_stock(BUYER, SKU, 4)
        await seeded.buy_stock(SELLER, SKU, 3)
        await seeded.create_listing(SELLER, SKU, 2, 20)

        report = await StockQueries(store).audit_conservation(SKU)

        assert report.catalog_quantity == 3
        assert report.inventory_quantity == 5
        assert report.listing_quantity == 2
        assert report.quantity_added == 10
        assert report.balanced
