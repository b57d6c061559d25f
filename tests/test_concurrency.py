"""Concurrent stock operations against the in-memory store"""
import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from conftest import BUYER, SELLER, SKU, snapshot_all

from shopstock.errors import (
    ERROR_INSUFFICIENT_STOCK,
    StoreUnavailableError,
    TransactionConflictError,
)
from shopstock.services.domains import StockQueries
from shopstock.services.repositories import AccountRepository
from shopstock.services.store.base import CommitConflict


@pytest.mark.asyncio
async def test_racing_buyers_for_last_units(seeded, store):
    """Two buyers race for all ten units: exactly one wins."""
    results = await asyncio.gather(
        seeded.buy_stock(BUYER, SKU, 10),
        seeded.buy_stock(SELLER, SKU, 10),
    )

    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].message == ERROR_INSUFFICIENT_STOCK

    entry = await StockQueries(store).get_catalog_entry(SKU)
    assert entry.quantity == 0

    balances = [
        (await AccountRepository(store).get(user)).balance for user in (BUYER, SELLER)
    ]
    assert sorted(balances) == [Decimal("0.00"), Decimal("100.00")]


@pytest.mark.asyncio
async def test_many_small_purchases_never_oversell(seeded, store):
    buyers = [f"buyer-{i}" for i in range(5)]
    for buyer in buyers:
        await seeded.credit_account(buyer, "50")

    results = await asyncio.gather(*(seeded.buy_stock(b, SKU, 3) for b in buyers))

    assert sum(1 for r in results if r.success) == 3
    assert (await StockQueries(store).get_catalog_entry(SKU)).quantity == 1
    assert (await StockQueries(store).audit_conservation(SKU)).balanced


@pytest.mark.asyncio
async def test_mixed_operations_conserve_units(seeded, store):
    await seeded.buy_stock(SELLER, SKU, 6)
    created = await seeded.create_listing(SELLER, SKU, 2, 15)

    await asyncio.gather(
        seeded.create_listing(SELLER, SKU, 1, 15),
        seeded.create_listing(SELLER, SKU, 2, 16),
        seeded.delete_listing(created.listing_id, SELLER),
        seeded.buy_stock(BUYER, SKU, 2),
    )

    report = await StockQueries(store).audit_conservation(SKU)
    assert report.balanced
    assert report.catalog_quantity == 2


@pytest.mark.asyncio
async def test_merging_listings_concurrently_keeps_one_listing(seeded, store):
    await seeded.buy_stock(SELLER, SKU, 4)

    results = await asyncio.gather(
        *(seeded.create_listing(SELLER, SKU, 1, 15) for _ in range(4))
    )

    assert all(r.success for r in results)
    [listing] = await StockQueries(store).get_seller_listings(SELLER)
    assert listing.quantity == 4


@pytest.mark.asyncio
async def test_conflict_exhaustion_is_distinct_from_validation(seeded, store):
    before = snapshot_all(store)

    with patch.object(store, "_commit", AsyncMock(side_effect=CommitConflict("catalog/SKU-1"))):
        with pytest.raises(TransactionConflictError) as exc_info:
            await seeded.buy_stock(BUYER, SKU, 1)

    assert exc_info.value.attempts == store.max_attempts
    assert snapshot_all(store) == before
    seeded.events.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_unavailable_propagates_unchanged(seeded, store):
    failure = StoreUnavailableError("permission denied")

    with patch.object(store, "_fetch", AsyncMock(side_effect=failure)) as fetch:
        with pytest.raises(StoreUnavailableError) as exc_info:
            await seeded.buy_stock(BUYER, SKU, 1)

    assert exc_info.value is failure
    assert fetch.await_count == 1
