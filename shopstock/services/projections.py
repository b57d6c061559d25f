"""Real-time projections of catalog, inventory and listings.

Each subscription delivers the full decoded contents of its query once
initially and again after every committed change. Stream failures go to
`on_error`; documents that fail validation are skipped with a warning.

Handles are returned to the caller. There is no process-wide registry: a
caller that keeps several subscriptions alive uses its own SubscriptionGroup.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from shopstock.errors import DocumentValidationError
from shopstock.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging
from shopstock.services.models import CatalogEntry, Collections, Listing
from shopstock.services.repositories import (
    CatalogRepository,
    InventoryRepository,
    ListingRepository,
)
from shopstock.services.repositories.base import BaseRepository, newest_first
from shopstock.services.store import DocumentSnapshot, FieldFilter, RecordStore, Watch, where
from shopstock.services.store.base import invoke_callback

logger = get_logger(__name__)

UpdateCallback = Callable[[list], Optional[Awaitable[None]]]
ErrorCallback = Callable[[Exception], Optional[Awaitable[None]]]


@dataclass(frozen=True)
class SubscriptionKey:
    """Collection plus owner id; owner is None for platform-wide views."""

    collection: str
    owner_id: Optional[str] = None


@dataclass
class Subscription:
    key: SubscriptionKey
    watch: Watch

    @property
    def active(self) -> bool:
        return not self.watch.closed

    async def cancel(self) -> None:
        """Stop delivery. Safe to call more than once."""
        await self.watch.close()


class SubscriptionGroup:
    """Caller-owned set of subscriptions, at most one per key."""

    def __init__(self) -> None:
        self._subscriptions: dict[SubscriptionKey, Subscription] = {}

    def __contains__(self, key: SubscriptionKey) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def get(self, key: SubscriptionKey) -> Optional[Subscription]:
        return self._subscriptions.get(key)

    async def replace(self, subscription: Subscription) -> None:
        """Track `subscription`, cancelling any previous one under the same key."""
        previous = self._subscriptions.get(subscription.key)
        self._subscriptions[subscription.key] = subscription
        if previous is not None and previous is not subscription:
            await previous.cancel()

    async def cancel(self, key: SubscriptionKey) -> bool:
        subscription = self._subscriptions.pop(key, None)
        if subscription is None:
            return False
        await subscription.cancel()
        return True

    async def cancel_all(self) -> None:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await subscription.cancel()


class _Projection:
    """Decodes raw snapshots and forwards typed records to `on_update`."""

    def __init__(
        self,
        repo: BaseRepository,
        on_update: UpdateCallback,
        order: Callable[[list], list],
    ) -> None:
        self.repo = repo
        self.on_update = on_update
        self.order = order

    def decode_all(self, snapshots: list[DocumentSnapshot]) -> list:
        records = []
        for snapshot in snapshots:
            try:
                records.append(self.repo.decode(snapshot))
            except DocumentValidationError as e:
                logger.warning(
                    "Skipping invalid %s document %s: %s",
                    snapshot.collection,
                    sanitize_id_for_logging(snapshot.id),
                    sanitize_string_for_logging(e.detail, max_length=200),
                )
        return self.order(records)

    async def __call__(self, snapshots: list[DocumentSnapshot]) -> None:
        await invoke_callback(self.on_update, self.decode_all(snapshots))


class StockProjections:
    """Subscribe to live views of the stock collections."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def _subscribe(
        self,
        key: SubscriptionKey,
        repo: BaseRepository,
        filters: tuple[FieldFilter, ...],
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback],
        order: Callable[[list], list] = list,
    ) -> Subscription:
        projection = _Projection(repo, on_update, order)
        watch = await self.store.watch(key.collection, filters, projection, on_error)
        logger.debug(
            "Subscribed to %s (owner=%s)", key.collection, sanitize_id_for_logging(key.owner_id)
        )
        return Subscription(key, watch)

    async def subscribe_catalog(
        self, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        """Listed catalog entries with units on hand, most stocked first."""
        return await self._subscribe(
            SubscriptionKey(Collections.CATALOG),
            CatalogRepository(self.store),
            (where("listed", "==", True), where("quantity", ">", 0)),
            on_update,
            on_error,
            order=lambda entries: sorted(entries, key=lambda e: (-e.quantity, e.product_code)),
        )

    async def subscribe_admin_catalog(
        self, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        """Every catalog entry, including unlisted and sold-out ones."""
        return await self._subscribe(
            SubscriptionKey(Collections.CATALOG, "admin"),
            CatalogRepository(self.store),
            (),
            on_update,
            on_error,
            order=lambda entries: sorted(entries, key=_catalog_code),
        )

    async def subscribe_inventory(
        self,
        seller_id: str,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return await self._subscribe(
            SubscriptionKey(Collections.INVENTORY, seller_id),
            InventoryRepository(self.store),
            (where("seller_id", "==", seller_id),),
            on_update,
            on_error,
            order=newest_first,
        )

    async def subscribe_listings(
        self,
        seller_id: str,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return await self._subscribe(
            SubscriptionKey(Collections.LISTINGS, seller_id),
            ListingRepository(self.store),
            (where("seller_id", "==", seller_id),),
            on_update,
            on_error,
            order=newest_first,
        )

    async def subscribe_all_listings(
        self, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        """Listings with units left across every seller, cheapest first."""
        return await self._subscribe(
            SubscriptionKey(Collections.LISTINGS),
            ListingRepository(self.store),
            (where("quantity", ">", 0),),
            on_update,
            on_error,
            order=lambda listings: sorted(listings, key=_listing_price),
        )


def _catalog_code(entry: CatalogEntry) -> str:
    return entry.product_code


def _listing_price(listing: Listing):
    return (listing.price, -listing.quantity)
