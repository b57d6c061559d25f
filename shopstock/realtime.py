"""Upstash Realtime Module - post-commit stock events.

Emits events via Redis Streams for frontend real-time updates, on the same
stream channel the rest of the shop reads from.

Events are emitted only after a transaction has committed, never from inside
a transaction body. Emission is best-effort: failures are logged and never
change the outcome of the operation that produced the event.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

from shopstock.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

STREAM_CATALOG = "stream:realtime:catalog"
STREAM_ALL_LISTINGS = "stream:realtime:listings"
_STREAM_PREFIX_INVENTORY = "stream:realtime:inventory:"
_STREAM_PREFIX_LISTINGS = "stream:realtime:listings:"

EVENT_STOCK_PURCHASED = "stock.purchased"
EVENT_CATALOG_RESTOCKED = "catalog.restocked"
EVENT_CATALOG_UPDATED = "catalog.updated"
EVENT_LISTING_CREATED = "listing.created"
EVENT_LISTING_UPDATED = "listing.updated"
EVENT_LISTING_DELETED = "listing.deleted"
EVENT_ACCOUNT_CREDITED = "account.credited"


@dataclass(frozen=True)
class StockEvent:
    """A committed stock movement."""

    event: str
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    catalog_entry_id: Optional[str] = None
    listing_id: Optional[str] = None
    quantity: int = 0

    def stream_keys(self) -> list[str]:
        if self.event in (EVENT_CATALOG_RESTOCKED, EVENT_CATALOG_UPDATED):
            return [STREAM_CATALOG]
        if self.event == EVENT_STOCK_PURCHASED:
            return [STREAM_CATALOG, f"{_STREAM_PREFIX_INVENTORY}{self.user_id}"]
        if self.event.startswith("listing."):
            return [
                STREAM_ALL_LISTINGS,
                f"{_STREAM_PREFIX_LISTINGS}{self.user_id}",
                f"{_STREAM_PREFIX_INVENTORY}{self.user_id}",
            ]
        return []

    def payload(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class StockEventEmitter(Protocol):
    async def emit(self, event: StockEvent) -> None: ...


class RedisStockEvents:
    """Writes stock events to Upstash Redis streams."""

    def __init__(self, redis=None) -> None:
        self._redis = redis  # Lazy initialization

    @property
    def redis(self):
        if self._redis is None:
            from shopstock.db import get_redis

            self._redis = get_redis()
        return self._redis

    async def emit(self, event: StockEvent) -> None:
        try:
            data = json.dumps(event.payload())
            for stream_key in event.stream_keys():
                await self.redis.xadd(stream_key, "*", {"data": data})
            logger.debug(
                "Emitted %s for user %s", event.event, sanitize_id_for_logging(event.user_id)
            )
        except Exception as e:
            logger.warning("Failed to emit %s: %s", event.event, e, exc_info=True)
